"""
trustnodes — a web-of-trust reputation ledger.
Principals register once, attest to each other with scored endorsements,
become verified after enough attestations and build per-domain reputation.
"""

__version__ = "0.1.0-dev"
