# trustnodes/core/canon.py
import hashlib
from typing import Any

import jcs

from .types import LedgerSnapshot


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Returns bytes ready for hashing or export.
    """
    return jcs.canonicalize(obj)


def canonical_json_str(obj: Any) -> str:
    return canonical_json(obj).decode("utf-8")


def state_hash(snapshot: LedgerSnapshot) -> str:
    """hex(sha256) of the canonical snapshot; equal state gives an equal hash."""
    return hashlib.sha256(canonical_json(snapshot.to_dict())).hexdigest()
