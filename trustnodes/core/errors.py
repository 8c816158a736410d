# trustnodes/core/errors.py
"""
Ledger error hierarchy.

Every caller-facing rejection derives from LedgerError and carries the
numeric code the contract reports plus a short tag.  They are raised
before any write happens, so a rejected call never changes state.
"""

from typing import Dict, Optional, Type


class LedgerError(Exception):
    """Base exception for all rejected ledger calls."""
    code: int = 0
    tag: str = "LedgerError"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__doc__)

    def __str__(self):
        return f"{self.tag} (u{self.code}): {self.args[0]}"


class NotAuthorizedError(LedgerError):
    """Caller is not the ledger admin."""
    code = 1
    tag = "NotAuthorized"


class AlreadyRegisteredError(LedgerError):
    """Principal already has an identity."""
    code = 2
    tag = "AlreadyRegistered"


class NotRegisteredError(LedgerError):
    """Principal has no registered identity."""
    code = 3
    tag = "NotRegistered"


class SelfAttestationError(LedgerError):
    """An identity cannot attest to itself."""
    code = 4
    tag = "SelfAttestation"


class AttestationExistsError(LedgerError):
    """Attestation already exists; use update instead."""
    code = 5
    tag = "AttestationExists"


class AttestationNotFoundError(LedgerError):
    """No attestation from caller to this identity."""
    code = 6
    tag = "AttestationNotFound"


class InvalidScoreError(LedgerError):
    """Score must be between 1 and 10."""
    code = 7
    tag = "InvalidScore"


class InvalidInputError(LedgerError):
    """Argument does not match the declared argument type."""
    code = 8
    tag = "InvalidInput"


ERRORS_BY_CODE: Dict[int, Type[LedgerError]] = {
    cls.code: cls
    for cls in (
        NotAuthorizedError,
        AlreadyRegisteredError,
        NotRegisteredError,
        SelfAttestationError,
        AttestationExistsError,
        AttestationNotFoundError,
        InvalidScoreError,
        InvalidInputError,
    )
}


class LedgerNotInitializedError(RuntimeError):
    """Raised when an operation needs the admin config before genesis ran."""


class CorruptedStateError(RuntimeError):
    """Stored accumulators disagree with the attestations they summarize."""


class HeightRegressionError(ValueError):
    """Host supplied a block height lower than one already applied."""
