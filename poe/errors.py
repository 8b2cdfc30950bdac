"""
Ledger error taxonomy.

Every registry error is detected by a local precondition check and raised
synchronously; a raised ClaimError guarantees the registry was not modified.

    LedgerError
    ├── ClaimError
    │   ├── ProofAlreadyExists     create on an existing claim
    │   ├── ClaimNotFound          revoke/transfer on an absent claim
    │   ├── NotClaimOwner          revoke/transfer by a non-owner
    │   └── OwnerEqualsReceiver    transfer to the current owner
    └── BadOrigin                  unsigned or unknown request origin

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Hashable, Optional


class ErrorCode(Enum):
    """Stable identifiers for ledger errors."""
    PROOF_ALREADY_EXISTS = "ProofAlreadyExists"
    CLAIM_NOT_FOUND = "ClaimNotFound"
    NOT_CLAIM_OWNER = "NotClaimOwner"
    OWNER_EQUALS_RECEIVER = "OwnerEqualsReceiver"
    BAD_ORIGIN = "BadOrigin"


class LedgerError(Exception):
    """Base class for all ledger errors."""
    code: ErrorCode

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.code.value, "error": str(self)}


class ClaimError(LedgerError):
    """A registry operation was rejected by a precondition check."""

    def __init__(self, claim: bytes, message: str):
        self.claim = claim
        super().__init__(message)

    @property
    def claim_hex(self) -> str:
        return "0x" + self.claim.hex()


class ProofAlreadyExists(ClaimError):
    code = ErrorCode.PROOF_ALREADY_EXISTS

    def __init__(self, claim: bytes):
        super().__init__(claim, f"Claim 0x{claim.hex()} is already registered")


class ClaimNotFound(ClaimError):
    code = ErrorCode.CLAIM_NOT_FOUND

    def __init__(self, claim: bytes):
        super().__init__(claim, f"Claim 0x{claim.hex()} does not exist")


class NotClaimOwner(ClaimError):
    code = ErrorCode.NOT_CLAIM_OWNER

    def __init__(self, claim: bytes, caller: Hashable, owner: Hashable):
        self.caller = caller
        self.owner = owner
        super().__init__(claim, f"Caller {caller!r} does not own claim 0x{claim.hex()}")


class OwnerEqualsReceiver(ClaimError):
    code = ErrorCode.OWNER_EQUALS_RECEIVER

    def __init__(self, claim: bytes, owner: Hashable):
        self.owner = owner
        super().__init__(claim, f"Receiver {owner!r} already owns claim 0x{claim.hex()}")


class BadOrigin(LedgerError):
    """The request origin could not be resolved to an account."""
    code = ErrorCode.BAD_ORIGIN

    def __init__(self, message: str = "Request origin is not a signed account", origin: Optional[Any] = None):
        self.origin = origin
        super().__init__(message)


__all__ = [
    "ErrorCode",
    "LedgerError",
    "ClaimError",
    "ProofAlreadyExists",
    "ClaimNotFound",
    "NotClaimOwner",
    "OwnerEqualsReceiver",
    "BadOrigin",
]
