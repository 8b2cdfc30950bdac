"""
Caller identity resolution.

The registry trusts the caller identity it is handed. Turning an inbound
request into that identity is the IdentityProvider's job; the provider here
performs the same check as a signed-extrinsic origin guard: the request must
carry a signer, and optionally that signer must be a known account. Verifying
the signature itself belongs to the transport and is not done here.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Iterable, Optional, Protocol, Set, runtime_checkable

from poe.errors import BadOrigin


@runtime_checkable
class IdentityProvider(Protocol):
    """Resolves a request to an authenticated account identity."""

    def resolve(self, request: Any) -> Hashable:
        ...


@dataclass(frozen=True)
class Origin:
    """Where a call came from. An origin without a signer is unsigned."""
    signer: Optional[Hashable] = None

    @classmethod
    def signed(cls, account: Hashable) -> "Origin":
        if account is None:
            raise ValueError("signed origin requires an account")
        return cls(signer=account)

    @classmethod
    def none(cls) -> "Origin":
        return cls(signer=None)

    @property
    def is_signed(self) -> bool:
        return self.signer is not None


class SignedOriginProvider:
    """
    Accepts signed origins, optionally restricted to an allow-list.

    Example:
        provider = SignedOriginProvider(allowed={"alice", "bob"})
        provider.resolve(Origin.signed("alice"))   # -> "alice"
        provider.resolve(Origin.none())            # raises BadOrigin
    """

    def __init__(self, allowed: Optional[Iterable[Hashable]] = None):
        self._allowed: Optional[Set[Hashable]] = set(allowed) if allowed is not None else None

    def resolve(self, request: Any) -> Hashable:
        if not isinstance(request, Origin):
            raise BadOrigin(f"Unsupported origin type: {type(request).__name__}", origin=request)
        if not request.is_signed:
            raise BadOrigin(origin=request)
        if self._allowed is not None and request.signer not in self._allowed:
            raise BadOrigin(f"Unknown account: {request.signer!r}", origin=request)
        return request.signer


__all__ = ["IdentityProvider", "Origin", "SignedOriginProvider"]
