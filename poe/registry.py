"""
Claim Registry

The proof-of-existence ledger core: a keyed store mapping a claim (an opaque
content fingerprint) to the account that registered it and the block height of
that registration, plus the three state transitions that mutate it.

    claim absent ──create_claim──▶ claim present (owner, registered_at)
         ▲                              │            │
         └────────revoke_claim──────────┘   transfer_claim
                                            (owner := receiver,
                                             registered_at := now)

Every operation is atomic. Either all precondition checks pass and the single
mutation plus the single event emission happen together, or the store is left
exactly as it was and no event is emitted. Operations are serialized by the
registry's lock, so each one observes every previously committed effect.

Precondition order is fixed: existence, then ownership, then self-transfer.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from poe.canonical import jcs_canonicalize, normalize_claim
from poe.clock import Clock
from poe.errors import ClaimNotFound, NotClaimOwner, OwnerEqualsReceiver, ProofAlreadyExists
from poe.events import ClaimCreated, ClaimRevoked, ClaimTransferred, Event, EventLog, EventSink
from poe.observability import LedgerLayer, get_logger

logger = get_logger("registry", LedgerLayer.REGISTRY)

_ABSENT = object()


@dataclass(frozen=True)
class ClaimRecord:
    """Current owner of a claim and the block height it was registered at."""
    owner: Hashable
    registered_at: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"owner": self.owner, "registered_at": self.registered_at}


def _tagged(value: Any) -> Dict[str, Any]:
    """JSON form of an opaque value, keyed by its type so distinct types never collide."""
    if isinstance(value, bool):
        return {"bool": value}
    if isinstance(value, int):
        return {"int": value}
    if isinstance(value, str):
        return {"str": value}
    if isinstance(value, bytes):
        return {"bytes": value.hex()}
    if value is None:
        return {"none": None}
    cls = type(value)
    return {f"{cls.__module__}.{cls.__qualname__}": repr(value)}


def compute_state_root(records: Iterable[Tuple[bytes, ClaimRecord]]) -> str:
    """
    State root of a set of entries, independent of their order.

    Owners and registration heights are type-tagged; values other than
    bool, int, str, bytes and None are represented by their repr.
    """
    entries = [
        {"claim": claim, "owner": _tagged(record.owner), "registered_at": _tagged(record.registered_at)}
        for claim, record in sorted(records, key=lambda item: item[0])
    ]
    return hashlib.sha256(jcs_canonicalize(entries)).hexdigest()


class ClaimRegistry:
    """
    Exclusive owner of the claim -> ClaimRecord store.

    Args:
        clock: Source of the current block height, read on create and transfer.
        events: Sink for domain events. Defaults to a private EventLog,
            reachable through the ``events`` property.

    Example:
        registry = ClaimRegistry(BlockClock())
        registry.create_claim("alice", digest)
        registry.transfer_claim("alice", digest, "bob")
        registry.get(digest)   # ClaimRecord(owner="bob", registered_at=1)
    """

    def __init__(self, clock: Clock, events: Optional[EventSink] = None):
        self._proofs: Dict[bytes, ClaimRecord] = {}
        self._clock = clock
        self._events: EventSink = events if events is not None else EventLog(clock=clock)
        self._lock = threading.RLock()

    @classmethod
    def from_records(
        cls,
        records: Iterable[Tuple[bytes, ClaimRecord]],
        clock: Clock,
        events: Optional[EventSink] = None,
    ) -> "ClaimRegistry":
        """Build a registry whose genesis state holds the given entries."""
        registry = cls(clock, events)
        for claim, record in records:
            key = normalize_claim(claim)
            if key in registry._proofs:
                raise ValueError(f"Duplicate claim in records: 0x{key.hex()}")
            registry._proofs[key] = record
        return registry

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def events(self) -> EventSink:
        return self._events

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def create_claim(self, caller: Hashable, claim: bytes) -> None:
        """
        Register a claim for the caller at the current block height.

        Raises:
            ProofAlreadyExists: The claim is already registered.
        """
        key = normalize_claim(claim)
        with self._lock:
            if key in self._proofs:
                self._rejected("create_claim", ProofAlreadyExists(key))

            record = ClaimRecord(owner=caller, registered_at=self._clock.now())
            self._commit(key, record, ClaimCreated(account=caller, claim=key))

        logger.info(
            "Claim created",
            operation="create_claim",
            claim=key.hex(),
            owner=str(caller),
            registered_at=record.registered_at,
        )

    def revoke_claim(self, caller: Hashable, claim: bytes) -> None:
        """
        Delete a claim owned by the caller.

        Raises:
            ClaimNotFound: The claim is not registered.
            NotClaimOwner: The claim belongs to another account.
        """
        key = normalize_claim(claim)
        with self._lock:
            self._require_owner("revoke_claim", key, caller)
            self._commit(key, None, ClaimRevoked(account=caller, claim=key))

        logger.info("Claim revoked", operation="revoke_claim", claim=key.hex(), owner=str(caller))

    def transfer_claim(self, caller: Hashable, claim: bytes, receiver: Hashable) -> None:
        """
        Hand a claim owned by the caller to the receiver.

        The registration height is refreshed to the current block; the
        original height is discarded.

        Raises:
            ClaimNotFound: The claim is not registered.
            NotClaimOwner: The claim belongs to another account.
            OwnerEqualsReceiver: The receiver already owns the claim.
        """
        key = normalize_claim(claim)
        with self._lock:
            current = self._require_owner("transfer_claim", key, caller)
            if current.owner == receiver:
                self._rejected("transfer_claim", OwnerEqualsReceiver(key, current.owner))

            record = ClaimRecord(owner=receiver, registered_at=self._clock.now())
            self._commit(
                key,
                record,
                ClaimTransferred(sender=caller, claim=key, receiver=receiver),
            )

        logger.info(
            "Claim transferred",
            operation="transfer_claim",
            claim=key.hex(),
            sender=str(caller),
            receiver=str(receiver),
            registered_at=record.registered_at,
        )

    def _require_owner(self, operation: str, key: bytes, caller: Hashable) -> ClaimRecord:
        current = self._proofs.get(key)
        if current is None:
            self._rejected(operation, ClaimNotFound(key))
        if current.owner != caller:
            self._rejected(operation, NotClaimOwner(key, caller, current.owner))
        return current

    def _rejected(self, operation: str, error: Exception) -> None:
        logger.info(
            f"Rejected {operation}: {error}",
            operation=operation,
            error_code=error.code.value,  # type: ignore[attr-defined]
        )
        raise error

    def _commit(self, key: bytes, record: Optional[ClaimRecord], event: Event) -> None:
        """Apply one mutation and emit its event; undo the mutation if emission fails."""
        previous = self._proofs.get(key, _ABSENT)
        if record is None:
            del self._proofs[key]
        else:
            self._proofs[key] = record

        try:
            self._events.emit(event)
        except BaseException:
            if previous is _ABSENT:
                self._proofs.pop(key, None)
            else:
                self._proofs[key] = previous  # type: ignore[assignment]
            logger.error(
                f"Event sink failed, rolled back {event.event_type}",
                claim=key.hex(),
                exc_info=True,
            )
            raise

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, claim: bytes) -> Optional[ClaimRecord]:
        key = normalize_claim(claim)
        with self._lock:
            return self._proofs.get(key)

    def owner_of(self, claim: bytes) -> Hashable:
        key = normalize_claim(claim)
        with self._lock:
            record = self._proofs.get(key)
        if record is None:
            raise ClaimNotFound(key)
        return record.owner

    def is_claimed(self, claim: bytes) -> bool:
        return self.get(claim) is not None

    def claims_owned_by(self, owner: Hashable) -> List[bytes]:
        with self._lock:
            return sorted(k for k, r in self._proofs.items() if r.owner == owner)

    def records(self) -> List[Tuple[bytes, ClaimRecord]]:
        """Snapshot of all entries, ordered by claim bytes."""
        with self._lock:
            return sorted(self._proofs.items(), key=lambda item: item[0])

    def state_root(self) -> str:
        """SHA-256 over the canonical form of the sorted entries."""
        return compute_state_root(self.records())

    def __contains__(self, claim: object) -> bool:
        try:
            key = normalize_claim(claim)
        except TypeError:
            return False
        with self._lock:
            return key in self._proofs

    def __len__(self) -> int:
        with self._lock:
            return len(self._proofs)

    def __repr__(self) -> str:
        return f"ClaimRegistry(claims={len(self)})"


__all__ = ["ClaimRecord", "ClaimRegistry", "compute_state_root"]
