"""
Claim Runtime

Host-side dispatcher that sequences calls into the claim registry, the way a
block producer applies extrinsics: resolve the origin to an account, apply the
call, and report a definite result. Ledger errors never escape dispatch; they
come back as failed DispatchResults with the registry untouched.

    Origin ──IdentityProvider──▶ caller ──ClaimRegistry──▶ DispatchResult
                                              │
                                          EventLog ──▶ EventBus

Calls are applied strictly in order under the runtime lock. Within a batch each
call is independently atomic: a failing call does not undo earlier ones.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from poe.canonical import normalize_claim
from poe.clock import BlockClock
from poe.errors import LedgerError
from poe.events import Event, EventBus, EventLog
from poe.identity import IdentityProvider
from poe.observability import LedgerLayer, correlation_scope, get_logger
from poe.registry import ClaimRecord, ClaimRegistry

logger = get_logger("runtime", LedgerLayer.RUNTIME)


class CallKind(Enum):
    """Dispatchable registry operations."""
    CREATE_CLAIM = "create_claim"
    REVOKE_CLAIM = "revoke_claim"
    TRANSFER_CLAIM = "transfer_claim"


@dataclass(frozen=True)
class Call:
    """A single registry call awaiting dispatch."""
    kind: CallKind
    claim: bytes
    receiver: Optional[Hashable] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "claim", normalize_claim(self.claim))
        if self.kind == CallKind.TRANSFER_CLAIM and self.receiver is None:
            raise ValueError("transfer_claim requires a receiver")
        if self.kind != CallKind.TRANSFER_CLAIM and self.receiver is not None:
            raise ValueError(f"{self.kind.value} does not take a receiver")

    @classmethod
    def create(cls, claim: bytes) -> "Call":
        return cls(CallKind.CREATE_CLAIM, claim)

    @classmethod
    def revoke(cls, claim: bytes) -> "Call":
        return cls(CallKind.REVOKE_CLAIM, claim)

    @classmethod
    def transfer(cls, claim: bytes, receiver: Hashable) -> "Call":
        return cls(CallKind.TRANSFER_CLAIM, claim, receiver)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"call": self.kind.value, "claim": "0x" + self.claim.hex()}
        if self.receiver is not None:
            d["receiver"] = self.receiver
        return d


@dataclass
class DispatchResult:
    """Outcome of dispatching one call."""
    call: Call
    caller: Optional[Hashable]
    block_number: Any
    success: bool
    error_code: Optional[str] = None
    error: Optional[str] = None
    events: List[Event] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.call.to_dict(),
            "caller": self.caller,
            "block_number": self.block_number,
            "success": self.success,
            "error_code": self.error_code,
            "error": self.error,
            "events": [e.to_dict() for e in self.events],
        }


class ClaimRuntime:
    """
    Sequential dispatcher around a ClaimRegistry.

    Example:
        runtime = ClaimRuntime(SignedOriginProvider(), BlockClock())
        result = runtime.dispatch(Origin.signed("alice"), Call.create(digest))
        assert result.success
        runtime.finalize_block()
    """

    def __init__(
        self,
        identity: IdentityProvider,
        clock: BlockClock,
        records: Iterable[Tuple[bytes, ClaimRecord]] = (),
        bus: Optional[EventBus] = None,
        history_limit: Optional[int] = None,
    ):
        self._identity = identity
        self._clock = clock
        self._bus = bus
        self._log = EventLog(forward_to=bus, clock=clock, max_records=history_limit or None)
        self._registry = ClaimRegistry.from_records(records, clock, events=self._log)
        self._lock = threading.RLock()

    @property
    def registry(self) -> ClaimRegistry:
        return self._registry

    @property
    def clock(self) -> BlockClock:
        return self._clock

    @property
    def event_log(self) -> EventLog:
        """Events emitted through dispatch."""
        return self._log

    @property
    def block_number(self) -> int:
        return self._clock.now()

    def dispatch(self, origin: Any, call: Call) -> DispatchResult:
        """Resolve the origin and apply the call; ledger errors become failed results."""
        with self._lock, correlation_scope():
            start = time.monotonic()
            block_number = self._clock.now()
            position = self._log.position
            caller: Optional[Hashable] = None
            try:
                caller = self._identity.resolve(origin)
                self._apply(caller, call)
            except LedgerError as e:
                result = DispatchResult(
                    call=call,
                    caller=caller,
                    block_number=block_number,
                    success=False,
                    error_code=e.code.value,
                    error=str(e),
                )
            else:
                events = [r.event for r in self._log.since(position)]
                result = DispatchResult(
                    call=call,
                    caller=caller,
                    block_number=block_number,
                    success=True,
                    events=events,
                )

            logger.operation(
                call.kind.value,
                (time.monotonic() - start) * 1000,
                success=result.success,
                claim=call.claim.hex(),
                caller=str(caller),
                block_number=block_number,
                error_code=result.error_code or "",
            )
            return result

    def dispatch_batch(self, items: Iterable[Tuple[Any, Call]]) -> List[DispatchResult]:
        """Dispatch (origin, call) pairs in order."""
        with self._lock:
            return [self.dispatch(origin, call) for origin, call in items]

    def finalize_block(self, count: int = 1) -> int:
        """Close the current block and return the new height."""
        with self._lock:
            height = self._clock.advance(count)
        logger.debug("Block finalized", operation="finalize_block", block_number=height)
        return height

    def _apply(self, caller: Hashable, call: Call) -> None:
        if call.kind == CallKind.CREATE_CLAIM:
            self._registry.create_claim(caller, call.claim)
        elif call.kind == CallKind.REVOKE_CLAIM:
            self._registry.revoke_claim(caller, call.claim)
        elif call.kind == CallKind.TRANSFER_CLAIM:
            self._registry.transfer_claim(caller, call.claim, call.receiver)
        else:
            raise ValueError(f"Unknown call kind: {call.kind}")


__all__ = ["CallKind", "Call", "DispatchResult", "ClaimRuntime"]
