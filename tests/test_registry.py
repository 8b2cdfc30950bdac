"""
Claim registry tests.

Covers the three state transitions, precondition ordering, atomicity under a
failing event sink, and the read-side queries.

Run with: pytest tests/test_registry.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from poe.clock import BlockClock, FixedClock
from poe.errors import (
    ClaimError,
    ClaimNotFound,
    ErrorCode,
    LedgerError,
    NotClaimOwner,
    OwnerEqualsReceiver,
    ProofAlreadyExists,
)
from poe.events import ClaimCreated, ClaimRevoked, ClaimTransferred, EventLog
from poe.registry import ClaimRecord, ClaimRegistry, compute_state_root


DOC = b"doc-hash-aaa"


class ExplodingSink:
    """Event sink that always fails."""

    def __init__(self):
        self.calls = 0

    def emit(self, event):
        self.calls += 1
        raise RuntimeError("sink unavailable")


class CollectingSink:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)


# =============================================================================
# CREATE
# =============================================================================

class TestCreateClaim:
    """Tests for create_claim."""

    def test_create_registers_owner_and_height(self, registry):
        """A new claim records the caller and the current block height."""
        registry.create_claim("alice", DOC)

        assert registry.get(DOC) == ClaimRecord(owner="alice", registered_at=10)
        assert registry.is_claimed(DOC)
        assert registry.owner_of(DOC) == "alice"

    def test_create_emits_claim_created(self, registry):
        """Exactly one ClaimCreated event is emitted."""
        registry.create_claim("alice", DOC)

        assert registry.events.events() == [ClaimCreated(account="alice", claim=DOC)]

    def test_duplicate_create_rejected(self, registry):
        """The second create of the same claim fails and changes nothing."""
        registry.create_claim("alice", DOC)
        before = registry.records()

        with pytest.raises(ProofAlreadyExists) as exc_info:
            registry.create_claim("alice", DOC)

        assert exc_info.value.claim == DOC
        assert registry.records() == before
        assert len(registry.events) == 1

    def test_duplicate_create_by_other_account_rejected(self, registry, clock):
        """A different account cannot re-register, even at a later block."""
        registry.create_claim("alice", DOC)
        clock.advance(5)

        with pytest.raises(ProofAlreadyExists):
            registry.create_claim("bob", DOC)

        assert registry.get(DOC) == ClaimRecord(owner="alice", registered_at=10)

    def test_empty_claim_is_a_valid_key(self, registry):
        """No length validation is applied to claims."""
        registry.create_claim("alice", b"")

        assert registry.is_claimed(b"")
        with pytest.raises(ProofAlreadyExists):
            registry.create_claim("bob", b"")

    def test_bytearray_claim_normalized(self, registry):
        """Mutable byte buffers are keyed by their content."""
        buf = bytearray(DOC)
        registry.create_claim("alice", buf)
        buf[0] = 0

        assert registry.is_claimed(DOC)
        assert registry.get(memoryview(DOC)).owner == "alice"

    def test_text_claim_rejected(self, registry):
        """Strings are not silently encoded into claims."""
        with pytest.raises(TypeError):
            registry.create_claim("alice", "doc-hash-aaa")

        assert len(registry) == 0


# =============================================================================
# REVOKE
# =============================================================================

class TestRevokeClaim:
    """Tests for revoke_claim."""

    def test_revoke_unknown_claim(self, registry):
        """Revoking a never-created claim fails with ClaimNotFound."""
        with pytest.raises(ClaimNotFound):
            registry.revoke_claim("alice", DOC)

        assert len(registry.events) == 0

    def test_revoke_by_non_owner(self, registry):
        """Only the owner may revoke."""
        registry.create_claim("alice", DOC)

        with pytest.raises(NotClaimOwner) as exc_info:
            registry.revoke_claim("bob", DOC)

        assert exc_info.value.caller == "bob"
        assert exc_info.value.owner == "alice"
        assert registry.owner_of(DOC) == "alice"

    def test_create_revoke_round_trip(self, registry):
        """After revocation the claim is free for any account."""
        registry.create_claim("alice", DOC)
        registry.revoke_claim("alice", DOC)

        assert not registry.is_claimed(DOC)
        assert registry.get(DOC) is None

        registry.create_claim("bob", DOC)
        assert registry.owner_of(DOC) == "bob"

    def test_revoke_emits_claim_revoked(self, registry):
        registry.create_claim("alice", DOC)
        registry.revoke_claim("alice", DOC)

        assert registry.events.events()[-1] == ClaimRevoked(account="alice", claim=DOC)

    def test_revoke_twice(self, registry):
        """A revoked claim no longer exists."""
        registry.create_claim("alice", DOC)
        registry.revoke_claim("alice", DOC)

        with pytest.raises(ClaimNotFound):
            registry.revoke_claim("alice", DOC)


# =============================================================================
# TRANSFER
# =============================================================================

class TestTransferClaim:
    """Tests for transfer_claim."""

    def test_transfer_unknown_claim(self, registry):
        with pytest.raises(ClaimNotFound):
            registry.transfer_claim("alice", DOC, "bob")

    def test_transfer_by_non_owner(self, registry):
        registry.create_claim("alice", DOC)

        with pytest.raises(NotClaimOwner):
            registry.transfer_claim("bob", DOC, "carol")

        assert registry.owner_of(DOC) == "alice"

    def test_self_transfer_rejected(self, registry):
        """Transferring to the current owner fails and leaves state unchanged."""
        registry.create_claim("alice", DOC)
        before = registry.records()

        with pytest.raises(OwnerEqualsReceiver):
            registry.transfer_claim("alice", DOC, "alice")

        assert registry.records() == before
        assert len(registry.events) == 1

    def test_non_owner_checked_before_self_transfer(self, registry):
        """Ownership is checked before the receiver comparison."""
        registry.create_claim("alice", DOC)

        with pytest.raises(NotClaimOwner):
            registry.transfer_claim("bob", DOC, "alice")

    def test_transfer_refreshes_registration_height(self):
        """The original registration height is discarded on transfer."""
        clock = BlockClock(10)
        registry = ClaimRegistry(clock)
        registry.create_claim("alice", DOC)

        clock.set(20)
        registry.transfer_claim("alice", DOC, "bob")

        assert registry.get(DOC) == ClaimRecord(owner="bob", registered_at=20)

    def test_transfer_emits_claim_transferred(self, registry):
        registry.create_claim("alice", DOC)
        registry.transfer_claim("alice", DOC, "bob")

        assert registry.events.events()[-1] == ClaimTransferred(
            sender="alice", claim=DOC, receiver="bob"
        )

    def test_previous_owner_loses_rights(self, registry):
        registry.create_claim("alice", DOC)
        registry.transfer_claim("alice", DOC, "bob")

        with pytest.raises(NotClaimOwner):
            registry.revoke_claim("alice", DOC)
        with pytest.raises(NotClaimOwner):
            registry.transfer_claim("alice", DOC, "carol")


# =============================================================================
# SCENARIO
# =============================================================================

class TestDocumentLifecycle:
    """End-to-end lifecycle of a single document fingerprint."""

    def test_create_transfer_revoke(self):
        clock = BlockClock(1)
        sink = CollectingSink()
        registry = ClaimRegistry(clock, events=sink)

        registry.create_claim("A", DOC)
        assert sink.events == [ClaimCreated(account="A", claim=DOC)]

        with pytest.raises(ProofAlreadyExists):
            registry.create_claim("B", DOC)

        clock.advance()
        registry.transfer_claim("A", DOC, "B")
        assert sink.events[-1] == ClaimTransferred(sender="A", claim=DOC, receiver="B")
        assert registry.get(DOC) == ClaimRecord(owner="B", registered_at=2)

        with pytest.raises(NotClaimOwner):
            registry.revoke_claim("A", DOC)

        registry.revoke_claim("B", DOC)
        assert sink.events[-1] == ClaimRevoked(account="B", claim=DOC)
        assert DOC not in registry
        assert len(sink.events) == 3

    def test_account_identities_are_opaque(self):
        """Any hashable, comparable value works as an account."""
        registry = ClaimRegistry(FixedClock("block-7"))
        registry.create_claim(42, DOC)
        registry.transfer_claim(42, DOC, ("org", 9))

        assert registry.get(DOC) == ClaimRecord(owner=("org", 9), registered_at="block-7")


# =============================================================================
# ATOMICITY
# =============================================================================

class TestAtomicity:
    """A failing event sink must leave the registry untouched."""

    def test_create_rolled_back(self):
        sink = ExplodingSink()
        registry = ClaimRegistry(BlockClock(3), events=sink)

        with pytest.raises(RuntimeError):
            registry.create_claim("alice", DOC)

        assert sink.calls == 1
        assert not registry.is_claimed(DOC)
        assert len(registry) == 0

    def test_revoke_rolled_back(self):
        clock = BlockClock(3)
        registry = ClaimRegistry.from_records([(DOC, ClaimRecord("alice", 1))], clock, ExplodingSink())

        with pytest.raises(RuntimeError):
            registry.revoke_claim("alice", DOC)

        assert registry.get(DOC) == ClaimRecord("alice", 1)

    def test_transfer_rolled_back(self):
        clock = BlockClock(3)
        registry = ClaimRegistry.from_records([(DOC, ClaimRecord("alice", 1))], clock, ExplodingSink())

        with pytest.raises(RuntimeError):
            registry.transfer_claim("alice", DOC, "bob")

        assert registry.get(DOC) == ClaimRecord("alice", 1)

    def test_rejected_operation_emits_nothing(self):
        sink = CollectingSink()
        registry = ClaimRegistry(BlockClock(), events=sink)

        for op in (
            lambda: registry.revoke_claim("alice", DOC),
            lambda: registry.transfer_claim("alice", DOC, "bob"),
        ):
            with pytest.raises(ClaimNotFound):
                op()

        assert sink.events == []


# =============================================================================
# QUERIES
# =============================================================================

class TestQueries:
    """Tests for read-side queries and construction helpers."""

    def test_owner_of_missing(self, registry):
        with pytest.raises(ClaimNotFound):
            registry.owner_of(DOC)

    def test_claims_owned_by_sorted(self, registry):
        for claim in (b"\x03", b"\x01", b"\x02"):
            registry.create_claim("alice", claim)
        registry.create_claim("bob", b"\x00")

        assert registry.claims_owned_by("alice") == [b"\x01", b"\x02", b"\x03"]
        assert registry.claims_owned_by("carol") == []

    def test_records_sorted_by_claim(self, registry):
        registry.create_claim("alice", b"\xff")
        registry.create_claim("bob", b"\x00")

        assert [c for c, _ in registry.records()] == [b"\x00", b"\xff"]

    def test_contains_ignores_non_bytes(self, registry):
        registry.create_claim("alice", DOC)

        assert DOC in registry
        assert "doc-hash-aaa" not in registry
        assert 5 not in registry

    def test_state_root_is_order_independent(self):
        a = ClaimRegistry(FixedClock(1))
        b = ClaimRegistry(FixedClock(1))
        a.create_claim("alice", b"\x01")
        a.create_claim("bob", b"\x02")
        b.create_claim("bob", b"\x02")
        b.create_claim("alice", b"\x01")

        assert a.state_root() == b.state_root()
        assert len(a.state_root()) == 64

    def test_state_root_tracks_changes(self, registry):
        empty = registry.state_root()
        registry.create_claim("alice", DOC)
        created = registry.state_root()
        registry.transfer_claim("alice", DOC, "bob")

        assert len({empty, created, registry.state_root()}) == 3
        assert empty == compute_state_root([])

    def test_state_root_distinguishes_owner_types(self):
        registry = ClaimRegistry(FixedClock(1))
        registry.create_claim("0x01", DOC)
        text_owned = registry.state_root()
        registry.transfer_claim("0x01", DOC, b"\x01")

        assert registry.owner_of(DOC) == b"\x01"
        assert registry.state_root() != text_owned

    def test_state_root_distinguishes_height_types(self):
        assert compute_state_root([(DOC, ClaimRecord("alice", 1))]) != compute_state_root(
            [(DOC, ClaimRecord("alice", "1"))]
        )

    def test_state_root_with_non_integer_clock(self):
        fractional = ClaimRegistry(FixedClock(1.5))
        textual = ClaimRegistry(FixedClock("1.5"))
        fractional.create_claim("alice", DOC)
        textual.create_claim("alice", DOC)

        root = fractional.state_root()
        assert len(root) == 64
        assert root == fractional.state_root()
        assert root != textual.state_root()

    def test_from_records_rejects_duplicates(self, clock):
        records = [(DOC, ClaimRecord("alice", 1)), (bytearray(DOC), ClaimRecord("bob", 2))]

        with pytest.raises(ValueError):
            ClaimRegistry.from_records(records, clock)

    def test_from_records_emits_no_events(self, clock):
        log = EventLog()
        registry = ClaimRegistry.from_records([(DOC, ClaimRecord("alice", 1))], clock, log)

        assert registry.owner_of(DOC) == "alice"
        assert len(log) == 0

    def test_default_sink_is_event_log(self, registry):
        assert isinstance(registry.events, EventLog)
        assert repr(registry) == "ClaimRegistry(claims=0)"


# =============================================================================
# ERRORS
# =============================================================================

class TestErrors:
    """Error taxonomy."""

    def test_hierarchy_and_codes(self):
        err = NotClaimOwner(DOC, "bob", "alice")

        assert isinstance(err, ClaimError)
        assert isinstance(err, LedgerError)
        assert err.code == ErrorCode.NOT_CLAIM_OWNER
        assert err.claim_hex == "0x" + DOC.hex()

    def test_to_dict(self):
        err = ProofAlreadyExists(b"\xab")

        assert err.to_dict() == {
            "error_code": "ProofAlreadyExists",
            "error": "Claim 0xab is already registered",
        }

    @pytest.mark.parametrize("error,code", [
        (ClaimNotFound(b"\x01"), "ClaimNotFound"),
        (OwnerEqualsReceiver(b"\x01", "alice"), "OwnerEqualsReceiver"),
        (ProofAlreadyExists(b"\x01"), "ProofAlreadyExists"),
    ])
    def test_codes_match_names(self, error, code):
        assert error.code.value == code == type(error).__name__


# =============================================================================
# CONCURRENCY
# =============================================================================

@pytest.mark.slow
class TestConcurrency:
    """Concurrent callers racing for the same claims."""

    def test_single_winner_per_claim(self):
        import threading

        registry = ClaimRegistry(BlockClock(1))
        claims = [bytes([i]) for i in range(50)]
        winners = []
        lock = threading.Lock()

        def worker(account):
            for claim in claims:
                try:
                    registry.create_claim(account, claim)
                except ProofAlreadyExists:
                    continue
                with lock:
                    winners.append(claim)

        threads = [threading.Thread(target=worker, args=(f"acct-{n}",)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(winners) == claims
        assert len(registry) == len(claims)
        assert len(registry.events) == len(claims)
