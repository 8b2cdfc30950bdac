"""
POE: Proof-of-Existence Claim Ledger

Deterministic state-transition logic for a claim-ownership ledger. A claim is
an opaque content fingerprint; the ledger records which account registered it
first and at which block height, and lets that owner revoke or transfer it.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                         PROOF-OF-EXISTENCE LEDGER                        │
    │                                                                          │
    │  HOST                                                                    │
    │    cli.py           `poe` command line over a local snapshot            │
    │    runtime.py       Sequential dispatcher, origins -> results           │
    │    store.py         Schema-validated JSON snapshots, state roots        │
    │                                                                          │
    │  CORE                                                                    │
    │    registry.py      ClaimRegistry: create / revoke / transfer           │
    │    events.py        ClaimCreated / ClaimRevoked / ClaimTransferred      │
    │    errors.py        ProofAlreadyExists, ClaimNotFound, NotClaimOwner,   │
    │                     OwnerEqualsReceiver, BadOrigin                      │
    │                                                                          │
    │  CAPABILITIES                                                            │
    │    clock.py         Block height source                                 │
    │    identity.py      Origin resolution                                   │
    │    canonical.py     Claim digests, canonical JSON                       │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    config.py        YAML + environment configuration                    │
    │    observability.py Structured logging, correlation IDs                 │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Atomic Transitions: Each operation commits its single mutation and its
    single event together, or leaves the registry exactly as it was.

    Ordered Checks: Existence, then ownership, then self-transfer. The first
    violated precondition is the one reported.

    Injected Capabilities: The registry reads the block height from a Clock
    and trusts the caller identity it is given. Tests use fixed fakes.

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.1.0"

_EXPORTS = {
    "poe.registry": ("ClaimRecord", "ClaimRegistry", "compute_state_root"),
    "poe.errors": (
        "ErrorCode", "LedgerError", "ClaimError", "ProofAlreadyExists",
        "ClaimNotFound", "NotClaimOwner", "OwnerEqualsReceiver", "BadOrigin",
    ),
    "poe.events": (
        "Event", "ClaimCreated", "ClaimRevoked", "ClaimTransferred",
        "EventSink", "EventLog", "EventBus", "get_event_bus",
    ),
    "poe.clock": ("Clock", "BlockClock", "FixedClock"),
    "poe.identity": ("IdentityProvider", "Origin", "SignedOriginProvider"),
    "poe.runtime": ("CallKind", "Call", "DispatchResult", "ClaimRuntime"),
    "poe.canonical": ("claim_digest", "file_digest", "parse_claim", "claim_hex"),
}


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import ledger classes on first access."""
    import importlib

    for module_name, names in _EXPORTS.items():
        if name in names:
            return getattr(importlib.import_module(module_name), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["__version__"] + [n for names in _EXPORTS.values() for n in names]
