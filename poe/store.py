"""Ledger snapshot persistence.

Stores the claim table and the block height as one JSON document:

    {
      "format": "poe-ledger-state/v1",
      "block_number": 7,
      "claims": [
        {"claim": "0x…", "owner": "alice", "registered_at": 3}
      ],
      "state_root": "<sha256 hex>"
    }

Snapshots are validated against a JSON Schema on load and the state root is
recomputed, so a hand-edited or truncated file is rejected instead of silently
producing a different ledger. Writes go to a temporary file that replaces the
target, so a crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import json
import os
import pathlib
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from jsonschema import Draft202012Validator

from poe.canonical import parse_claim
from poe.clock import BlockClock, Clock
from poe.events import EventSink
from poe.observability import LedgerLayer, get_logger
from poe.registry import ClaimRecord, ClaimRegistry, compute_state_root

logger = get_logger("store", LedgerLayer.STORE)

SNAPSHOT_FORMAT = "poe-ledger-state/v1"

SNAPSHOT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://schemas.poe-ledger.dev/state.v1.schema.json",
    "type": "object",
    "additionalProperties": False,
    "required": ["format", "block_number", "claims", "state_root"],
    "properties": {
        "format": {"const": SNAPSHOT_FORMAT},
        "block_number": {"type": "integer", "minimum": 0},
        "state_root": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
        "claims": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["claim", "owner", "registered_at"],
                "properties": {
                    "claim": {"type": "string", "pattern": "^0x([0-9a-f]{2})*$"},
                    "owner": {"type": "string"},
                    "registered_at": {"type": "integer", "minimum": 0},
                },
            },
        },
    },
}

_validator = Draft202012Validator(SNAPSHOT_SCHEMA)


class SnapshotError(Exception):
    """A snapshot could not be written or does not describe a valid ledger."""

    def __init__(self, path: Union[str, pathlib.Path, None], message: str):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


@dataclass
class LedgerState:
    """A ledger as read from a snapshot."""
    block_number: int
    records: List[Tuple[bytes, ClaimRecord]] = field(default_factory=list)
    state_root: str = ""

    def restore(self, events: Optional[EventSink] = None) -> Tuple[ClaimRegistry, BlockClock]:
        """Rebuild a live registry and clock from this state."""
        clock = BlockClock(self.block_number)
        return ClaimRegistry.from_records(self.records, clock, events), clock


def _snapshot_owner(owner: Any) -> str:
    if not isinstance(owner, str):
        raise SnapshotError(None, f"owner {owner!r} is not a string account id")
    return owner


def snapshot_state(registry: ClaimRegistry, clock: Clock) -> Dict[str, Any]:
    """Serialize the registry and the current block height."""
    records = registry.records()
    claims = []
    for claim, record in records:
        if isinstance(record.registered_at, bool) or not isinstance(record.registered_at, int):
            raise SnapshotError(None, f"registered_at {record.registered_at!r} is not an integer height")
        claims.append({
            "claim": "0x" + claim.hex(),
            "owner": _snapshot_owner(record.owner),
            "registered_at": record.registered_at,
        })
    return {
        "format": SNAPSHOT_FORMAT,
        "block_number": clock.now(),
        "claims": claims,
        "state_root": compute_state_root(records),
    }


def save_state(path: Union[str, pathlib.Path], registry: ClaimRegistry, clock: Clock) -> str:
    """Atomically write a snapshot and return its state root."""
    path = pathlib.Path(path)
    doc = snapshot_state(registry, clock)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2, sort_keys=True)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.info(
        "Snapshot saved",
        operation="save_state",
        path=str(path),
        claims=len(doc["claims"]),
        block_number=doc["block_number"],
        state_root=doc["state_root"],
    )
    return doc["state_root"]


def parse_snapshot(doc: Any, path: Union[str, pathlib.Path, None] = None) -> LedgerState:
    """Validate a snapshot document and convert it to a LedgerState."""
    errors = sorted(_validator.iter_errors(doc), key=lambda e: [str(p) for p in e.path])
    if errors:
        err = errors[0]
        where = "/".join(str(p) for p in err.path) or "<root>"
        raise SnapshotError(path, f"invalid snapshot at {where}: {err.message}")

    records: List[Tuple[bytes, ClaimRecord]] = []
    seen = set()
    for entry in doc["claims"]:
        claim = parse_claim(entry["claim"])
        if claim in seen:
            raise SnapshotError(path, f"duplicate claim {entry['claim']}")
        seen.add(claim)
        records.append((claim, ClaimRecord(owner=entry["owner"], registered_at=entry["registered_at"])))

    root = compute_state_root(records)
    if root != doc["state_root"]:
        raise SnapshotError(
            path,
            f"state root mismatch: recorded {doc['state_root']}, computed {root}",
        )

    return LedgerState(block_number=doc["block_number"], records=records, state_root=root)


def load_state(
    path: Union[str, pathlib.Path],
    genesis_block: Optional[int] = None,
) -> LedgerState:
    """
    Read a snapshot from disk.

    A missing file yields an empty ledger at the genesis block (from the
    ``ledger.genesis_block`` setting unless given).
    """
    path = pathlib.Path(path)
    if not path.exists():
        if genesis_block is None:
            from poe.config import get_config
            genesis_block = get_config().ledger.genesis_block.get()
        logger.debug("No snapshot, starting at genesis", path=str(path), block_number=genesis_block)
        empty: List[Tuple[bytes, ClaimRecord]] = []
        return LedgerState(block_number=genesis_block, records=empty, state_root=compute_state_root(empty))

    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SnapshotError(path, f"malformed JSON: {e}") from e

    state = parse_snapshot(doc, path)
    logger.debug(
        "Snapshot loaded",
        operation="load_state",
        path=str(path),
        claims=len(state.records),
        block_number=state.block_number,
    )
    return state


__all__ = [
    "SNAPSHOT_FORMAT",
    "SNAPSHOT_SCHEMA",
    "SnapshotError",
    "LedgerState",
    "snapshot_state",
    "save_state",
    "parse_snapshot",
    "load_state",
]
