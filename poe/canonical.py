"""Canonical serialization and claim fingerprinting.

Claims are opaque bytes to the registry. In practice they are content
fingerprints: a front end hashes a document with Blake2b-256 and submits
the 32-byte digest. The helpers here produce those digests and convert claims
to and from the hex form used on the command line and in snapshots.

Canonical JSON uses a JCS-like subset: sorted keys, no whitespace, UTF-8,
floats rejected.
"""

from __future__ import annotations

import hashlib
import json
import pathlib
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Union

DEFAULT_ALGORITHM = "blake2b-256"

_CHUNK_SIZE = 1 << 16


def _blake2b_256() -> Any:
    return hashlib.blake2b(digest_size=32)


DIGEST_ALGORITHMS: Dict[str, Callable[[], Any]] = {
    "blake2b-256": _blake2b_256,
    "sha256": hashlib.sha256,
}


def _hasher(algorithm: str) -> Any:
    try:
        factory = DIGEST_ALGORITHMS[algorithm]
    except KeyError:
        raise ValueError(
            f"Unsupported digest algorithm: {algorithm!r} "
            f"(expected one of {sorted(DIGEST_ALGORITHMS)})"
        ) from None
    return factory()


def claim_digest(data: bytes, algorithm: str = DEFAULT_ALGORITHM) -> bytes:
    """Fingerprint raw content, returning the 32-byte digest."""
    h = _hasher(algorithm)
    h.update(data)
    return h.digest()


def file_digest(path: Union[str, pathlib.Path], algorithm: str = DEFAULT_ALGORITHM) -> bytes:
    """Fingerprint a file's contents without reading it into memory at once."""
    h = _hasher(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.digest()


def normalize_claim(claim: Any) -> bytes:
    """Return the claim as immutable bytes.

    Text is rejected rather than encoded: a claim is an identity, and two
    encodings of the same string must never alias one key.
    """
    if isinstance(claim, bytes):
        return claim
    if isinstance(claim, (bytearray, memoryview)):
        return bytes(claim)
    raise TypeError(f"claim must be bytes-like, got {type(claim).__name__}")


def parse_claim(text: str) -> bytes:
    """Parse a hex claim, with or without a 0x prefix."""
    s = text.strip()
    if s[:2] in ("0x", "0X"):
        s = s[2:]
    try:
        return bytes.fromhex(s)
    except ValueError:
        raise ValueError(f"Invalid hex claim: {text!r}") from None


def claim_hex(claim: bytes) -> str:
    return "0x" + normalize_claim(claim).hex()


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _coerce_json_types(obj: Any) -> Any:
    """Coerce Python objects into strict JSON types.

    - bytes become 0x-prefixed hex.
    - datetimes become RFC 3339 UTC strings.
    - Floats are rejected to avoid non-JCS number edge cases.
    """
    if obj is None:
        return None
    if isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, float):
        raise ValueError("Floats are not allowed in JCS canonicalization. Use strings or integers.")
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, (datetime, date)):
        if isinstance(obj, datetime):
            if obj.tzinfo is None:
                obj = obj.replace(tzinfo=timezone.utc)
            return obj.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
        return obj.isoformat()
    if isinstance(obj, (list, tuple)):
        return [_coerce_json_types(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): _coerce_json_types(v) for k, v in obj.items()}
    return str(obj)


def jcs_canonicalize(obj: Any) -> bytes:
    """Canonicalize JSON using a JCS-like subset (RFC 8785 compatible for objects without floats)."""
    clean = _coerce_json_types(obj)
    return json.dumps(clean, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


__all__ = [
    "DEFAULT_ALGORITHM",
    "DIGEST_ALGORITHMS",
    "claim_digest",
    "file_digest",
    "normalize_claim",
    "parse_claim",
    "claim_hex",
    "sha256_hex",
    "jcs_canonicalize",
]
