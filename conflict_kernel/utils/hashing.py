"""
Hashing for the audit chain.

Payloads are rendered as canonical JSON (sorted keys, compact separators,
fixed encodings for ids, enums, money and timestamps) before digesting, so
a record hashes the same no matter how it was built.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def _encode(obj: Any) -> Any:
    match obj:
        case Enum():
            return obj.value
        case UUID():
            return str(obj)
        case Decimal():
            return str(obj.normalize())
        case datetime() | date():
            return obj.isoformat()
        case bytes():
            return obj.hex()
    raise TypeError(f"Cannot encode {type(obj).__name__} for hashing")


def _canonical(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def to_json_safe(data: Any) -> Any:
    """Plain JSON types only, suitable for a JSON column."""
    return json.loads(_canonical(data))


def hash_payload(payload: Any) -> str:
    return _sha256(_canonical(payload))


def hash_audit_event(
    subject: str,
    event_type: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Digest of one link; the first event in a chain links to ``GENESIS``."""
    return _sha256("|".join((subject, event_type, payload_hash, prev_hash or GENESIS)))
