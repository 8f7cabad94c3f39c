"""
Canonical JSON and SHA-256 content hashes.

A finalized deed stores ``hash_payload`` of its sealed content, and audit
payloads are stored in the same canonical form, so both must be stable
across processes: keys sorted, no whitespace, and a fixed rendering for
the non-JSON types that appear in case data.
"""

import hashlib
import json
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_RENDERERS: tuple[tuple[type | tuple[type, ...], Callable[[Any], Any]], ...] = (
    # 50000 and 50000.00 must hash the same.
    (Decimal, lambda d: str(d.normalize())),
    ((datetime, date), lambda d: d.isoformat()),
    (UUID, str),
    (Enum, lambda e: e.value),
    ((set, frozenset), sorted),
    (bytes, bytes.hex),
)


def _render(obj: Any) -> Any:
    for types, render in _RENDERERS:
        if isinstance(obj, types):
            return render(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_render)


def json_safe(data: Any) -> Any:
    """``data`` reduced to plain JSON types via the canonical rendering."""
    return None if data is None else json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical JSON form of ``payload``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()
