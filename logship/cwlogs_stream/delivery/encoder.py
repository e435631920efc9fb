"""
Record encoding for the delivery engine.

Turns an application log record (a mapping with a distinguished time field)
into the wire event the remote expects: a serialized message body plus a
millisecond timestamp.

Invariants:
    - The time field never appears in the message body
    - Encoding never raises; unserializable parts degrade to strings
    - Equal input produces equal output
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

DEFAULT_TIME_FIELD = "time"
CIRCULAR = "[Circular]"
TRUNCATED = "[Truncated]"

# Containers nested deeper than this are replaced with TRUNCATED
MAX_DEPTH = 100


@dataclass(frozen=True)
class WireEvent:
    """A single event as submitted to the remote.

    Attributes:
        message: Serialized record body
        timestamp_ms: Event time in Unix milliseconds
    """

    message: str
    timestamp_ms: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the PutLogEvents event shape."""
        return {"timestamp": self.timestamp_ms, "message": self.message}


def encode(
    record: Mapping[str, Any],
    time_field: str = DEFAULT_TIME_FIELD,
    clock: Callable[[], float] = time.time,
) -> WireEvent:
    """Encode a log record into a WireEvent.

    Args:
        record: Field name to value mapping
        time_field: Name of the field carrying the event time
        clock: Source of "now" when the record has no usable time

    Returns:
        WireEvent whose message excludes ``time_field``

    Example:
        >>> encode({"msg": "hello", "time": 1700000000000})
        WireEvent(message='{"msg": "hello"}', timestamp_ms=1700000000000)
    """
    body = {k: v for k, v in record.items() if k != time_field}
    timestamp_ms = to_millis(record.get(time_field))
    if timestamp_ms is None:
        timestamp_ms = int(clock() * 1000)
    return WireEvent(message=safe_dumps(body), timestamp_ms=timestamp_ms)


def to_millis(value: Any) -> Optional[int]:
    """Convert a record time value to Unix milliseconds.

    Accepts datetimes (naive ones are taken as UTC), epoch milliseconds and
    ISO-8601 strings. Returns None when the value is missing or unusable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, (int, float)):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_millis(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def safe_dumps(value: Any) -> str:
    """Serialize to JSON without ever raising.

    Circular references become ``"[Circular]"``; values JSON can't encode
    are stringified, and values whose ``str()`` raises become
    ``"[Throws: <reason>]"``. Containers nested more than ``MAX_DEPTH``
    levels deep become ``"[Truncated]"``.
    """
    try:
        return json.dumps(value, default=_fallback, ensure_ascii=False)
    except (ValueError, TypeError, RecursionError):
        pass
    try:
        return json.dumps(_sanitize(value, set(), 0), default=_fallback, ensure_ascii=False)
    except (ValueError, TypeError, RecursionError) as e:
        return json.dumps(f"[Throws: {type(e).__name__}]")


def _fallback(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).decode("utf-8", errors="replace")
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    try:
        return str(obj)
    except Exception as e:
        return f"[Throws: {e}]"


def _sanitize(value: Any, seen: set, depth: int) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (dict, list, tuple, set, frozenset)):
        if id(value) in seen:
            return CIRCULAR
        if depth >= MAX_DEPTH:
            return TRUNCATED
        seen.add(id(value))
        try:
            if isinstance(value, dict):
                return {
                    k if isinstance(k, str) else _safe_str(k): _sanitize(v, seen, depth + 1)
                    for k, v in value.items()
                }
            return [_sanitize(v, seen, depth + 1) for v in value]
        finally:
            seen.discard(id(value))
    return _fallback(value)


def _safe_str(obj: Any) -> str:
    try:
        return str(obj)
    except Exception as e:
        return f"[Throws: {e}]"
