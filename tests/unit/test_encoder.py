"""
Unit tests for record encoding.

Tests cover:
- Time field extraction and exclusion from the body
- Supported time representations
- Failure-tolerant serialization
"""

import json
from datetime import datetime, timezone

from logship.cwlogs_stream.delivery.encoder import (
    MAX_DEPTH,
    WireEvent,
    encode,
    safe_dumps,
    to_millis,
)


class TestEncode:
    """Tests for encode()."""

    def test_excludes_time_and_uses_it_as_timestamp(self):
        """Time field becomes the timestamp, not part of the message."""
        event = encode({"msg": "hello", "time": 1700000000000})

        assert event.timestamp_ms == 1700000000000
        assert json.loads(event.message) == {"msg": "hello"}
        assert "time" not in json.loads(event.message)

    def test_encoding_is_repeatable(self):
        """Same input gives the same event."""
        record = {"msg": "hello", "time": 1700000000000, "level": 30}

        assert encode(record) == encode(record)

    def test_does_not_modify_record(self):
        """The caller's mapping is left untouched."""
        record = {"msg": "hello", "time": 1700000000000}
        encode(record)

        assert record == {"msg": "hello", "time": 1700000000000}

    def test_datetime_time(self):
        """Aware datetimes convert to epoch milliseconds."""
        when = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        event = encode({"msg": "x", "time": when})

        assert event.timestamp_ms == 1700000000000

    def test_iso_string_time(self):
        """ISO-8601 strings with a Z suffix are accepted."""
        event = encode({"msg": "x", "time": "2023-11-14T22:13:20.000Z"})

        assert event.timestamp_ms == 1700000000000

    def test_missing_time_uses_clock(self):
        """Records without a time are stamped with the current time."""
        event = encode({"msg": "x"}, clock=lambda: 1700000000.5)

        assert event.timestamp_ms == 1700000000500

    def test_unparseable_time_uses_clock(self):
        """Garbage in the time field does not abort encoding."""
        event = encode({"msg": "x", "time": "yesterday"}, clock=lambda: 1.0)

        assert event.timestamp_ms == 1000

    def test_custom_time_field(self):
        """The time field name is configurable."""
        event = encode({"msg": "x", "ts": 5, "time": "kept"}, time_field="ts")

        assert event.timestamp_ms == 5
        assert json.loads(event.message) == {"msg": "x", "time": "kept"}

    def test_to_dict_shape(self):
        """Wire shape matches PutLogEvents."""
        event = WireEvent(message="{}", timestamp_ms=7)

        assert event.to_dict() == {"timestamp": 7, "message": "{}"}


class TestSafeDumps:
    """Tests for failure-tolerant serialization."""

    def test_circular_reference(self):
        """Cycles are replaced, not fatal."""
        record = {"msg": "loop", "time": 0}
        record["self"] = record

        body = json.loads(encode(record).message)

        assert body["msg"] == "loop"
        assert body["self"]["self"] == "[Circular]"

    def test_circular_list(self):
        items = [1]
        items.append(items)

        assert json.loads(safe_dumps(items)) == [1, "[Circular]"]

    def test_shared_reference_is_not_circular(self):
        """The same object twice in one record is not a cycle."""
        shared = {"a": 1}
        loop = {"x": shared, "y": shared}
        loop["me"] = loop

        body = json.loads(safe_dumps(loop))

        assert body["x"] == {"a": 1}
        assert body["y"] == {"a": 1}
        assert body["me"] == "[Circular]"

    def test_unserializable_value_is_stringified(self):
        class Thing:
            def __str__(self):
                return "thing"

        assert json.loads(safe_dumps({"v": Thing()})) == {"v": "thing"}

    def test_value_whose_str_raises(self):
        class Bad:
            def __str__(self):
                raise RuntimeError("nope")

        assert json.loads(safe_dumps({"v": Bad()})) == {"v": "[Throws: nope]"}

    def test_datetime_and_bytes_values(self):
        when = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

        body = json.loads(safe_dumps({"at": when, "raw": b"abc"}))

        assert body == {"at": "2023-11-14T22:13:20+00:00", "raw": "abc"}

    def test_non_string_keys_in_cycle(self):
        data = {(1, 2): "tuple-key"}
        data["self"] = data

        body = json.loads(safe_dumps(data))

        assert body["(1, 2)"] == "tuple-key"
        assert body["self"] == "[Circular]"

    def test_deeply_nested_value_is_truncated(self):
        """Nesting past the recursion limit degrades instead of raising."""
        payload = {}
        inner = payload
        for _ in range(100_000):
            inner["child"] = {}
            inner = inner["child"]

        body = json.loads(safe_dumps({"msg": "x", "payload": payload}))

        assert body["msg"] == "x"
        depth = 0
        node = body["payload"]
        while isinstance(node, dict):
            node = node["child"]
            depth += 1
        assert node == "[Truncated]"
        assert depth == MAX_DEPTH - 1

    def test_deeply_nested_record_encodes(self):
        nested = []
        for _ in range(100_000):
            nested = [nested]

        event = encode({"msg": "deep", "payload": nested, "time": 1})

        assert event.timestamp_ms == 1
        assert json.loads(event.message)["msg"] == "deep"
        assert "[Truncated]" in event.message


class TestToMillis:
    """Tests for time conversion."""

    def test_naive_datetime_is_utc(self):
        assert to_millis(datetime(1970, 1, 1, 0, 0, 1)) == 1000

    def test_float_millis_truncate(self):
        assert to_millis(1700000000000.9) == 1700000000000

    def test_rejects_bool_and_none(self):
        assert to_millis(True) is None
        assert to_millis(None) is None

    def test_rejects_nan(self):
        assert to_millis(float("nan")) is None
