"""
Unit tests for the logging handler.
"""

import logging
from datetime import datetime, timezone

import pytest

from logship.cwlogs_stream.handler import CloudWatchLogsHandler, bunyan_level


class RecordingEngine:
    """Captures accepted records."""

    def __init__(self):
        self.records = []

    def accept(self, record):
        self.records.append(record)
        return True


class TestCloudWatchLogsHandler:
    """Tests for CloudWatchLogsHandler."""

    @pytest.fixture
    def engine(self):
        return RecordingEngine()

    @pytest.fixture
    def app_logger(self, engine):
        log = logging.getLogger("tests.handler.app")
        log.setLevel(logging.DEBUG)
        log.propagate = False
        handler = CloudWatchLogsHandler(engine)
        log.addHandler(handler)
        yield log
        log.removeHandler(handler)

    def test_forwards_bunyan_shaped_record(self, engine, app_logger):
        app_logger.info("user %s logged in", "alice", extra={"req_id": "r-1"})

        assert len(engine.records) == 1
        record = engine.records[0]
        assert record["msg"] == "user alice logged in"
        assert record["name"] == "tests.handler.app"
        assert record["level"] == 30
        assert record["req_id"] == "r-1"
        assert record["v"] == 0
        assert isinstance(record["time"], datetime)
        assert record["time"].tzinfo == timezone.utc
        assert "args" not in record

    def test_includes_exception_text(self, engine, app_logger):
        try:
            raise ValueError("bad input")
        except ValueError:
            app_logger.exception("failed")

        assert "ValueError: bad input" in engine.records[0]["err"]
        assert engine.records[0]["level"] == 50

    def test_ignores_own_and_botocore_loggers(self, engine):
        handler = CloudWatchLogsHandler(engine)
        for name in ("logship.cwlogs_stream.delivery.engine", "botocore.endpoint"):
            record = logging.LogRecord(name, logging.INFO, __file__, 1, "x", (), None)
            handler.handle(record)

        assert engine.records == []

    def test_respects_level(self, engine):
        handler = CloudWatchLogsHandler(engine, level=logging.WARNING)
        handler.handle(logging.LogRecord("app", logging.INFO, __file__, 1, "x", (), None))
        handler.handle(logging.LogRecord("app", logging.ERROR, __file__, 1, "y", (), None))

        assert [r["msg"] for r in engine.records] == ["y"]


class TestBunyanLevel:
    @pytest.mark.parametrize(
        "levelno,expected",
        [(5, 10), (10, 20), (20, 30), (25, 30), (30, 40), (40, 50), (50, 60)],
    )
    def test_mapping(self, levelno, expected):
        assert bunyan_level(levelno) == expected
