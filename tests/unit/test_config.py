"""
Unit tests for configuration loading and validation.
"""

import pytest

from logship.cwlogs_stream.config import (
    CloudWatchConfig,
    ForwarderConfig,
    ObservabilityConfig,
    StreamConfig,
)


class TestStreamConfig:
    """Tests for StreamConfig."""

    def test_defaults(self):
        config = StreamConfig(group_name="app", stream_name="web-1")

        assert config.write_interval == 0.0
        assert config.backoff_multiplier == 1.0
        assert config.max_retries is None
        assert config.instant_write_level == 40
        assert config.time_field == "time"
        config.validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CWLOGS_GROUP_NAME", "app")
        monkeypatch.setenv("CWLOGS_STREAM_NAME", "web-1")
        monkeypatch.setenv("CWLOGS_WRITE_INTERVAL", "0.5")
        monkeypatch.setenv("CWLOGS_MAX_RETRIES", "4")
        monkeypatch.setenv("CWLOGS_TIME_FIELD", "ts")

        config = StreamConfig.from_env()

        assert config.group_name == "app"
        assert config.stream_name == "web-1"
        assert config.write_interval == 0.5
        assert config.max_retries == 4
        assert config.time_field == "ts"

    def test_blank_max_retries_means_forever(self, monkeypatch):
        monkeypatch.setenv("CWLOGS_MAX_RETRIES", "")

        assert StreamConfig.from_env().max_retries is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"group_name": ""},
            {"stream_name": ""},
            {"write_interval": -1},
            {"backoff_multiplier": 0.5},
            {"max_retries": -1},
            {"verify_attempts": 0},
        ],
    )
    def test_validate_rejects(self, overrides):
        values = {"group_name": "app", "stream_name": "web-1", **overrides}

        with pytest.raises(ValueError):
            StreamConfig(**values).validate()


class TestForwarderConfig:
    """Tests for ForwarderConfig."""

    def test_from_env_requires_names(self, monkeypatch):
        monkeypatch.delenv("CWLOGS_GROUP_NAME", raising=False)
        monkeypatch.delenv("CWLOGS_STREAM_NAME", raising=False)

        with pytest.raises(ValueError, match="CWLOGS_GROUP_NAME"):
            ForwarderConfig.from_env()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CWLOGS_GROUP_NAME", "app")
        monkeypatch.setenv("CWLOGS_STREAM_NAME", "web-1")
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        monkeypatch.setenv("CWLOGS_ENDPOINT_URL", "http://localhost:4566")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ForwarderConfig.from_env()

        assert config.cloudwatch.region == "eu-west-1"
        assert config.cloudwatch.endpoint_url == "http://localhost:4566"
        assert config.observability.log_format == "text"

    def test_rejects_unknown_log_format(self):
        config = ForwarderConfig(
            stream=StreamConfig(group_name="app", stream_name="web-1"),
            observability=ObservabilityConfig(log_format="xml"),
        )

        with pytest.raises(ValueError, match="LOG_FORMAT"):
            config.validate()

    def test_rejects_non_positive_timeout(self):
        config = ForwarderConfig(
            stream=StreamConfig(group_name="app", stream_name="web-1"),
            cloudwatch=CloudWatchConfig(request_timeout=0),
        )

        with pytest.raises(ValueError):
            config.validate()
