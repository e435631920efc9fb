"""
Configuration management for the CloudWatch Logs forwarder.

All configuration is done via environment variables or constructor
arguments - no config files. This module provides typed configuration
classes with validation.

Invariants:
    - group_name and stream_name are required and never defaulted
    - All other settings have defaults matching the original write contract
      (fixed retry delay of 0, indefinite retry)
    - Secrets are never logged

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names stable
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _optional_int(value: str | None) -> int | None:
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass(frozen=True)
class StreamConfig:
    """Target stream and write-path behaviour.

    Attributes:
        group_name: Log group name (required)
        stream_name: Log stream name (required)
        write_interval: Seconds to wait before resending after a retryable
            or stale-token failure
        backoff_multiplier: Growth factor applied to the delay after each
            retry of the same record (1.0 keeps it fixed)
        max_write_interval: Upper bound for the grown delay
        max_retries: Retries allowed per record (None retries forever)
        instant_write_level: Severity at or above which records are written
            immediately (bunyan scale; reserved for batching)
        time_field: Record field carrying the event time
        verify_attempts: Describes allowed to confirm a newly created stream
        verify_interval: Seconds between confirmation describes
    """

    group_name: str
    stream_name: str
    write_interval: float = 0.0
    backoff_multiplier: float = 1.0
    max_write_interval: float = 30.0
    max_retries: int | None = None
    instant_write_level: int = 40
    time_field: str = "time"
    verify_attempts: int = 3
    verify_interval: float = 0.5

    @classmethod
    def from_env(cls) -> StreamConfig:
        """Load configuration from environment variables."""
        return cls(
            group_name=os.getenv("CWLOGS_GROUP_NAME", ""),
            stream_name=os.getenv("CWLOGS_STREAM_NAME", ""),
            write_interval=float(os.getenv("CWLOGS_WRITE_INTERVAL", "0")),
            backoff_multiplier=float(os.getenv("CWLOGS_BACKOFF_MULTIPLIER", "1.0")),
            max_write_interval=float(os.getenv("CWLOGS_MAX_WRITE_INTERVAL", "30")),
            max_retries=_optional_int(os.getenv("CWLOGS_MAX_RETRIES")),
            instant_write_level=int(os.getenv("CWLOGS_INSTANT_WRITE_LEVEL", "40")),
            time_field=os.getenv("CWLOGS_TIME_FIELD", "time"),
            verify_attempts=int(os.getenv("CWLOGS_VERIFY_ATTEMPTS", "3")),
            verify_interval=float(os.getenv("CWLOGS_VERIFY_INTERVAL", "0.5")),
        )

    def validate(self) -> None:
        """Validate settings.

        Raises:
            ValueError: If a setting is missing or out of range.
        """
        if not self.group_name:
            raise ValueError("CWLOGS_GROUP_NAME (group_name) is required")
        if not self.stream_name:
            raise ValueError("CWLOGS_STREAM_NAME (stream_name) is required")
        if self.write_interval < 0:
            raise ValueError("write_interval must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1.0")
        if self.max_write_interval < 0:
            raise ValueError("max_write_interval must not be negative")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.verify_attempts < 1:
            raise ValueError("verify_attempts must be at least 1")
        if self.verify_interval < 0:
            raise ValueError("verify_interval must not be negative")


@dataclass(frozen=True)
class CloudWatchConfig:
    """AWS CloudWatch Logs connection configuration.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint URL (for LocalStack testing)
        request_timeout: Seconds before a single API call is abandoned
    """

    region: str = "us-east-1"
    endpoint_url: str | None = None
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> CloudWatchConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("CWLOGS_ENDPOINT_URL"),
            request_timeout=float(os.getenv("CWLOGS_REQUEST_TIMEOUT", "30")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration for the forwarder process itself.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ForwarderConfig:
    """Complete forwarder configuration.

    Attributes:
        stream: Target stream and write-path settings
        cloudwatch: CloudWatch Logs connection settings
        observability: Logging settings
    """

    stream: StreamConfig
    cloudwatch: CloudWatchConfig = field(default_factory=CloudWatchConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ForwarderConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            stream=StreamConfig.from_env(),
            cloudwatch=CloudWatchConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        self.stream.validate()
        if self.cloudwatch.request_timeout <= 0:
            raise ValueError("CWLOGS_REQUEST_TIMEOUT must be positive")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Forwarder configuration loaded",
            extra={
                "group": self.stream.group_name,
                "stream": self.stream.stream_name,
                "write_interval": self.stream.write_interval,
                "max_retries": self.stream.max_retries,
                "region": self.cloudwatch.region,
                "endpoint": self.cloudwatch.endpoint_url or "AWS",
                "log_level": self.observability.log_level,
            },
        )
