"""
Remote log-stream client abstraction.

This module provides a pluggable client interface supporting:
- AWS CloudWatch Logs (production)
- In-memory service (for testing)

Invariants:
    - Writes are accepted only with the current sequence token
    - Errors are raised as RemoteLogError subclasses
    - Retryable failures carry ``retryable=True``

How to change safely:
    - New backends must implement the RemoteLogClient protocol
    - Map backend errors onto the existing taxonomy before adding new kinds
"""

from .base import (
    InvalidSequenceTokenError,
    LogStreamInfo,
    PutResult,
    RemoteLogClient,
    RemoteLogError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    ThrottledError,
    create_remote_client,
)
from .cloudwatch import CloudWatchLogsClient
from .memory import InMemoryLogService

__all__ = [
    # Protocol and types
    "RemoteLogClient",
    "LogStreamInfo",
    "PutResult",
    "RemoteLogError",
    "ResourceNotFoundError",
    "ResourceAlreadyExistsError",
    "InvalidSequenceTokenError",
    "ThrottledError",
    # Factory
    "create_remote_client",
    # Implementations
    "CloudWatchLogsClient",
    "InMemoryLogService",
]
