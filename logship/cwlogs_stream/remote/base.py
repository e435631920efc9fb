"""
Base protocol and types for the remote log-stream abstraction.

This module defines the RemoteLogClient protocol that every backend must
implement, along with the result types and the error taxonomy the delivery
engine uses to decide between retrying, refreshing, provisioning and giving up.

Invariants:
    - A stream is identified by (group_name, stream_name)
    - put_events succeeds only with the token returned by the previous write
    - Errors are classified by type, never by message text

How to change safely:
    - Protocol changes require updating all implementations
    - New error kinds must subclass RemoteLogError
    - Keep retryable classification in the backend, not in the engine
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import CloudWatchConfig
    from ..delivery.encoder import WireEvent

logger = logging.getLogger(__name__)


class RemoteLogError(Exception):
    """Base exception for remote log-stream operations.

    Attributes:
        message: Error message
        code: Remote error code for programmatic handling
        retryable: Whether the same call may succeed if reissued unchanged
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "REMOTE_ERROR"
        self.retryable = retryable


class ResourceNotFoundError(RemoteLogError):
    """The log group or log stream does not exist."""

    def __init__(self, message: str, code: str = "ResourceNotFoundException") -> None:
        super().__init__(message, code=code)


class ResourceAlreadyExistsError(RemoteLogError):
    """A create call targeted a group or stream that already exists."""

    def __init__(self, message: str, code: str = "ResourceAlreadyExistsException") -> None:
        super().__init__(message, code=code)


class InvalidSequenceTokenError(RemoteLogError):
    """The presented sequence token is not the one the remote expects.

    Attributes:
        expected_token: Token the remote reported as current, if any
    """

    def __init__(
        self,
        message: str,
        expected_token: Optional[str] = None,
        code: str = "InvalidSequenceTokenException",
    ) -> None:
        super().__init__(message, code=code)
        self.expected_token = expected_token


class ThrottledError(RemoteLogError):
    """The remote is throttling or temporarily unavailable."""

    def __init__(self, message: str, code: str = "ThrottlingException") -> None:
        super().__init__(message, code=code, retryable=True)


@dataclass(frozen=True)
class LogStreamInfo:
    """One entry of a describe_streams listing.

    Attributes:
        name: Stream name
        upload_sequence_token: Token the next write must present (None for an
            empty stream)
    """

    name: str
    upload_sequence_token: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LogStreamInfo:
        """Create from a describe response entry."""
        return cls(
            name=data["logStreamName"],
            upload_sequence_token=data.get("uploadSequenceToken"),
        )


@dataclass(frozen=True)
class PutResult:
    """Outcome of an accepted put_events call."""

    next_sequence_token: Optional[str]
    rejected: Optional[Dict[str, Any]] = None


@runtime_checkable
class RemoteLogClient(Protocol):
    """Protocol for remote append-only log-stream services.

    Ordering contract:
        - Each accepted write returns the token for the next write
        - A write presenting any other token fails with InvalidSequenceTokenError

    Example:
        >>> client = CloudWatchLogsClient(config)
        >>> await client.connect()
        >>> streams = await client.describe_streams("app", "web-1")
        >>> result = await client.put_events("app", "web-1", [event], None)
    """

    @abstractmethod
    async def create_group(self, group_name: str) -> None:
        """Create a log group.

        Raises:
            ResourceAlreadyExistsError: If the group exists
            RemoteLogError: For other failures
        """
        ...

    @abstractmethod
    async def create_stream(self, group_name: str, stream_name: str) -> None:
        """Create a log stream inside an existing group.

        Raises:
            ResourceNotFoundError: If the group does not exist
            ResourceAlreadyExistsError: If the stream exists
            RemoteLogError: For other failures
        """
        ...

    @abstractmethod
    async def describe_streams(
        self,
        group_name: str,
        stream_name_prefix: str,
    ) -> List[LogStreamInfo]:
        """List streams whose name starts with the prefix.

        Returns:
            Streams in the order the remote reports them

        Raises:
            ResourceNotFoundError: If the group does not exist
            RemoteLogError: For other failures
        """
        ...

    @abstractmethod
    async def put_events(
        self,
        group_name: str,
        stream_name: str,
        events: Sequence["WireEvent"],
        sequence_token: Optional[str] = None,
    ) -> PutResult:
        """Append events to a stream.

        Args:
            group_name: Log group name
            stream_name: Log stream name
            events: Events in timestamp order
            sequence_token: Token from the previous write (None for a new stream)

        Returns:
            PutResult carrying the token for the next write

        Raises:
            InvalidSequenceTokenError: If the token is stale
            ResourceNotFoundError: If the group or stream is missing
            RemoteLogError: For other failures (check ``retryable``)
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""
        ...


def create_remote_client(config: "CloudWatchConfig") -> RemoteLogClient:
    """Factory function to create a remote client from configuration.

    Args:
        config: CloudWatch connection configuration

    Returns:
        A CloudWatchLogsClient (call ``connect()`` before use)
    """
    from .cloudwatch import CloudWatchLogsClient

    return CloudWatchLogsClient(config)
