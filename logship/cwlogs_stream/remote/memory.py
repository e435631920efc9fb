"""
In-memory log-stream service for testing.

This module provides a local stand-in for CloudWatch Logs for:
- Unit tests of the delivery engine
- Reproducing remote races (stale tokens, throttling, lagging creates)
- Local development without AWS credentials

Invariants:
    - All data is lost on process exit
    - Enforces the same sequence-token contract as the real service
    - Every call is recorded, in order, in ``calls``

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the RemoteLogClient protocol
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Sequence

from .base import (
    InvalidSequenceTokenError,
    LogStreamInfo,
    PutResult,
    RemoteLogError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class RemoteCall:
    """One recorded call against the service."""

    operation: str
    args: Dict[str, Any]
    at: float


@dataclass
class InMemoryStream:
    """In-memory stream storage."""

    name: str
    events: List[Dict[str, Any]] = field(default_factory=list)
    token: Optional[str] = None
    hidden_describes: int = 0


class InMemoryLogService:
    """In-memory implementation of RemoteLogClient for testing.

    Tokens are issued as increasing decimal strings. A new stream has no
    token; its first write must omit one.

    Attributes:
        calls: Every call made, in order
        create_visibility_lag: Number of describe calls a newly created
            stream stays invisible for (simulates eventual consistency)

    Example:
        >>> service = InMemoryLogService()
        >>> service.fail_next("put_events", ThrottledError("slow down"), times=2)
        >>> engine = DeliveryEngine(service, config)
    """

    def __init__(self, create_visibility_lag: int = 0) -> None:
        self.create_visibility_lag = create_visibility_lag
        self.calls: List[RemoteCall] = []
        self._groups: Dict[str, Dict[str, InMemoryStream]] = {}
        self._failures: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._token_counter = 0
        self._closed = False

    async def create_group(self, group_name: str) -> None:
        self._record("create_group", group_name=group_name)
        if group_name in self._groups:
            raise ResourceAlreadyExistsError(f"Log group {group_name} already exists")
        self._groups[group_name] = {}

    async def create_stream(self, group_name: str, stream_name: str) -> None:
        self._record("create_stream", group_name=group_name, stream_name=stream_name)
        streams = self._group(group_name)
        if stream_name in streams:
            raise ResourceAlreadyExistsError(f"Log stream {stream_name} already exists")
        streams[stream_name] = InMemoryStream(
            name=stream_name,
            hidden_describes=self.create_visibility_lag,
        )

    async def describe_streams(
        self,
        group_name: str,
        stream_name_prefix: str,
    ) -> List[LogStreamInfo]:
        self._record(
            "describe_streams",
            group_name=group_name,
            stream_name_prefix=stream_name_prefix,
        )
        result = []
        for name in sorted(self._group(group_name)):
            stream = self._groups[group_name][name]
            if not name.startswith(stream_name_prefix):
                continue
            if stream.hidden_describes > 0:
                stream.hidden_describes -= 1
                continue
            result.append(LogStreamInfo(name=name, upload_sequence_token=stream.token))
        return result

    async def put_events(
        self,
        group_name: str,
        stream_name: str,
        events: Sequence[Any],
        sequence_token: Optional[str] = None,
    ) -> PutResult:
        self._record(
            "put_events",
            group_name=group_name,
            stream_name=stream_name,
            events=[e.to_dict() for e in events],
            sequence_token=sequence_token,
        )
        stream = self._stream(group_name, stream_name)
        if sequence_token != stream.token:
            raise InvalidSequenceTokenError(
                f"The given sequenceToken is invalid. The next expected "
                f"sequenceToken is: {stream.token}",
                expected_token=stream.token,
            )

        stream.events.extend(e.to_dict() for e in events)
        self._token_counter += 1
        stream.token = str(self._token_counter)
        return PutResult(next_sequence_token=stream.token)

    async def close(self) -> None:
        self._closed = True

    # Testing helpers

    def fail_next(self, operation: str, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``.

        The call is still recorded, then the error is raised before any state
        change.
        """
        for _ in range(times):
            self._failures[operation].append(error)

    def add_stream(
        self,
        group_name: str,
        stream_name: str,
        token: Optional[str] = None,
    ) -> InMemoryStream:
        """Create a group/stream directly, bypassing call recording."""
        streams = self._groups.setdefault(group_name, {})
        stream = streams.setdefault(stream_name, InMemoryStream(name=stream_name))
        stream.token = token
        return stream

    def advance_token(self, group_name: str, stream_name: str) -> str:
        """Simulate a foreign writer moving the stream's token forward."""
        stream = self._stream(group_name, stream_name)
        self._token_counter += 1
        stream.token = str(self._token_counter)
        return stream.token

    def get_events(self, group_name: str, stream_name: str) -> List[Dict[str, Any]]:
        """Get all events stored in a stream (testing helper)."""
        return list(self._stream(group_name, stream_name).events)

    def get_token(self, group_name: str, stream_name: str) -> Optional[str]:
        """Current token of a stream (testing helper)."""
        return self._stream(group_name, stream_name).token

    def operations(self) -> List[str]:
        """Names of every recorded call, in order."""
        return [c.operation for c in self.calls]

    def calls_for(self, operation: str) -> List[RemoteCall]:
        return [c for c in self.calls if c.operation == operation]

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _record(self, operation: str, **args: Any) -> None:
        if self._closed:
            raise RemoteLogError("Service client closed", code="NOT_CONNECTED")
        self.calls.append(
            RemoteCall(operation=operation, args=args, at=asyncio.get_running_loop().time())
        )
        logger.debug("In-memory log service call", extra={"operation": operation, **args})
        if self._failures[operation]:
            raise self._failures[operation].popleft()

    def _group(self, group_name: str) -> Dict[str, InMemoryStream]:
        if group_name not in self._groups:
            raise ResourceNotFoundError("The specified log group does not exist.")
        return self._groups[group_name]

    def _stream(self, group_name: str, stream_name: str) -> InMemoryStream:
        streams = self._group(group_name)
        if stream_name not in streams:
            raise ResourceNotFoundError("The specified log stream does not exist.")
        return streams[stream_name]
