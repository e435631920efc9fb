"""
AWS CloudWatch Logs backend for the remote log-stream client.

This module talks to the CloudWatch Logs API through aiobotocore and maps
botocore failures onto the RemoteLogError taxonomy used by the engine.

Invariants:
    - Every call is bounded by config.request_timeout
    - Throttling, 5xx and connection failures are reported as retryable
    - A missing token is omitted from PutLogEvents, never sent as null

How to change safely:
    - Test with LocalStack before deploying to AWS
    - Add new error codes to the classification tables, not to callers
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from aiobotocore.session import get_session
from botocore.exceptions import ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from .base import (
    InvalidSequenceTokenError,
    LogStreamInfo,
    PutResult,
    RemoteLogError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    ThrottledError,
)

logger = logging.getLogger(__name__)

RETRYABLE_CODES = frozenset(
    {
        "ThrottlingException",
        "Throttling",
        "ServiceUnavailableException",
        "OperationAbortedException",
        "LimitExceededException",
        "RequestTimeout",
        "RequestTimeoutException",
        "InternalFailure",
        "ServiceUnavailable",
    }
)


def classify_client_error(error: ClientError) -> RemoteLogError:
    """Map a botocore ClientError onto the remote error taxonomy.

    Args:
        error: Error raised by an aiobotocore call

    Returns:
        The matching RemoteLogError subclass instance
    """
    err = error.response.get("Error", {})
    code = err.get("Code", "")
    message = err.get("Message") or str(error)
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)

    if code == "ResourceNotFoundException":
        return ResourceNotFoundError(message)
    if code == "ResourceAlreadyExistsException":
        return ResourceAlreadyExistsError(message)
    if code == "InvalidSequenceTokenException":
        return InvalidSequenceTokenError(
            message,
            expected_token=error.response.get("expectedSequenceToken"),
        )
    if code in RETRYABLE_CODES:
        return ThrottledError(message, code=code)
    if status >= 500:
        return RemoteLogError(message, code=code or str(status), retryable=True)
    return RemoteLogError(message, code=code or None)


class CloudWatchLogsClient:
    """CloudWatch Logs implementation of the RemoteLogClient protocol.

    Uses aiobotocore for async operations with AWS.

    Attributes:
        config: CloudWatchConfig instance

    Example:
        >>> client = CloudWatchLogsClient(CloudWatchConfig(region="eu-west-1"))
        >>> await client.connect()
        >>> await client.create_group("my-app")
    """

    def __init__(self, config: Any, client: Any = None) -> None:
        """Initialize the CloudWatch Logs client.

        Args:
            config: CloudWatchConfig instance
            client: Already-open aiobotocore ``logs`` client (skips connect())
        """
        self.config = config
        self._session = None
        self._client_ctx = None
        self._client = client

    @property
    def is_connected(self) -> bool:
        """Whether a logs client is available."""
        return self._client is not None

    async def connect(self) -> None:
        """Open the aiobotocore client.

        Raises:
            RemoteLogError: If the client cannot be created
        """
        if self._client is not None:
            return

        try:
            self._session = get_session()
            client_config = {"region_name": self.config.region}
            if self.config.endpoint_url:
                client_config["endpoint_url"] = self.config.endpoint_url

            self._client_ctx = self._session.create_client("logs", **client_config)
            self._client = await self._client_ctx.__aenter__()
        except BotoConnectionError as e:
            raise RemoteLogError(f"Failed to connect to CloudWatch Logs: {e}") from e

        logger.info(
            "Connected to CloudWatch Logs",
            extra={
                "region": self.config.region,
                "endpoint": self.config.endpoint_url or "AWS",
            },
        )

    async def close(self) -> None:
        """Close the aiobotocore client if this instance opened it."""
        if self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing CloudWatch Logs client: {e}")
            self._client_ctx = None
            self._client = None
        self._session = None

    async def create_group(self, group_name: str) -> None:
        await self._call("create_log_group", logGroupName=group_name)
        logger.info("Created log group", extra={"group": group_name})

    async def create_stream(self, group_name: str, stream_name: str) -> None:
        await self._call(
            "create_log_stream",
            logGroupName=group_name,
            logStreamName=stream_name,
        )
        logger.info("Created log stream", extra={"group": group_name, "stream": stream_name})

    async def describe_streams(
        self,
        group_name: str,
        stream_name_prefix: str,
    ) -> list[LogStreamInfo]:
        response = await self._call(
            "describe_log_streams",
            logGroupName=group_name,
            logStreamNamePrefix=stream_name_prefix,
        )
        return [LogStreamInfo.from_dict(s) for s in response.get("logStreams", [])]

    async def put_events(
        self,
        group_name: str,
        stream_name: str,
        events: Sequence[Any],
        sequence_token: str | None = None,
    ) -> PutResult:
        kwargs: dict[str, Any] = {
            "logGroupName": group_name,
            "logStreamName": stream_name,
            "logEvents": [e.to_dict() for e in events],
        }
        if sequence_token is not None:
            kwargs["sequenceToken"] = sequence_token

        response = await self._call("put_log_events", **kwargs)

        rejected = response.get("rejectedLogEventsInfo")
        if rejected:
            logger.warning(
                "CloudWatch Logs rejected events",
                extra={"group": group_name, "stream": stream_name, "rejected": rejected},
            )
        return PutResult(
            next_sequence_token=response.get("nextSequenceToken"),
            rejected=rejected,
        )

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        """Invoke one logs API operation with timeout and error mapping."""
        if self._client is None:
            raise RemoteLogError("Not connected to CloudWatch Logs", code="NOT_CONNECTED")

        try:
            return await asyncio.wait_for(
                getattr(self._client, operation)(**kwargs),
                timeout=self.config.request_timeout,
            )
        except asyncio.TimeoutError:
            raise ThrottledError(f"CloudWatch Logs {operation} timed out", code="RequestTimeout")
        except ClientError as e:
            raise classify_client_error(e) from e
        except (BotoConnectionError, HTTPClientError) as e:
            raise RemoteLogError(
                f"CloudWatch Logs {operation} connection failed: {e}",
                code="ConnectionError",
                retryable=True,
            ) from e
