"""
Stream provisioning for the delivery engine.

Makes sure the target log group and log stream exist and returns the token
the next write must present.

Algorithm:
    1. describe_streams(group, prefix=stream)
    2. group missing      -> create group, create stream, confirm
    3. no matching stream -> create stream, confirm
    4. stream listed      -> its upload token is current, done

Confirmation re-describes the stream after creating it. CloudWatch Logs may
acknowledge a create before the stream is visible to DescribeLogStreams, so
the stream is only trusted once a describe lists it. Confirmation never
issues a second create.

Invariants:
    - Only an exact stream-name match counts (prefix listings include siblings)
    - "Already exists" on create counts as success
    - Errors other than those above propagate to the caller
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..remote.base import (
    LogStreamInfo,
    RemoteLogClient,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from .errors import ProvisioningError

logger = logging.getLogger(__name__)


class StreamProvisioner:
    """Ensures a (group, stream) pair exists and looks up its token.

    Attributes:
        client: Remote log client
        group_name: Target log group
        stream_name: Target log stream
        verify_attempts: Describes allowed to confirm a newly created stream
        verify_interval: Seconds between confirmation describes
        groups_created: Number of create_group calls issued
        streams_created: Number of create_stream calls issued

    Example:
        >>> provisioner = StreamProvisioner(client, "my-app", "web-1")
        >>> token = await provisioner.ensure()
    """

    def __init__(
        self,
        client: RemoteLogClient,
        group_name: str,
        stream_name: str,
        verify_attempts: int = 3,
        verify_interval: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if verify_attempts < 1:
            raise ValueError("verify_attempts must be at least 1")
        self.client = client
        self.group_name = group_name
        self.stream_name = stream_name
        self.verify_attempts = verify_attempts
        self.verify_interval = verify_interval
        self._sleep = sleep
        self.groups_created = 0
        self.streams_created = 0

    async def lookup(self) -> Optional[LogStreamInfo]:
        """Describe the stream.

        Returns:
            The exactly matching stream, or None if the group has no such stream

        Raises:
            ResourceNotFoundError: If the group does not exist
            RemoteLogError: For other failures
        """
        streams = await self.client.describe_streams(self.group_name, self.stream_name)
        for info in streams:
            if info.name == self.stream_name:
                return info
        return None

    async def ensure(self) -> Optional[str]:
        """Make sure the stream exists and return its current token.

        Returns:
            Token for the next write (None for an empty stream)

        Raises:
            ProvisioningError: If a created stream never becomes visible
            RemoteLogError: For any other remote failure
        """
        try:
            info = await self.lookup()
        except ResourceNotFoundError:
            logger.info(
                "Log group not found, creating group and stream",
                extra={"group": self.group_name, "stream": self.stream_name},
            )
            await self._create_group()
            await self._create_stream()
            return await self._confirm()

        if info is None:
            logger.info(
                "Log stream not found, creating stream",
                extra={"group": self.group_name, "stream": self.stream_name},
            )
            await self._create_stream()
            return await self._confirm()

        return info.upload_sequence_token

    async def _create_group(self) -> None:
        self.groups_created += 1
        try:
            await self.client.create_group(self.group_name)
        except ResourceAlreadyExistsError:
            logger.debug("Log group already exists", extra={"group": self.group_name})

    async def _create_stream(self) -> None:
        self.streams_created += 1
        try:
            await self.client.create_stream(self.group_name, self.stream_name)
        except ResourceAlreadyExistsError:
            logger.debug(
                "Log stream already exists",
                extra={"group": self.group_name, "stream": self.stream_name},
            )

    async def _confirm(self) -> Optional[str]:
        for attempt in range(self.verify_attempts):
            if attempt:
                await self._sleep(self.verify_interval)
            try:
                info = await self.lookup()
            except ResourceNotFoundError:
                info = None
            if info is not None:
                logger.info(
                    "Log stream provisioned",
                    extra={
                        "group": self.group_name,
                        "stream": self.stream_name,
                        "describes": attempt + 1,
                    },
                )
                return info.upload_sequence_token
            logger.debug(
                "Created log stream not visible yet",
                extra={"group": self.group_name, "stream": self.stream_name, "attempt": attempt + 1},
            )

        raise ProvisioningError(
            f"Log stream {self.group_name}/{self.stream_name} not visible after "
            f"{self.verify_attempts} describe attempts",
            group_name=self.group_name,
            stream_name=self.stream_name,
        )
