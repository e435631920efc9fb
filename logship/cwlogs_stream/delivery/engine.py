"""
Delivery engine: the single-writer path from log records to the remote stream.

The DeliveryEngine accepts records from producers, encodes them, and writes
them one at a time to the remote log stream, presenting the sequence token
returned by the previous write. It drives all recovery:

    put_events ok              -> store returned token
    retryable error            -> wait, resend same event with same token
    invalid sequence token     -> invalidate, look the token up, wait, resend
    stream/group not found     -> invalidate, provision, wait, resend
    anything else              -> error sink, move on to the next record

Invariants:
    - One worker task per engine; at most one write in flight
    - Records are written in the order they were accepted
    - The token cache is written only by this engine
    - A record's pipeline (including retries) finishes before the next starts
    - accept() never raises because of remote failures

How to change safely:
    - Keep every await that touches the remote inside the worker task
    - Test new error kinds with InMemoryLogService.fail_next()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..remote.base import (
    InvalidSequenceTokenError,
    RemoteLogClient,
    RemoteLogError,
    ResourceNotFoundError,
)
from .encoder import WireEvent, encode
from .errors import ErrorSink, RetryExhaustedError, terminate_process
from .provisioner import StreamProvisioner
from .token_cache import SequenceTokenCache

logger = logging.getLogger(__name__)


class EngineState(Enum):
    """Write-path state of a DeliveryEngine."""

    NO_TOKEN = "no_token"
    HAS_TOKEN = "has_token"
    WRITING = "writing"
    AWAITING_TOKEN_REFRESH = "awaiting_token_refresh"


@dataclass
class EngineStats:
    """Counters describing what the engine has done so far."""

    accepted: int = 0
    delivered: int = 0
    failed: int = 0
    retries: int = 0
    token_lookups: int = 0
    stale_tokens: int = 0
    provisions: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class PendingWrite:
    """One write attempt: an event and the token it was sent with."""

    event: WireEvent
    token: Optional[str]


@dataclass
class _QueuedRecord:
    event: WireEvent
    done: Optional[asyncio.Future] = None


class _RetrySchedule:
    """Delay sequence for one record's retries."""

    def __init__(
        self,
        interval: float,
        multiplier: float,
        cap: float,
        max_retries: Optional[int],
    ) -> None:
        self._delay = interval
        self._multiplier = multiplier
        self._cap = max(cap, interval)
        self._max_retries = max_retries
        self.retries = 0

    def next_delay(self, error: BaseException) -> float:
        """Account for one retry and return how long to wait before it.

        Raises:
            RetryExhaustedError: If the retry budget is spent
        """
        self.retries += 1
        if self._max_retries is not None and self.retries > self._max_retries:
            raise RetryExhaustedError(self.retries, error) from error
        delay = self._delay
        self._delay = min(self._delay * self._multiplier, self._cap)
        return delay


class DeliveryEngine:
    """Delivers log records to one remote log stream, in order.

    Attributes:
        client: Remote log client (not owned; the caller closes it)
        config: StreamConfig for the target stream
        tokens: Sequence token cache for the stream
        provisioner: Creates the group/stream and looks up tokens
        on_error: Sink for unrecoverable failures
        instant_write_level: Severity threshold kept for batching; all
            records are currently written immediately

    Thread safety:
        accept() may be called from any thread. Everything else must run
        on the event loop the engine was started on.

    Example:
        >>> engine = DeliveryEngine(client, StreamConfig("my-app", "web-1"))
        >>> await engine.start()
        >>> engine.accept({"msg": "hello", "time": 1700000000000})
        >>> await engine.stop()
    """

    def __init__(
        self,
        client: RemoteLogClient,
        config: Any,
        on_error: Optional[ErrorSink] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            client: Remote log client
            config: StreamConfig instance
            on_error: Error sink (default: terminate the process)
            sleep: Coroutine used for retry delays

        Raises:
            ValueError: If the config names no group or stream
        """
        config.validate()
        self.client = client
        self.config = config
        self.group_name = config.group_name
        self.stream_name = config.stream_name
        self.instant_write_level = config.instant_write_level
        self.on_error: ErrorSink = on_error or terminate_process
        self.tokens = SequenceTokenCache()
        self.provisioner = StreamProvisioner(
            client,
            config.group_name,
            config.stream_name,
            verify_attempts=config.verify_attempts,
            verify_interval=config.verify_interval,
            sleep=sleep,
        )
        self.stats = EngineStats()

        self._sleep = sleep
        self._state = EngineState.NO_TOKEN
        self._queue: asyncio.Queue[_QueuedRecord] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._closed = False

    @property
    def state(self) -> EngineState:
        """Current write-path state."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        """Records accepted but not yet resolved."""
        return self._queue.qsize()

    # Producer side

    def accept(self, record: Mapping[str, Any]) -> bool:
        """Accept a record into the pipeline.

        Returns once the record is queued. Delivery happens later on the
        worker task; failures go to the error sink.

        Args:
            record: Field name to value mapping with a time field

        Returns:
            True if queued, False if the engine is stopped
        """
        if self._closed:
            logger.warning(
                "Record dropped, engine stopped",
                extra={"group": self.group_name, "stream": self.stream_name},
            )
            return False

        item = _QueuedRecord(event=encode(record, self.config.time_field))
        loop = self._loop
        if (
            loop is not None
            and loop.is_running()
            and threading.get_ident() != self._loop_thread
        ):
            loop.call_soon_threadsafe(self._enqueue, item)
        else:
            self._enqueue(item)
        return True

    async def submit(self, record: Mapping[str, Any]) -> bool:
        """Queue a record and wait until it is resolved.

        Returns:
            True if the remote accepted the record, False if it was
            forwarded to the error sink (or the engine is stopped)

        Raises:
            RuntimeError: If the engine has not been started
        """
        if self._closed:
            return False
        if not self.is_running:
            raise RuntimeError("Delivery engine not started")
        done = asyncio.get_running_loop().create_future()
        self._enqueue(_QueuedRecord(event=encode(record, self.config.time_field), done=done))
        return await done

    def _enqueue(self, item: _QueuedRecord) -> None:
        self.stats.accepted += 1
        self._queue.put_nowait(item)

    # Lifecycle

    async def start(self) -> None:
        """Start the worker task. Records accepted earlier are delivered first."""
        if self.is_running:
            logger.warning("Delivery engine already running")
            return

        self._closed = False
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._worker = asyncio.create_task(self._run())
        logger.info(
            "Delivery engine started",
            extra={"group": self.group_name, "stream": self.stream_name},
        )

    async def join(self) -> None:
        """Wait until every accepted record has been resolved."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Stop the engine.

        Args:
            drain: Wait for queued records to resolve before stopping
        """
        if drain and self.is_running:
            await self.join()

        self._closed = True
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item.done is not None and not item.done.done():
                item.done.set_result(False)
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.warning(
                f"Delivery engine stopped with {dropped} undelivered records",
                extra={"group": self.group_name, "stream": self.stream_name},
            )

        logger.info(
            "Delivery engine stopped",
            extra={"group": self.group_name, "stream": self.stream_name, **self.stats.to_dict()},
        )

    # Worker

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            delivered = False
            try:
                delivered = await self.deliver(item.event)
            finally:
                if item.done is not None and not item.done.done():
                    item.done.set_result(delivered)
                self._queue.task_done()

    async def deliver(self, event: WireEvent) -> bool:
        """Run one event through the full write pipeline.

        Returns:
            True if delivered, False if the failure went to the error sink
        """
        try:
            await self._write(event)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stats.failed += 1
            self._state = (
                EngineState.HAS_TOKEN if self.tokens.is_known else EngineState.NO_TOKEN
            )
            self._report(e)
            return False

    async def _write(self, event: WireEvent) -> None:
        schedule = _RetrySchedule(
            interval=self.config.write_interval,
            multiplier=self.config.backoff_multiplier,
            cap=self.config.max_write_interval,
            max_retries=self.config.max_retries,
        )

        while True:
            if not self.tokens.is_known:
                await self._refresh_token(schedule)

            pending = PendingWrite(event=event, token=self.tokens.get())
            self._state = EngineState.WRITING
            try:
                result = await self.client.put_events(
                    self.group_name,
                    self.stream_name,
                    [pending.event],
                    pending.token,
                )
            except InvalidSequenceTokenError as e:
                self.stats.stale_tokens += 1
                logger.info(
                    "Sequence token rejected, refreshing",
                    extra={
                        "group": self.group_name,
                        "stream": self.stream_name,
                        "token": pending.token,
                    },
                )
                self.tokens.invalidate()
                self._state = EngineState.AWAITING_TOKEN_REFRESH
                delay = schedule.next_delay(e)
                await self._refresh_token(schedule)
            except ResourceNotFoundError as e:
                logger.warning(
                    "Log stream disappeared, provisioning again",
                    extra={"group": self.group_name, "stream": self.stream_name},
                )
                self.tokens.invalidate()
                self._state = EngineState.NO_TOKEN
                delay = schedule.next_delay(e)
                await self._refresh_token(schedule)
            except RemoteLogError as e:
                if not e.retryable:
                    raise
                self.stats.retries += 1
                delay = schedule.next_delay(e)
                logger.warning(
                    f"Retryable put_events failure: {e}",
                    extra={
                        "group": self.group_name,
                        "stream": self.stream_name,
                        "code": e.code,
                        "retry": schedule.retries,
                        "delay": delay,
                    },
                )
            else:
                self.tokens.set(result.next_sequence_token)
                self._state = EngineState.HAS_TOKEN
                self.stats.delivered += 1
                logger.debug(
                    "Event delivered",
                    extra={
                        "group": self.group_name,
                        "stream": self.stream_name,
                        "timestamp_ms": event.timestamp_ms,
                        "next_token": result.next_sequence_token,
                    },
                )
                return

            await self._sleep(delay)

    async def _refresh_token(self, schedule: _RetrySchedule) -> None:
        """Provision/look up the stream until a token is known."""
        if self._state is not EngineState.AWAITING_TOKEN_REFRESH:
            self._state = EngineState.NO_TOKEN

        while True:
            self.stats.token_lookups += 1
            try:
                token = await self.provisioner.ensure()
            except RemoteLogError as e:
                if not e.retryable:
                    raise
                self.stats.retries += 1
                delay = schedule.next_delay(e)
                logger.warning(
                    f"Retryable failure while looking up sequence token: {e}",
                    extra={"group": self.group_name, "stream": self.stream_name, "delay": delay},
                )
                await self._sleep(delay)
                continue
            finally:
                self.stats.provisions = self.provisioner.streams_created

            self.tokens.set(token)
            self._state = EngineState.HAS_TOKEN
            return

    def _report(self, error: BaseException) -> None:
        try:
            self.on_error(error)
        except Exception:
            logger.exception("Error sink raised while handling a delivery failure")
