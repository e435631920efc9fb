"""
cwlogs-stream - Command line forwarder.

Reads newline-delimited JSON log records (for example bunyan output) from
stdin and forwards each one to a CloudWatch Logs stream.

Usage:
    my-app | python -m logship.cwlogs_stream.main --group my-app --stream web-1

Configuration comes from environment variables (see config.py); command
line options override them.

Invariants:
    - Records are forwarded in input order
    - On EOF or SIGTERM/SIGINT the queue is drained before exit
    - Lines that are not JSON objects are forwarded as {"msg": line}

How to change safely:
    - Keep stdout free of output; it may be piped onwards
    - Test shutdown with both EOF and signals
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import signal
import sys
import threading
import time
from typing import Any, Dict, Optional, Sequence, TextIO

import json_log_formatter

from .config import CloudWatchConfig, ForwarderConfig, ObservabilityConfig, StreamConfig
from .delivery import DeliveryEngine, ErrorSink
from .remote import RemoteLogClient, create_remote_client

logger = logging.getLogger(__name__)


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # stdout may be piped onwards, so log to stderr
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def parse_line(line: str) -> Optional[Dict[str, Any]]:
    """Turn one input line into a record.

    Returns:
        The decoded JSON object, a ``{"msg", "time"}`` wrapper for other
        text, or None for blank lines
    """
    text = line.rstrip("\r\n")
    if not text.strip():
        return None
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        value = None
    if isinstance(value, dict):
        return value
    return {"msg": text, "time": int(time.time() * 1000)}


def _read_lines(
    source: TextIO,
    loop: asyncio.AbstractEventLoop,
    lines: asyncio.Queue[str],
) -> None:
    """Reader thread body. Puts each line of ``source`` on ``lines``; "" marks EOF."""
    try:
        for line in iter(source.readline, ""):
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(lines.put_nowait, line)
    except Exception:
        logger.exception("Failed reading input")
    if not loop.is_closed():
        loop.call_soon_threadsafe(lines.put_nowait, "")


class Forwarder:
    """Runs a DeliveryEngine fed from a line-oriented text stream.

    Attributes:
        config: Forwarder configuration
        engine: Delivery engine (created in start())

    Example:
        >>> forwarder = Forwarder(ForwarderConfig.from_env())
        >>> await forwarder.start()
        >>> await forwarder.forward(sys.stdin)
        >>> await forwarder.stop()
    """

    def __init__(
        self,
        config: ForwarderConfig,
        client: Optional[RemoteLogClient] = None,
        on_error: Optional[ErrorSink] = None,
    ) -> None:
        """Initialize the forwarder.

        Args:
            config: Forwarder configuration
            client: Remote client to use (created from config if omitted,
                in which case the forwarder also closes it)
            on_error: Error sink passed to the engine
        """
        self.config = config
        self.client = client
        self.on_error = on_error
        self.engine: Optional[DeliveryEngine] = None
        self._owns_client = client is None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Connect the remote client and start the engine."""
        if self.engine is not None:
            logger.warning("Forwarder already running")
            return

        self.config.log_config()
        if self.client is None:
            client = create_remote_client(self.config.cloudwatch)
            await client.connect()  # type: ignore[attr-defined]
            self.client = client

        self.engine = DeliveryEngine(self.client, self.config.stream, on_error=self.on_error)
        await self.engine.start()

    async def forward(self, source: TextIO) -> int:
        """Forward lines from ``source`` until EOF or shutdown.

        Lines are read on a daemon thread, so a shutdown request returns
        promptly even while ``source`` is blocked waiting for input.

        Returns:
            Number of records accepted
        """
        if self.engine is None:
            raise RuntimeError("Forwarder not started")

        count = 0
        if self._shutdown_event.is_set():
            logger.info("Input finished", extra={"records": count})
            return count

        loop = asyncio.get_running_loop()
        lines: asyncio.Queue[str] = asyncio.Queue()
        reader = threading.Thread(
            target=_read_lines,
            args=(source, loop, lines),
            name="cwlogs-stream-input",
            daemon=True,
        )
        reader.start()

        while not self._shutdown_event.is_set():
            read = asyncio.ensure_future(lines.get())
            stop = asyncio.ensure_future(self._shutdown_event.wait())
            done, _ = await asyncio.wait({read, stop}, return_when=asyncio.FIRST_COMPLETED)
            stop.cancel()
            if read not in done:
                read.cancel()
                break

            line = read.result()
            if not line:
                break
            record = parse_line(line)
            if record is not None and self.engine.accept(record):
                count += 1

        logger.info("Input finished", extra={"records": count})
        return count

    async def stop(self) -> None:
        """Drain the engine and release the client."""
        if self.engine is not None:
            await self.engine.stop(drain=True)
            self.engine = None

        if self.client is not None and self._owns_client:
            await self.client.close()
            self.client = None

    def request_shutdown(self) -> None:
        """Stop reading input; queued records are still delivered."""
        self._shutdown_event.set()


def build_config(args: argparse.Namespace) -> ForwarderConfig:
    """Load configuration from the environment and apply CLI overrides.

    Raises:
        ValueError: If the resulting configuration is invalid
    """
    base = ForwarderConfig(
        stream=StreamConfig.from_env(),
        cloudwatch=CloudWatchConfig.from_env(),
        observability=ObservabilityConfig.from_env(),
    )
    stream_overrides = {
        "group_name": args.group,
        "stream_name": args.stream,
        "write_interval": args.write_interval,
        "max_retries": args.max_retries,
    }
    cloudwatch_overrides = {
        "region": args.region,
        "endpoint_url": args.endpoint_url,
    }
    config = ForwarderConfig(
        stream=dataclasses.replace(
            base.stream, **{k: v for k, v in stream_overrides.items() if v is not None}
        ),
        cloudwatch=dataclasses.replace(
            base.cloudwatch, **{k: v for k, v in cloudwatch_overrides.items() if v is not None}
        ),
        observability=base.observability,
    )
    config.validate()
    return config


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Forward newline-delimited JSON log records to CloudWatch Logs"
    )
    parser.add_argument("--group", "-g", help="Log group name (CWLOGS_GROUP_NAME)")
    parser.add_argument("--stream", "-s", help="Log stream name (CWLOGS_STREAM_NAME)")
    parser.add_argument(
        "--write-interval",
        type=float,
        help="Seconds between retries (CWLOGS_WRITE_INTERVAL)",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        help="Retries per record before giving up (default: retry forever)",
    )
    parser.add_argument("--region", help="AWS region (AWS_REGION)")
    parser.add_argument("--endpoint-url", help="Custom endpoint, e.g. LocalStack")
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.observability)

    forwarder = Forwarder(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        forwarder.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    async def run() -> None:
        await forwarder.start()
        await forwarder.forward(sys.stdin)

    try:
        loop.run_until_complete(run())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(forwarder.stop())
        loop.close()


if __name__ == "__main__":
    main()
