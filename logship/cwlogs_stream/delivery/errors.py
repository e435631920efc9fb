"""
Delivery errors and error sinks.

An error sink receives every failure the engine cannot recover from. The
default sink terminates the process.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ErrorSink = Callable[[BaseException], None]


class DeliveryError(Exception):
    """Base exception for delivery failures raised by this package."""

    pass


class ProvisioningError(DeliveryError):
    """The target group/stream could not be created or confirmed.

    Attributes:
        group_name: Target log group
        stream_name: Target log stream
    """

    def __init__(self, message: str, group_name: str, stream_name: str) -> None:
        super().__init__(message)
        self.group_name = group_name
        self.stream_name = stream_name


class RetryExhaustedError(DeliveryError):
    """A record was still failing after the configured number of retries.

    Attributes:
        attempts: Number of put attempts made
        last_error: Error returned by the final attempt
    """

    def __init__(self, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"Giving up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def terminate_process(error: BaseException) -> None:
    """Default error sink: log the failure and exit with status 1.

    Uses ``os._exit`` because the engine runs inside an asyncio task, where
    raising SystemExit would only end the task.
    """
    logger.critical(
        f"Unrecoverable log delivery failure: {error}",
        exc_info=(type(error), error, error.__traceback__),
    )
    logging.shutdown()
    os._exit(1)


def log_error(error: BaseException) -> None:
    """Error sink that logs the failure and lets the process continue."""
    logger.error(
        f"Log delivery failed: {error}",
        exc_info=(type(error), error, error.__traceback__),
    )
