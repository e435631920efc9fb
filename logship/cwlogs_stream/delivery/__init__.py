"""
Delivery pipeline: encoding, token tracking, provisioning and the write engine.
"""

from .encoder import WireEvent, encode, safe_dumps
from .engine import DeliveryEngine, EngineState, EngineStats, PendingWrite
from .errors import (
    DeliveryError,
    ErrorSink,
    ProvisioningError,
    RetryExhaustedError,
    log_error,
    terminate_process,
)
from .provisioner import StreamProvisioner
from .token_cache import SequenceTokenCache

__all__ = [
    "WireEvent",
    "encode",
    "safe_dumps",
    "DeliveryEngine",
    "EngineState",
    "EngineStats",
    "PendingWrite",
    "StreamProvisioner",
    "SequenceTokenCache",
    "DeliveryError",
    "ProvisioningError",
    "RetryExhaustedError",
    "ErrorSink",
    "terminate_process",
    "log_error",
]
