"""
cwlogs-stream - Sequencing-safe log forwarding to CloudWatch Logs.

This package accepts structured log records from an application and delivers
them, one at a time and in order, to an append-only remote log stream that
enforces server-assigned sequence tokens.

Architecture:
    ┌────────────┐    ┌────────────────┐    ┌──────────────────┐
    │  Producer  │───▶│ DeliveryEngine │───▶│ RemoteLogClient  │
    │ (handler,  │    │ (single worker)│    │ (CloudWatch Logs)│
    │  CLI)      │    └───────┬────────┘    └──────────────────┘
    └────────────┘            │
                    ┌─────────┴─────────┐
                    ▼                   ▼
            ┌──────────────┐   ┌──────────────────┐
            │ TokenCache   │   │ StreamProvisioner│
            └──────────────┘   └──────────────────┘

Invariants:
    - At most one write is in flight per (group, stream)
    - Records reach the remote in the order they were accepted
    - A token is only replaced by a successful write or a fresh lookup
    - Fatal remote errors go to the error sink, never to the producer

How to change safely:
    - Keep the engine as the only writer of its token cache
    - Test retry and provisioning paths against InMemoryLogService
"""

from ._version import __version__
from .config import CloudWatchConfig, ForwarderConfig, ObservabilityConfig, StreamConfig
from .delivery import (
    DeliveryEngine,
    EngineState,
    ProvisioningError,
    RetryExhaustedError,
    SequenceTokenCache,
    StreamProvisioner,
    WireEvent,
    encode,
    log_error,
    terminate_process,
)
from .handler import CloudWatchLogsHandler
from .remote import (
    CloudWatchLogsClient,
    InMemoryLogService,
    RemoteLogClient,
    RemoteLogError,
    create_remote_client,
)

__all__ = [
    "__version__",
    # Configuration
    "StreamConfig",
    "CloudWatchConfig",
    "ObservabilityConfig",
    "ForwarderConfig",
    # Delivery
    "DeliveryEngine",
    "EngineState",
    "SequenceTokenCache",
    "StreamProvisioner",
    "WireEvent",
    "encode",
    "ProvisioningError",
    "RetryExhaustedError",
    "terminate_process",
    "log_error",
    # Producers
    "CloudWatchLogsHandler",
    # Remote
    "RemoteLogClient",
    "RemoteLogError",
    "CloudWatchLogsClient",
    "InMemoryLogService",
    "create_remote_client",
]
