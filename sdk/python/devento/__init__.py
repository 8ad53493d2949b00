"""Devento Python SDK

A Python client library for running commands in Devento sandboxes.
"""

import logging

from .box import BoxHandle
from .client import DeventoClient
from .commands import CommandExecutor
from .config import ClientConfig
from .exceptions import (
    APIError,
    AuthenticationError,
    CancelledError,
    CommandTimeoutError,
    DeventoError,
    InsufficientResourceError,
    RateLimitError,
    ResourceNotFoundError,
    ResourceTimeoutError,
    ValidationError,
)
from .fields import UpdateField
from .models import (
    Box,
    BoxConfig,
    BoxStatus,
    Command,
    CommandOptions,
    CommandResult,
    CommandStatus,
    CreateDomainRequest,
    Domain,
    DomainKind,
    DomainMeta,
    DomainResponse,
    DomainsResponse,
    DomainStatus,
    ExposedPort,
    Snapshot,
    SnapshotStatus,
    UpdateDomainRequest,
)
from .polling import CancellationToken
from .sse import SSEEvent, parse_sse
from .version import __version__

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "DeventoClient",
    "BoxHandle",
    "CommandExecutor",
    "ClientConfig",
    "CancellationToken",
    "Box",
    "BoxConfig",
    "BoxStatus",
    "Command",
    "CommandOptions",
    "CommandResult",
    "CommandStatus",
    "Snapshot",
    "SnapshotStatus",
    "ExposedPort",
    "Domain",
    "DomainKind",
    "DomainMeta",
    "DomainResponse",
    "DomainsResponse",
    "DomainStatus",
    "CreateDomainRequest",
    "UpdateDomainRequest",
    "UpdateField",
    "SSEEvent",
    "parse_sse",
    "DeventoError",
    "APIError",
    "AuthenticationError",
    "CancelledError",
    "CommandTimeoutError",
    "InsufficientResourceError",
    "RateLimitError",
    "ResourceNotFoundError",
    "ResourceTimeoutError",
    "ValidationError",
]
