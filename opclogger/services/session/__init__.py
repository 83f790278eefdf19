"""
Session Service - Remote Endpoint Access

Responsibilities:
- Open the OPC UA transport and session with bounded retry/backoff
- Expose batched and single-point reads with a read timeout
- Swap in a fresh session on request
- Disconnect exactly once on shutdown
"""

from .client import (
    OpcUaClient,
    OpcUaSession,
    ReadResult,
    Session,
    SessionClient,
    read_with_timeout,
)
from .manager import ConnectionManager

__all__ = [
    "ConnectionManager",
    "OpcUaClient",
    "OpcUaSession",
    "ReadResult",
    "Session",
    "SessionClient",
    "read_with_timeout",
]
