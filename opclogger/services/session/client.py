"""
Async OPC UA Session

Wrapper around asyncua exposing the narrow surface the logger needs:
- connect(): TCP connect, hello, secure channel
- create_session(): create + activate a session, returning an OpcUaSession
- OpcUaSession.read_batch(): one Read service call for many nodes
- OpcUaSession.read_one(): lightweight single node read
- OpcUaSession.close(): idempotent orderly disconnect
- read_with_timeout(): bounds any read so a stalled server cannot hold a tick open
"""

import asyncio
import math
from dataclasses import dataclass
from typing import Awaitable, Protocol, Sequence, TypeVar

from asyncua import Client, ua
from asyncua.client.ua_client import UASocketProtocol

from opclogger.common.exceptions import EndpointConnectionError, ReadTimeoutError
from opclogger.common.logging_setup import get_service_logger

logger = get_service_logger("session.client")

T = TypeVar("T")


@dataclass
class ReadResult:
    """Result of a single point read: a value or an error, never both"""
    success: bool
    value: float | None = None
    error: str | None = None

    @classmethod
    def ok(cls, value: float) -> "ReadResult":
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, error: str) -> "ReadResult":
        return cls(success=False, error=error)


class Session(Protocol):
    """What the scheduler tasks need from a live session"""

    async def read_batch(self, node_ids: Sequence[str]) -> list[ReadResult]: ...

    async def read_one(self, node_id: str) -> ReadResult: ...

    async def close(self) -> None: ...

    @property
    def is_connected(self) -> bool: ...


class SessionClient(Protocol):
    """Two-step session factory consumed by ConnectionManager"""

    async def connect(self, endpoint: str) -> None: ...

    async def create_session(self) -> Session: ...

    async def abort(self) -> None: ...


async def read_with_timeout(awaitable: Awaitable[T], timeout_s: float, endpoint: str | None = None) -> T:
    """
    Await a session read, bounded by timeout_s.

    Raises:
        ReadTimeoutError: the read did not finish in time
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError:
        raise ReadTimeoutError(timeout_s, endpoint=endpoint)


def to_read_result(data_value: ua.DataValue) -> ReadResult:
    """Convert an OPC UA DataValue into a ReadResult"""
    status = data_value.StatusCode
    if status is not None and not status.is_good():
        return ReadResult.failed(f"Bad status: {status.name}")

    variant = data_value.Value
    if variant is None or variant.Value is None:
        return ReadResult.failed("No value")

    raw = variant.Value
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return ReadResult.failed(f"Non-numeric value of type {type(raw).__name__}")

    value = float(raw)
    if not math.isfinite(value):
        return ReadResult.failed(f"Non-finite value {value}")

    return ReadResult.ok(value)


class OpcUaSession:
    """
    A live, activated OPC UA session.

    Reads are not time-bounded here; callers wrap them in read_with_timeout().
    """

    def __init__(self, client: Client, endpoint: str):
        self._client = client
        self.endpoint = endpoint
        self._closed = False

    @property
    def is_connected(self) -> bool:
        """False once closed, or once the server side dropped the transport"""
        if self._closed:
            return False
        protocol = self._client.uaclient.protocol
        return protocol is not None and protocol.state == UASocketProtocol.OPEN

    async def read_batch(self, node_ids: Sequence[str]) -> list[ReadResult]:
        """
        Read the Value attribute of all nodes in one service call.

        Returns results in the same order and length as node_ids. Per-node
        failures are reported in the result list; transport failures raise.
        """
        params = ua.ReadParameters()
        for node_id in node_ids:
            read_value_id = ua.ReadValueId()
            read_value_id.NodeId = ua.NodeId.from_string(node_id)
            read_value_id.AttributeId = ua.AttributeIds.Value
            params.NodesToRead.append(read_value_id)

        data_values = await self._client.uaclient.read(params)
        return [to_read_result(dv) for dv in data_values]

    async def read_one(self, node_id: str) -> ReadResult:
        """Read a single node value (used for keep-alive pings)"""
        results = await self.read_batch([node_id])
        return results[0]

    async def close(self) -> None:
        """Close session, secure channel and socket. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        await self._client.disconnect()
        logger.info(f"Disconnected from {self.endpoint}")


class OpcUaClient:
    """
    Connection/session factory for one OPC UA endpoint.

    Handles:
    - Transport connect (socket, hello, secure channel) with request timeout
    - Session creation and activation with the requested idle timeout
    """

    def __init__(self, timeout: float = 4.0, session_timeout_s: float = 60.0):
        self.timeout = timeout
        self.session_timeout_s = session_timeout_s

        self._client: Client | None = None
        self._endpoint: str | None = None

    async def connect(self, endpoint: str) -> None:
        """Open the transport to endpoint (no session yet)"""
        self._endpoint = endpoint
        self._client = Client(url=endpoint, timeout=self.timeout)
        self._client.session_timeout = int(self.session_timeout_s * 1000)

        try:
            await self._client.connect_socket()
            await self._client.send_hello()
            await self._client.open_secure_channel()
        except (OSError, asyncio.TimeoutError, ua.UaError) as e:
            await self.abort()
            raise EndpointConnectionError(f"Connect failed: {e}", endpoint=endpoint)

        logger.debug(f"Transport open to {endpoint}")

    async def create_session(self) -> OpcUaSession:
        """Create and activate a session on the open transport"""
        if self._client is None:
            raise EndpointConnectionError("create_session() called before connect()")

        try:
            await self._client.create_session()
            await self._client.activate_session()
        except (OSError, asyncio.TimeoutError, ua.UaError) as e:
            await self.abort()
            raise EndpointConnectionError(
                f"Session creation failed: {e}", endpoint=self._endpoint
            )

        return OpcUaSession(self._client, self._endpoint)

    async def abort(self) -> None:
        """Tear down a half-open transport after a failed attempt"""
        if self._client is None:
            return
        try:
            self._client.disconnect_socket()
        except Exception as e:
            logger.debug(f"Ignoring socket teardown error: {e}")
        self._client = None
