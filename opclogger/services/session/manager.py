"""
Session Connection Manager

Owns the single remote session for the process lifetime:
- acquire(): connect + create session with bounded exponential backoff
- session: the current session, fetched by every scheduler tick
- reconnect(): swap in a fresh session (keep-alive recovery policy)
- release(): orderly disconnect, exactly once
"""

import asyncio
from typing import Awaitable, Callable

from opclogger.common.config import RetryPolicy
from opclogger.common.exceptions import EndpointConnectionError, ShutdownError
from opclogger.common.logging_setup import get_service_logger
from .client import Session, SessionClient

logger = get_service_logger("session.manager")


class ConnectionManager:
    """
    Remote session lifecycle manager.

    The retry loop makes exactly retry.max_retry attempts. Between attempts
    it sleeps initial_delay_ms, doubling each time, capped at max_delay_ms.
    """

    def __init__(
        self,
        endpoint: str,
        client_factory: Callable[[], SessionClient],
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.endpoint = endpoint
        self.retry = retry or RetryPolicy()
        self._client_factory = client_factory
        self._sleep = sleep

        self._session: Session | None = None
        self._released = False
        self._lock = asyncio.Lock()

        # Observability
        self.connect_attempts = 0
        self.reconnect_count = 0
        self.last_delays_ms: list[int] = []

    @property
    def session(self) -> Session:
        """Current session. Raises if none is held."""
        if self._session is None:
            raise EndpointConnectionError("No active session", endpoint=self.endpoint)
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.is_connected

    async def acquire(self) -> Session:
        """
        Connect and create a session, retrying per the retry policy.

        Raises:
            EndpointConnectionError: all attempts failed
        """
        async with self._lock:
            self._session = await self._acquire_with_retry()
            return self._session

    async def reconnect(self) -> Session:
        """
        Replace the current session with a fresh one.

        The old session is closed first; close errors are logged only.
        """
        async with self._lock:
            old, self._session = self._session, None
            if old is not None:
                try:
                    await old.close()
                except Exception as e:
                    logger.warning(f"Error closing stale session: {e}")

            self._session = await self._acquire_with_retry()
            self.reconnect_count += 1
            logger.info(
                f"Reconnected to {self.endpoint}",
                extra={"reconnect_count": self.reconnect_count},
            )
            return self._session

    async def release(self) -> None:
        """
        Disconnect the session. Runs at most once per manager.

        Raises:
            ShutdownError: the disconnect itself failed
        """
        async with self._lock:
            if self._released:
                return
            self._released = True

            session, self._session = self._session, None
            if session is None:
                return

            logger.info("Disconnecting...")
            try:
                await session.close()
            except Exception as e:
                raise ShutdownError(f"Disconnect from {self.endpoint} failed: {e}", cause=e)
            logger.info("Client disconnected")

    async def _acquire_with_retry(self) -> Session:
        policy = self.retry
        self.last_delays_ms = []
        last_error: Exception | None = None

        for attempt in range(1, policy.max_retry + 1):
            self.connect_attempts += 1
            client = self._client_factory()
            try:
                await client.connect(self.endpoint)
                logger.info(f"Client connected to {self.endpoint}")
                session = await client.create_session()
            except asyncio.CancelledError:
                await client.abort()
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Connection attempt {attempt}/{policy.max_retry} to {self.endpoint} failed: {e}",
                    extra={"attempt": attempt, "endpoint": self.endpoint},
                )
                await client.abort()
            else:
                logger.info("Session created")
                return session

            if attempt < policy.max_retry:
                delay_ms = policy.delay_ms(attempt - 1)
                self.last_delays_ms.append(delay_ms)
                await self._sleep(delay_ms / 1000)

        raise EndpointConnectionError(
            f"Could not connect after {policy.max_retry} attempts: {last_error}",
            endpoint=self.endpoint,
            attempts=policy.max_retry,
        )
