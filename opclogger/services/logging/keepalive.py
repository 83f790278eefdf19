"""
Keep-alive Monitor

Issues a single lightweight read against a diagnostic node on its own
cadence so the server never sees the session idle long enough to drop it.
Has no data path to the CSV logs; its only outputs are log lines and the
ping counter.
"""

from opclogger.common.config import KeepAliveSettings
from opclogger.common.exceptions import KeepAliveError
from opclogger.common.logging_setup import get_service_logger, log_ping
from opclogger.services.session.client import read_with_timeout
from opclogger.services.session.manager import ConnectionManager

logger = get_service_logger("logging.keepalive")


class PingCounter:
    """Count of successful keep-alive pings since process start"""

    def __init__(self):
        self._count = 0

    @property
    def value(self) -> int:
        return self._count

    def increment(self) -> int:
        self._count += 1
        return self._count


class KeepAliveMonitor:
    """
    Keep-alive ping task body.

    A failed ping raises KeepAliveError for the scheduler to log; it does
    not stop future pings. When
    settings.reconnect_after_failures is N > 0, the Nth consecutive failure
    asks the connection manager for a fresh session.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        settings: KeepAliveSettings,
        read_timeout_s: float,
        counter: PingCounter | None = None,
    ):
        self.manager = manager
        self.settings = settings
        self.read_timeout_s = read_timeout_s
        self.counter = counter or PingCounter()

        self.failure_count = 0
        self.consecutive_failures = 0
        self.reconnect_failures = 0

    async def ping(self) -> None:
        """
        One keep-alive tick.

        Raises:
            KeepAliveError: the ping failed (after failure bookkeeping and
                any reconnect attempt); the scheduler logs it and carries on
        """
        node_id = self.settings.diagnostic_node
        try:
            result = await read_with_timeout(
                self.manager.session.read_one(node_id),
                self.read_timeout_s,
                endpoint=self.manager.endpoint,
            )
            if not result.success:
                raise KeepAliveError(result.error or "read failed", node_id=node_id)
        except KeepAliveError:
            await self._on_failure()
            raise
        except Exception as e:
            await self._on_failure()
            raise KeepAliveError(str(e), node_id=node_id, cause=e)

        self.consecutive_failures = 0
        log_ping(logger, self.counter.increment())

    async def _on_failure(self) -> None:
        self.failure_count += 1
        self.consecutive_failures += 1

        threshold = self.settings.reconnect_after_failures
        if threshold and self.consecutive_failures >= threshold:
            await self._reconnect()

    async def _reconnect(self) -> None:
        logger.warning(
            f"{self.consecutive_failures} consecutive keep-alive failures, reconnecting",
            extra={"consecutive_failures": self.consecutive_failures},
        )
        try:
            await self.manager.reconnect()
        except Exception as e:
            self.reconnect_failures += 1
            error = KeepAliveError(f"Reconnect failed: {e}", cause=e)
            logger.error(str(error), extra={"reconnect_failures": self.reconnect_failures})
            return

        self.consecutive_failures = 0

    def get_stats(self) -> dict:
        return {
            "ping_count": self.counter.value,
            "failure_count": self.failure_count,
            "consecutive_failures": self.consecutive_failures,
            "reconnect_failures": self.reconnect_failures,
            "diagnostic_node": self.settings.diagnostic_node,
        }
