"""
Data Logger Service - OPC UA to hourly CSV

Responsible for:
- Acquiring the remote session with bounded retry/backoff
- Logging task: batch read of all points every log_interval_s, appended
  as one row to the current hour's CSV file
- Keep-alive task: single diagnostic read every keep_alive.interval_s
- Health endpoint with scheduler and ping statistics
- Graceful shutdown on SIGINT/SIGTERM

Architecture:
    ConnectionManager ── session ──► logging task ──► formatter ──► LogBucketManager
           │
           └────────── session ──► keep-alive task ──► PingCounter

The two tasks share the session but nothing else; each runs on its own
ScheduledLoop with at most one tick in flight.
"""

import asyncio
import signal
from datetime import datetime, timezone
from typing import Awaitable, Callable

from aiohttp import web

from opclogger.common.config import LoggerConfig
from opclogger.common.exceptions import EndpointConnectionError, ShutdownError, TickError
from opclogger.common.logging_setup import get_service_logger, log_row_written
from opclogger.common.scheduler import SchedulerGroup
from opclogger.common.timestamp import format_row_timestamp, local_now
from opclogger.services.session.client import OpcUaClient, SessionClient, read_with_timeout
from opclogger.services.session.manager import ConnectionManager

from .buckets import LogBucketManager, Row
from .formatter import format_values
from .keepalive import KeepAliveMonitor, PingCounter

logger = get_service_logger("logging")

# Process exit codes
EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1

# Scheduler task names
LOGGING_TASK = "logging"
KEEP_ALIVE_TASK = "keep_alive"


class DataLoggerService:
    """
    Data Logger Service

    Owns the connection manager, the bucket writer, the keep-alive monitor
    and the two scheduled loops. Every instance is independent, so tests
    can build as many as they like.
    """

    def __init__(
        self,
        config: LoggerConfig,
        client_factory: Callable[[], SessionClient] | None = None,
        clock: Callable[[], datetime] = local_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._clock = clock

        self.manager = ConnectionManager(
            config.endpoint,
            client_factory or self._default_client_factory,
            retry=config.retry,
            sleep=sleep,
        )
        self.buckets = LogBucketManager(config.log_dir, config.point_names)
        self.ping_counter = PingCounter()
        self.keep_alive = KeepAliveMonitor(
            self.manager,
            config.keep_alive,
            read_timeout_s=config.session.read_timeout_s,
            counter=self.ping_counter,
        )
        self.schedulers = SchedulerGroup()

        # State
        self._running = False
        self._stopped = False
        self._shutdown_event = asyncio.Event()
        self._signals_installed: list[signal.Signals] = []
        self._start_time: datetime | None = None

        # Observability
        self.tick_error_count = 0
        self._last_row_time: datetime | None = None

        # Health server
        self._health_runner: web.AppRunner | None = None

    def _default_client_factory(self) -> OpcUaClient:
        return OpcUaClient(session_timeout_s=self.config.session.timeout_s)

    async def start(self) -> None:
        """
        Acquire the session, then start both scheduled tasks.

        Raises:
            EndpointConnectionError: session could not be acquired
        """
        logger.info(f"Starting Data Logger Service (endpoint: {self.config.endpoint})")

        await self.manager.acquire()

        self._running = True
        self._start_time = datetime.now(timezone.utc)

        self.schedulers.add(
            LOGGING_TASK,
            self.config.log_interval_s,
            self.log_tick,
            enabled=self.config.logging_enabled,
        )
        self.schedulers.add(
            KEEP_ALIVE_TASK,
            self.config.keep_alive.interval_s,
            self.keep_alive.ping,
            enabled=self.config.keep_alive.enabled,
        )
        await self.schedulers.start_all()

        if self.config.health.enabled:
            await self._start_health_server()

        logger.info(
            f"Data Logger Service started (logging: {self.config.log_interval_s}s, "
            f"keep-alive: {self.config.keep_alive.interval_s}s, "
            f"points: {len(self.config.points)})"
        )

    async def stop(self) -> None:
        """
        Stop both tasks, then release the session. Safe to call repeatedly.

        In-flight ticks get shutdown_grace_s to finish. A failing disconnect
        is logged; it never raises out of here.
        """
        if self._stopped:
            return
        self._stopped = True
        self._running = False

        logger.info("Stopping Data Logger Service")

        await self.schedulers.stop_all(self.config.shutdown_grace_s)
        await self._stop_health_server()
        self._remove_signal_handlers()

        try:
            await self.manager.release()
        except ShutdownError as e:
            logger.error(str(e), extra={"cause": repr(e.cause)})

        logger.info("Data Logger Service stopped")

    async def run(self) -> int:
        """
        Run until a shutdown signal, then tear down.

        Returns:
            EXIT_OK after a signal-triggered shutdown,
            EXIT_STARTUP_FAILURE if the session could not be acquired
        """
        exit_code = EXIT_OK
        try:
            await self.start()
            self._setup_signal_handlers()
            await self._shutdown_event.wait()
        except EndpointConnectionError as e:
            logger.critical(f"Could not start client: {e}")
            exit_code = EXIT_STARTUP_FAILURE
        finally:
            await self.stop()
        return exit_code

    def request_shutdown(self) -> None:
        """Ask run() to return (same path as SIGINT/SIGTERM)."""
        self._shutdown_event.set()

    async def log_tick(self) -> None:
        """
        One logging tick.

        The bucket and the row timestamp both come from the clock reading
        taken when the tick starts, so a slow read that finishes after the
        hour turns still lands in the hour it started in.

        Raises:
            TickError: read, format or file write failed
        """
        now = self._clock()
        bucket = self.buckets.resolve_bucket(now)

        try:
            self.buckets.ensure_header(bucket)
            results = await read_with_timeout(
                self.manager.session.read_batch(self.config.point_ids),
                self.config.session.read_timeout_s,
                endpoint=self.config.endpoint,
            )
            values = format_values(self.config.points, results)
            self.buckets.append_row(bucket, Row(now, values))
        except TickError:
            self.tick_error_count += 1
            raise
        except Exception as e:
            self.tick_error_count += 1
            raise TickError(f"{bucket.filename}: {e}", task=LOGGING_TASK, cause=e)

        self._last_row_time = now
        log_row_written(logger, bucket.filename, format_row_timestamp(now), len(values))

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
                self._signals_installed.append(sig)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed.clear()

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Received shutdown signal")
        self.request_shutdown()

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/stats", self._stats_handler)

        self._health_runner = web.AppRunner(app)
        await self._health_runner.setup()

        health = self.config.health
        site = web.TCPSite(self._health_runner, health.host, health.port)
        await site.start()

        logger.info(f"Health server started on {health.host}:{health.port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        return web.json_response(self.get_health())

    async def _stats_handler(self, request: web.Request) -> web.Response:
        """Return scheduler, keep-alive and file statistics"""
        return web.json_response(self.get_stats())

    def get_health(self) -> dict:
        now = datetime.now(timezone.utc)
        uptime = (now - self._start_time).total_seconds() if self._start_time else 0
        keep_alive_ok = self.keep_alive.consecutive_failures == 0
        healthy = self._running and self.manager.is_connected and keep_alive_ok
        return {
            "status": "healthy" if healthy else "unhealthy",
            "service": "opclogger",
            "session_connected": self.manager.is_connected,
            "keep_alive_ok": keep_alive_ok,
            "uptime": int(uptime),
            "timestamp": now.isoformat(),
        }

    def get_stats(self) -> dict:
        return {
            "schedulers": self.schedulers.get_stats(),
            "keep_alive": self.keep_alive.get_stats(),
            "files": self.buckets.get_stats(),
            "session": {
                "endpoint": self.config.endpoint,
                "connected": self.manager.is_connected,
                "connect_attempts": self.manager.connect_attempts,
                "reconnect_count": self.manager.reconnect_count,
            },
            "errors": {
                "logging_tick_errors": self.tick_error_count,
                "keep_alive_failures": self.keep_alive.failure_count,
            },
            "last_row": self._last_row_time.isoformat() if self._last_row_time else None,
        }
