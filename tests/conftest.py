"""Shared fakes for the remote session, its factory, clock and sleep."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Iterable, Sequence

import pytest

from opclogger.common.config import (
    HealthSettings,
    KeepAliveSettings,
    LoggerConfig,
    PointConfig,
    RetryPolicy,
    SessionSettings,
)
from opclogger.services.session.client import ReadResult


class FakeSession:
    """In-memory stand-in for an OPC UA session."""

    def __init__(
        self,
        values: dict[str, float] | None = None,
        failing: Iterable[str] = (),
        batch_delay: float = 0.0,
        ping_delay: float = 0.0,
    ) -> None:
        self.values = dict(values or {})
        self.failing = set(failing)
        self.batch_delay = batch_delay
        self.ping_delay = ping_delay
        self.batch_error: Exception | None = None
        self.ping_error: Exception | None = None
        self.ping_result: ReadResult = ReadResult.ok(1.0)
        self.close_error: Exception | None = None

        self.batch_calls = 0
        self.ping_calls = 0
        self.close_calls = 0
        self.active_batches = 0
        self.max_active_batches = 0
        self.closed = False

    @property
    def is_connected(self) -> bool:
        return not self.closed

    async def read_batch(self, node_ids: Sequence[str]) -> list[ReadResult]:
        self.batch_calls += 1
        self.active_batches += 1
        self.max_active_batches = max(self.max_active_batches, self.active_batches)
        try:
            if self.batch_delay:
                await asyncio.sleep(self.batch_delay)
            if self.batch_error is not None:
                raise self.batch_error
            return [
                ReadResult.failed("BadNodeIdUnknown")
                if node_id in self.failing
                else ReadResult.ok(self.values.get(node_id, 0.0))
                for node_id in node_ids
            ]
        finally:
            self.active_batches -= 1

    async def read_one(self, node_id: str) -> ReadResult:
        self.ping_calls += 1
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        if self.ping_error is not None:
            raise self.ping_error
        return self.ping_result

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error
        self.closed = True


class FakeClient:
    """One connection attempt; fails at connect or create_session on request."""

    def __init__(
        self,
        session: FakeSession | None = None,
        connect_error: Exception | None = None,
        session_error: Exception | None = None,
        session_delay: float = 0.0,
    ) -> None:
        self.session = session or FakeSession()
        self.session_delay = session_delay
        self.connect_error = connect_error
        self.session_error = session_error
        self.endpoint: str | None = None
        self.aborted = False

    async def connect(self, endpoint: str) -> None:
        self.endpoint = endpoint
        if self.connect_error is not None:
            raise self.connect_error

    async def create_session(self) -> FakeSession:
        if self.session_delay:
            await asyncio.sleep(self.session_delay)
        if self.session_error is not None:
            raise self.session_error
        return self.session

    async def abort(self) -> None:
        self.aborted = True


class ClientFactory:
    """Hands out prepared FakeClients in order; repeats the last one."""

    def __init__(self, *clients: FakeClient) -> None:
        self.clients = list(clients)
        self.created: list[FakeClient] = []

    def __call__(self) -> FakeClient:
        index = min(len(self.created), len(self.clients) - 1)
        client = self.clients[index]
        self.created.append(client)
        return client


class RecordingSleep:
    """Replaces asyncio.sleep in retry loops; records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class SequenceClock:
    """Returns the given datetimes in order, then keeps returning the last."""

    def __init__(self, *moments: datetime) -> None:
        self.moments = list(moments)
        self.calls = 0

    def __call__(self) -> datetime:
        moment = self.moments[min(self.calls, len(self.moments) - 1)]
        self.calls += 1
        return moment


def ten_points() -> list[PointConfig]:
    return [PointConfig(node_id=f"ns=1;s=Tag{i}", name=f"Tag{i}") for i in range(1, 11)]


def ten_values() -> dict[str, float]:
    return {f"ns=1;s=Tag{i}": float(i * 10) for i in range(1, 11)}


def make_config(log_dir: Path, **overrides) -> LoggerConfig:
    """Small-interval config with the health server off."""
    settings = dict(
        endpoint="opc.tcp://test:4840/",
        log_dir=log_dir,
        log_interval_s=60.0,
        points=ten_points(),
        retry=RetryPolicy(max_retry=5, initial_delay_ms=2000, max_delay_ms=10000),
        keep_alive=KeepAliveSettings(interval_s=15.0),
        session=SessionSettings(timeout_s=60.0, read_timeout_s=1.0),
        health=HealthSettings(enabled=False),
        shutdown_grace_s=1.0,
    )
    settings.update(overrides)
    return LoggerConfig(**settings)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession(values=ten_values())


@pytest.fixture
def config(tmp_path) -> LoggerConfig:
    return make_config(tmp_path)
