"""
tests/test_connection_registry.py
---
Unit tests for services/introspection/connection_registry.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import time
from unittest.mock import MagicMock

import pytest

from services.introspection.connection_registry import (
    ConnectionHandle,
    ConnectionRegistry,
    get_connection_registry,
)
from services.introspection.errors import IntrospectionError, StaleHandleError
from shared.models import DatabaseConfig


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config() -> DatabaseConfig:
    return DatabaseConfig(dialect="mysql", host="localhost", user="root", database="shop")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def connector() -> MagicMock:
    return MagicMock(side_effect=lambda config, database: MagicMock(name=f"conn-{database}"))


@pytest.fixture
def registry(connector: MagicMock, clock: FakeClock) -> ConnectionRegistry:
    return ConnectionRegistry(connector=connector, idle_timeout=60, sweep_interval=0.01, clock=clock)


# ---------------------------------------------------------------------------
# open / get / release
# ---------------------------------------------------------------------------

class TestLifecycle:
    def test_open_and_get(self, registry: ConnectionRegistry, connector: MagicMock,
                          config: DatabaseConfig) -> None:
        handle = registry.open(config, "shop")
        assert handle == ConnectionHandle(slot=0, generation=0)
        connector.assert_called_once_with(config, "shop")
        assert registry.get(handle) is not None
        assert registry.active_count == 1

    def test_release_closes_and_invalidates(self, registry: ConnectionRegistry,
                                            config: DatabaseConfig) -> None:
        handle = registry.open(config)
        conn = registry.get(handle)
        assert registry.release(handle) is True
        conn.close.assert_called_once()
        with pytest.raises(StaleHandleError):
            registry.get(handle)
        assert registry.release(handle) is False

    def test_unknown_handle(self, registry: ConnectionRegistry) -> None:
        with pytest.raises(StaleHandleError, match="Unknown"):
            registry.get(ConnectionHandle(slot=7, generation=0))

    def test_reused_slot_bumps_generation(self, registry: ConnectionRegistry,
                                          config: DatabaseConfig) -> None:
        old = registry.open(config, "a")
        registry.release(old)
        new = registry.open(config, "b")
        assert new.slot == old.slot
        assert new.generation == old.generation + 1
        with pytest.raises(StaleHandleError, match="stale"):
            registry.get(old)
        assert registry.get(new) is not None

    def test_lowest_free_slot_first(self, registry: ConnectionRegistry,
                                    config: DatabaseConfig) -> None:
        handles = [registry.open(config) for _ in range(3)]
        registry.release(handles[2])
        registry.release(handles[0])
        assert registry.open(config).slot == 0
        assert registry.open(config).slot == 2
        assert registry.open(config).slot == 3

    def test_connector_error_leaves_registry_empty(self, clock: FakeClock,
                                                   config: DatabaseConfig) -> None:
        failing = MagicMock(side_effect=IntrospectionError("refused"))
        registry = ConnectionRegistry(connector=failing, clock=clock)
        with pytest.raises(IntrospectionError):
            registry.open(config)
        assert registry.active_count == 0

    def test_close_error_is_logged_not_raised(self, registry: ConnectionRegistry,
                                              config: DatabaseConfig) -> None:
        handle = registry.open(config)
        registry.get(handle).close.side_effect = RuntimeError("already closed")
        assert registry.release(handle) is True


# ---------------------------------------------------------------------------
# session
# ---------------------------------------------------------------------------

class TestSession:
    def test_releases_on_exit(self, registry: ConnectionRegistry, config: DatabaseConfig) -> None:
        with registry.session(config, "shop") as conn:
            assert registry.active_count == 1
        assert registry.active_count == 0
        conn.close.assert_called_once()

    def test_releases_on_exception(self, registry: ConnectionRegistry,
                                   config: DatabaseConfig) -> None:
        with pytest.raises(RuntimeError):
            with registry.session(config) as conn:
                raise RuntimeError("query failed")
        assert registry.active_count == 0
        conn.close.assert_called_once()

    def test_checked_out_slot_is_not_swept(self, registry: ConnectionRegistry, clock: FakeClock,
                                           config: DatabaseConfig) -> None:
        with registry.session(config):
            clock.advance(3600)
            assert registry.sweep() == 0
            assert registry.active_count == 1
        assert registry.active_count == 0


# ---------------------------------------------------------------------------
# Idle sweep
# ---------------------------------------------------------------------------

class TestSweep:
    def test_evicts_idle(self, registry: ConnectionRegistry, clock: FakeClock,
                         config: DatabaseConfig) -> None:
        handle = registry.open(config)
        conn = registry.get(handle)
        clock.advance(61)
        assert registry.sweep() == 1
        conn.close.assert_called_once()
        with pytest.raises(StaleHandleError):
            registry.get(handle)
        assert registry.stats().total_swept == 1

    def test_recent_use_keeps_connection(self, registry: ConnectionRegistry, clock: FakeClock,
                                         config: DatabaseConfig) -> None:
        stale = registry.open(config, "old")
        fresh = registry.open(config, "new")
        clock.advance(50)
        registry.get(fresh)
        clock.advance(20)
        assert registry.sweep() == 1
        assert registry.get(fresh) is not None
        with pytest.raises(StaleHandleError):
            registry.get(stale)

    def test_explicit_now(self, registry: ConnectionRegistry, clock: FakeClock,
                          config: DatabaseConfig) -> None:
        registry.open(config)
        assert registry.sweep(now=clock.now + 10) == 0
        assert registry.sweep(now=clock.now + 600) == 1

    def test_background_sweeper(self, registry: ConnectionRegistry, clock: FakeClock,
                                config: DatabaseConfig) -> None:
        registry.open(config)
        clock.advance(600)
        registry.start_sweeper()
        try:
            deadline = time.monotonic() + 5
            while registry.active_count and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            registry.stop_sweeper()
        assert registry.active_count == 0


# ---------------------------------------------------------------------------
# Bookkeeping
# ---------------------------------------------------------------------------

class TestBookkeeping:
    def test_close_all(self, registry: ConnectionRegistry, config: DatabaseConfig) -> None:
        handles = [registry.open(config) for _ in range(3)]
        registry.release(handles[1])
        assert registry.close_all() == 2
        assert registry.active_count == 0

    def test_stats(self, registry: ConnectionRegistry, clock: FakeClock,
                   config: DatabaseConfig) -> None:
        first = registry.open(config, "shop")
        registry.open(config, "shop")
        registry.open(config, "crm")
        registry.release(first)
        clock.advance(5)
        stats = registry.stats()
        assert stats.open_connections == 2
        assert stats.total_opened == 3
        assert stats.total_released == 1
        assert stats.by_label == {"mysql:shop": 1, "mysql:crm": 1}
        assert stats.oldest_idle_seconds == 5

    def test_singleton(self) -> None:
        assert get_connection_registry() is get_connection_registry()
