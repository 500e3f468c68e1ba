"""
services/introspection/connection_registry.py
---------------------------------------------
Tracks open introspection connections.

The registry is a slot table. ``open`` returns a :class:`ConnectionHandle`
naming a slot and the generation it was issued in; releasing or sweeping a
slot bumps its generation, so any handle still held for it goes stale and
``get`` raises :class:`StaleHandleError` instead of returning someone else's
connection.

Design Decisions:
    * Freed slots are reused (lowest index first); the generation stamp is
      what keeps old handles from aliasing the new occupant.
    * A slot checked out through ``session()`` is never swept, however long
      the extraction runs.
    * The background sweeper is an optional daemon thread; ``sweep()`` can
      also be called directly.
    * All slot-table mutations happen under one lock. Connections are closed
      outside it.
"""
from __future__ import annotations

import heapq
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from config import CONFIG
from logger import get_logger
from services.introspection import drivers
from services.introspection.errors import StaleHandleError
from shared.models import DatabaseConfig
from shared.utils import format_duration

log = get_logger(__name__)

Connector = Callable[[DatabaseConfig, Optional[str]], Any]


@dataclass(frozen=True)
class ConnectionHandle:
    """Opaque reference to a registry slot."""
    slot: int
    generation: int


@dataclass
class _Slot:
    generation: int = 0
    connection: Any = None
    label: str = ""
    opened_at: float = 0.0
    last_used: float = 0.0
    checkouts: int = 0

    @property
    def occupied(self) -> bool:
        return self.connection is not None


@dataclass
class RegistryStats:
    open_connections: int = 0
    total_opened: int = 0
    total_released: int = 0
    total_swept: int = 0
    oldest_idle_seconds: float = 0.0
    by_label: dict[str, int] = field(default_factory=dict)


def _close_quietly(connection: Any, label: str) -> None:
    try:
        connection.close()
    except Exception as exc:
        log.warning("Error closing connection %s: %s", label, exc)


class ConnectionRegistry:
    """
    Generation-stamped registry of live database connections.

    Example::

        registry = ConnectionRegistry()
        with registry.session(config, "shop") as conn:
            cursor = conn.cursor()
            ...

        handle = registry.open(config)
        conn = registry.get(handle)
        registry.release(handle)
        registry.get(handle)        # raises StaleHandleError
    """

    def __init__(
        self,
        connector: Connector | None = None,
        idle_timeout: float | None = None,
        sweep_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = CONFIG.introspection
        self._connector = connector or drivers.connect
        self._idle_timeout = idle_timeout if idle_timeout is not None else settings.idle_timeout
        self._sweep_interval = (
            sweep_interval if sweep_interval is not None else settings.sweep_interval
        )
        self._clock = clock

        self._lock = threading.Lock()
        self._slots: list[_Slot] = []
        self._free: list[int] = []
        self._stats = RegistryStats()

        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Slot lifecycle
    # ------------------------------------------------------------------

    def open(self, config: DatabaseConfig, database: str | None = None) -> ConnectionHandle:
        """
        Connect and store the connection in a free slot.

        Raises:
            IntrospectionError: The driver could not connect.
        """
        connection = self._connector(config, database)
        label = f"{config.dialect.value}:{database or config.database or config.path or ''}"
        now = self._clock()
        with self._lock:
            if self._free:
                index = heapq.heappop(self._free)
            else:
                index = len(self._slots)
                self._slots.append(_Slot())
            slot = self._slots[index]
            slot.connection = connection
            slot.label = label
            slot.opened_at = now
            slot.last_used = now
            slot.checkouts = 0
            self._stats.total_opened += 1
            handle = ConnectionHandle(index, slot.generation)
        log.debug("Opened slot %d (generation %d) for %s", handle.slot, handle.generation, label)
        return handle

    def _live_slot(self, handle: ConnectionHandle) -> _Slot:
        # caller holds the lock
        if not 0 <= handle.slot < len(self._slots):
            raise StaleHandleError(f"Unknown connection handle {handle}")
        slot = self._slots[handle.slot]
        if slot.generation != handle.generation or not slot.occupied:
            raise StaleHandleError(
                f"Connection handle {handle} is stale (slot now at generation {slot.generation})"
            )
        return slot

    def get(self, handle: ConnectionHandle) -> Any:
        """
        Return the connection behind *handle* and mark it used.

        Raises:
            StaleHandleError: The slot was released, swept or reissued.
        """
        with self._lock:
            slot = self._live_slot(handle)
            slot.last_used = self._clock()
            return slot.connection

    def release(self, handle: ConnectionHandle) -> bool:
        """
        Close the connection and free its slot.

        Returns:
            ``False`` when *handle* was already stale, ``True`` otherwise.
        """
        with self._lock:
            try:
                slot = self._live_slot(handle)
            except StaleHandleError:
                return False
            connection, label = self._vacate(handle.slot, slot)
            self._stats.total_released += 1
        _close_quietly(connection, label)
        log.debug("Released slot %d (%s)", handle.slot, label)
        return True

    def _vacate(self, index: int, slot: _Slot) -> tuple[Any, str]:
        # caller holds the lock
        connection, label = slot.connection, slot.label
        slot.connection = None
        slot.label = ""
        slot.checkouts = 0
        slot.generation += 1
        heapq.heappush(self._free, index)
        return connection, label

    @contextmanager
    def session(self, config: DatabaseConfig, database: str | None = None) -> Iterator[Any]:
        """
        Open a connection for the duration of a ``with`` block.

        The slot is exempt from sweeping while checked out and is released
        on exit, also when the block raises.
        """
        handle = self.open(config, database)
        with self._lock:
            self._live_slot(handle).checkouts += 1
        try:
            yield self.get(handle)
        finally:
            self.release(handle)

    # ------------------------------------------------------------------
    # Idle sweep
    # ------------------------------------------------------------------

    def sweep(self, now: float | None = None) -> int:
        """
        Release every slot idle for longer than the idle timeout.

        Returns:
            Number of connections evicted.
        """
        now = self._clock() if now is None else now
        evicted: list[tuple[Any, str]] = []
        with self._lock:
            for index, slot in enumerate(self._slots):
                if not slot.occupied or slot.checkouts:
                    continue
                if now - slot.last_used > self._idle_timeout:
                    evicted.append(self._vacate(index, slot))
            self._stats.total_swept += len(evicted)
        for connection, label in evicted:
            log.info("Evicting idle connection %s", label)
            _close_quietly(connection, label)
        return len(evicted)

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:
                log.exception("Connection sweep failed")

    def start_sweeper(self) -> None:
        """Start the background sweep thread (no-op when already running)."""
        if self._sweeper and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="connection-sweeper", daemon=True
        )
        self._sweeper.start()
        log.info(
            "Connection sweeper started (interval %s, idle timeout %s)",
            format_duration(self._sweep_interval), format_duration(self._idle_timeout),
        )

    def stop_sweeper(self, timeout: float | None = 5.0) -> None:
        """Stop the background sweep thread and wait for it to exit."""
        self._stop.set()
        if self._sweeper:
            self._sweeper.join(timeout)
        self._sweeper = None

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------

    def close_all(self) -> int:
        """Release every open connection. Returns the number closed."""
        with self._lock:
            closed = [
                self._vacate(index, slot)
                for index, slot in enumerate(self._slots)
                if slot.occupied
            ]
            self._stats.total_released += len(closed)
        for connection, label in closed:
            _close_quietly(connection, label)
        return len(closed)

    @property
    def active_count(self) -> int:
        with self._lock:
            return sum(1 for slot in self._slots if slot.occupied)

    def stats(self) -> RegistryStats:
        """Snapshot of registry counters."""
        now = self._clock()
        with self._lock:
            occupied = [slot for slot in self._slots if slot.occupied]
            by_label: dict[str, int] = {}
            for slot in occupied:
                by_label[slot.label] = by_label.get(slot.label, 0) + 1
            return RegistryStats(
                open_connections=len(occupied),
                total_opened=self._stats.total_opened,
                total_released=self._stats.total_released,
                total_swept=self._stats.total_swept,
                oldest_idle_seconds=max((now - s.last_used for s in occupied), default=0.0),
                by_label=by_label,
            )


# Global instance
_registry: Optional[ConnectionRegistry] = None
_registry_lock = threading.Lock()


def get_connection_registry() -> ConnectionRegistry:
    """Get the singleton connection registry instance."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = ConnectionRegistry()
        return _registry
