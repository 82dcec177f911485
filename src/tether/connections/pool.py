"""Keyed cache of live MCP server connections with idle eviction."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Awaitable, Callable, Self

from tether.connections.transport import ResourceConnection

logger = logging.getLogger(__name__)

ConnectFactory = Callable[[], Awaitable[ResourceConnection]]


@dataclass
class PoolEntry:
    """A pooled connection and its idle bookkeeping."""

    handle: ResourceConnection
    last_used_at: float
    timer: asyncio.TimerHandle | None = None


class ConnectionPool:
    """Caches one connection per configuration fingerprint.

    Each entry carries a single-shot idle timer that is rescheduled on every
    use. Concurrent first callers for the same fingerprint share one in-flight
    creation instead of each opening a connection.
    """

    def __init__(self, idle_timeout: float = 180.0):
        self.idle_timeout = idle_timeout
        self._entries: dict[str, PoolEntry] = {}
        self._pending: dict[str, asyncio.Task[ResourceConnection]] = {}
        self._closing: set[asyncio.Task[None]] = set()

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_create(
        self, fingerprint: str, connect_factory: ConnectFactory
    ) -> ResourceConnection:
        """Return the cached connection for a fingerprint or create one.

        Args:
            fingerprint: Fingerprint of the full effective configuration
            connect_factory: Opens a new connection on a cache miss

        Returns:
            The pooled connection handle

        Raises:
            Exception: Whatever ``connect_factory`` raised
        """
        entry = self._entries.get(fingerprint)
        if entry is not None:
            if entry.handle.is_open:
                self._touch(entry, fingerprint)
                return entry.handle
            self._discard(fingerprint, entry.handle)

        pending = self._pending.get(fingerprint)
        if pending is None:
            pending = asyncio.create_task(self._create(fingerprint, connect_factory))
            self._pending[fingerprint] = pending
        else:
            logger.debug(f"Joining in-flight connection attempt for {fingerprint}")

        return await asyncio.shield(pending)

    async def close(self, fingerprint: str) -> None:
        """Close and forget the connection for a fingerprint, if any."""
        entry = self._entries.pop(fingerprint, None)
        if entry is None:
            return
        if entry.timer is not None:
            entry.timer.cancel()
        await self._close_handle(entry.handle)

    async def shutdown(self) -> None:
        """Close every connection, cancel every timer and pending creation."""
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()

        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            if entry.timer is not None:
                entry.timer.cancel()
        for entry in entries:
            await self._close_handle(entry.handle)

        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        logger.info(f"Connection pool shut down, closed {len(entries)} connections")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()
        return None

    async def _create(
        self, fingerprint: str, connect_factory: ConnectFactory
    ) -> ResourceConnection:
        try:
            handle = await connect_factory()
        finally:
            self._pending.pop(fingerprint, None)

        loop = asyncio.get_running_loop()
        entry = PoolEntry(handle=handle, last_used_at=loop.time())
        self._entries[fingerprint] = entry
        handle.on_close(lambda: self._discard(fingerprint, handle))
        handle.on_error(lambda error: self._on_error(fingerprint, handle, error))
        self._schedule(entry, fingerprint, self.idle_timeout)

        logger.info(f"Created pooled connection {fingerprint}")
        return handle

    def _touch(self, entry: PoolEntry, fingerprint: str) -> None:
        entry.last_used_at = asyncio.get_running_loop().time()
        if entry.timer is not None:
            entry.timer.cancel()
        self._schedule(entry, fingerprint, self.idle_timeout)

    def _schedule(self, entry: PoolEntry, fingerprint: str, delay: float) -> None:
        entry.timer = asyncio.get_running_loop().call_later(
            delay, self._on_idle_timeout, fingerprint, entry
        )

    def _on_idle_timeout(self, fingerprint: str, entry: PoolEntry) -> None:
        if self._entries.get(fingerprint) is not entry:
            return

        idle_for = asyncio.get_running_loop().time() - entry.last_used_at
        if idle_for < self.idle_timeout:
            # Fired early (clock resolution); wait out the remainder
            self._schedule(entry, fingerprint, self.idle_timeout - idle_for)
            return

        del self._entries[fingerprint]
        entry.timer = None
        logger.info(f"Evicting idle connection {fingerprint}")
        self._close_in_background(entry.handle)

    def _discard(self, fingerprint: str, handle: ResourceConnection) -> None:
        """Drop the entry for ``handle`` if it is still the pooled one."""
        entry = self._entries.get(fingerprint)
        if entry is None or entry.handle is not handle:
            return
        if entry.timer is not None:
            entry.timer.cancel()
        del self._entries[fingerprint]
        logger.debug(f"Removed pooled connection {fingerprint}")

    def _on_error(
        self, fingerprint: str, handle: ResourceConnection, error: BaseException
    ) -> None:
        logger.warning(f"Pooled connection {fingerprint} failed: {error}")
        self._discard(fingerprint, handle)
        self._close_in_background(handle)

    def _close_in_background(self, handle: ResourceConnection) -> None:
        task = asyncio.get_running_loop().create_task(self._close_handle(handle))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_handle(self, handle: ResourceConnection) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.warning(f"Error closing pooled connection: {e}")
