"""Tests for the fingerprint-keyed connection pool."""

import asyncio

import pytest

from tether.connections.pool import ConnectionPool


class FakeConnection:
    def __init__(self, name: str = "conn"):
        self.name = name
        self.closed = False
        self.close_calls = 0
        self._close_callbacks = []
        self._error_callbacks = []

    @property
    def is_open(self) -> bool:
        return not self.closed

    def on_close(self, callback):
        self._close_callbacks.append(callback)

    def on_error(self, callback):
        self._error_callbacks.append(callback)

    async def close(self):
        self.close_calls += 1
        if self.closed:
            return
        self.closed = True
        for callback in self._close_callbacks:
            callback()

    def fail(self, error: BaseException):
        for callback in self._error_callbacks:
            callback(error)


class CountingFactory:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls = 0
        self.created: list[FakeConnection] = []

    async def __call__(self) -> FakeConnection:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        connection = FakeConnection(f"conn-{self.calls}")
        self.created.append(connection)
        return connection


class TestGetOrCreate:
    async def test_reuses_connection_within_idle_window(self):
        # Arrange
        pool = ConnectionPool(idle_timeout=10)
        factory = CountingFactory()

        # Act
        first = await pool.get_or_create("fp", factory)
        second = await pool.get_or_create("fp", factory)

        # Assert
        assert first is second
        assert factory.calls == 1
        assert "fp" in pool
        await pool.shutdown()

    async def test_different_fingerprints_get_different_connections(self):
        pool = ConnectionPool(idle_timeout=10)
        factory = CountingFactory()

        a = await pool.get_or_create("a", factory)
        b = await pool.get_or_create("b", factory)

        assert a is not b
        assert len(pool) == 2
        await pool.shutdown()

    async def test_concurrent_first_callers_share_one_creation(self):
        # Arrange
        pool = ConnectionPool(idle_timeout=10)
        factory = CountingFactory(delay=0.05)

        # Act
        results = await asyncio.gather(
            *(pool.get_or_create("fp", factory) for _ in range(5))
        )

        # Assert
        assert factory.calls == 1
        assert all(result is results[0] for result in results)
        await pool.shutdown()

    async def test_factory_failure_propagates_and_is_not_cached(self):
        # Arrange
        pool = ConnectionPool(idle_timeout=10)

        async def failing():
            raise ConnectionError("refused")

        # Act / Assert
        with pytest.raises(ConnectionError):
            await pool.get_or_create("fp", failing)

        assert "fp" not in pool
        factory = CountingFactory()
        assert await pool.get_or_create("fp", factory) is factory.created[0]
        await pool.shutdown()

    async def test_closed_handle_is_replaced(self):
        pool = ConnectionPool(idle_timeout=10)
        factory = CountingFactory()
        first = await pool.get_or_create("fp", factory)
        first.closed = True  # closed without notifying

        second = await pool.get_or_create("fp", factory)

        assert second is not first
        assert factory.calls == 2
        await pool.shutdown()


class TestIdleEviction:
    async def test_evicts_after_idle_timeout(self):
        # Arrange
        pool = ConnectionPool(idle_timeout=0.05)
        factory = CountingFactory()
        connection = await pool.get_or_create("fp", factory)

        # Act
        await asyncio.sleep(0.2)

        # Assert
        assert "fp" not in pool
        assert connection.closed
        replacement = await pool.get_or_create("fp", factory)
        assert replacement is not connection
        await pool.shutdown()

    async def test_use_resets_idle_timer(self):
        # Arrange
        pool = ConnectionPool(idle_timeout=0.2)
        factory = CountingFactory()
        connection = await pool.get_or_create("fp", factory)

        # Act - keep touching it for longer than one timeout
        for _ in range(4):
            await asyncio.sleep(0.1)
            assert await pool.get_or_create("fp", factory) is connection

        # Assert
        assert factory.calls == 1
        assert not connection.closed
        await pool.shutdown()


class TestLifecycleHooks:
    async def test_close_notification_removes_entry(self):
        pool = ConnectionPool(idle_timeout=10)
        connection = await pool.get_or_create("fp", CountingFactory())

        await connection.close()

        assert "fp" not in pool

    async def test_error_notification_removes_and_closes(self):
        # Arrange
        pool = ConnectionPool(idle_timeout=10)
        connection = await pool.get_or_create("fp", CountingFactory())

        # Act
        connection.fail(RuntimeError("stream reset"))

        # Assert
        assert "fp" not in pool
        await asyncio.sleep(0)
        assert connection.closed

    async def test_explicit_close(self):
        pool = ConnectionPool(idle_timeout=10)
        connection = await pool.get_or_create("fp", CountingFactory())

        await pool.close("fp")
        await pool.close("missing")

        assert connection.closed
        assert len(pool) == 0


class TestShutdown:
    async def test_shutdown_closes_everything(self):
        # Arrange
        factory = CountingFactory()
        async with ConnectionPool(idle_timeout=10) as pool:
            await pool.get_or_create("a", factory)
            await pool.get_or_create("b", factory)

        # Assert
        assert len(pool) == 0
        assert all(connection.closed for connection in factory.created)
        assert all(connection.close_calls == 1 for connection in factory.created)

    async def test_close_errors_are_logged_not_raised(self):
        class BrokenConnection(FakeConnection):
            async def close(self):
                raise OSError("already gone")

        pool = ConnectionPool(idle_timeout=10)

        async def factory():
            return BrokenConnection()

        await pool.get_or_create("fp", factory)

        await pool.shutdown()

        assert len(pool) == 0
