"""Unit tests for the ERP connection pool manager.

SQLite engines stand in for SQL Server: the handshake (SELECT 1) and the
handle_error event behave the same through SQLAlchemy.
"""

import asyncio

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from unittest.mock import patch

from connectors.pool_manager import ErpPoolManager, PoolState, create_mssql_engine
from connectors.ports import ConfigurationError, ConnectionFailedError


class RecordingEngineFactory:
    """Engine factory that builds SQLite engines and remembers its calls."""

    def __init__(self, url="sqlite://"):
        self.url = url
        self.calls = []
        self.engines = []

    def __call__(self, connection_settings, password, timeout_seconds, pool_size):
        self.calls.append({
            "host": connection_settings.host,
            "password": password,
            "timeout": timeout_seconds,
            "pool_size": pool_size,
        })
        engine = create_engine(self.url)
        self.engines.append(engine)
        return engine


@pytest.fixture
def engine_factory():
    return RecordingEngineFactory()


@pytest.fixture
def manager(settings_store, vault, engine_factory):
    return ErpPoolManager(settings_store, vault, engine_factory)


@pytest.fixture
def configured(saved_settings, vault):
    vault.save(saved_settings.identity, "s3cret")
    return saved_settings


class TestGetPool:

    @pytest.mark.asyncio
    async def test_creates_pool_with_live_limits(self, manager, engine_factory, configured):
        pool = await manager.get_pool()

        assert pool.state == PoolState.CONNECTED
        assert manager.state == PoolState.CONNECTED
        assert engine_factory.calls == [
            {"host": "wawi.example.local", "password": "s3cret", "timeout": 15, "pool_size": 10}
        ]

    @pytest.mark.asyncio
    async def test_pool_is_reused(self, manager, engine_factory, configured):
        first = await manager.get_pool()
        second = await manager.get_pool()

        assert first is second
        assert len(engine_factory.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_pool(self, manager, engine_factory, configured):
        pools = await asyncio.gather(*(manager.get_pool() for _ in range(5)))

        assert all(pool is pools[0] for pool in pools)
        assert len(engine_factory.calls) == 1

    @pytest.mark.asyncio
    async def test_pool_executes_queries(self, manager, configured):
        pool = await manager.get_pool()

        with pool.connect() as conn:
            assert conn.execute(text("SELECT 42")).scalar() == 42

    @pytest.mark.asyncio
    async def test_missing_settings_raise_configuration_error(self, manager, engine_factory, vault):
        with pytest.raises(ConfigurationError):
            await manager.get_pool()

        assert engine_factory.calls == []

    @pytest.mark.asyncio
    async def test_missing_password_raises_configuration_error(self, manager, engine_factory, saved_settings):
        with pytest.raises(ConfigurationError) as exc_info:
            await manager.get_pool()

        assert "password" in str(exc_info.value).lower()
        assert engine_factory.calls == []

    @pytest.mark.asyncio
    async def test_failed_handshake_raises_connection_failed(self, settings_store, vault, configured):
        factory = RecordingEngineFactory("sqlite:////nonexistent-dir/erp.db")
        manager = ErpPoolManager(settings_store, vault, factory)

        with pytest.raises(ConnectionFailedError) as exc_info:
            await manager.get_pool()

        assert exc_info.value.original_message == "unable to open database file"
        assert "unable to open database file" in str(exc_info.value)
        assert manager.state == PoolState.ABSENT


class TestSelfHeal:

    @pytest.mark.asyncio
    async def test_error_event_tears_pool_down(self, manager, configured):
        pool = await manager.get_pool()

        manager.handle_pool_error(pool, OperationalError("SELECT 1", {}, Exception("Communication link failure")))

        assert pool.state == PoolState.ERRORED
        assert manager.state == PoolState.ABSENT

    @pytest.mark.asyncio
    async def test_next_get_pool_builds_fresh_pool(self, manager, engine_factory, configured):
        broken = await manager.get_pool()
        manager.handle_pool_error(broken, Exception("Connection reset"))

        fresh = await manager.get_pool()

        assert fresh is not broken
        assert fresh.state == PoolState.CONNECTED
        assert len(engine_factory.calls) == 2

    @pytest.mark.asyncio
    async def test_disconnect_through_engine_triggers_listener(self, manager, engine_factory, configured):
        pool = await manager.get_pool()
        pool.engine.dialect.is_disconnect = lambda *args, **kwargs: True

        with pytest.raises(OperationalError):
            with pool.connect() as conn:
                conn.execute(text("SELECT * FROM no_such_table"))

        assert pool.state == PoolState.ERRORED
        assert manager.state == PoolState.ABSENT

        fresh = await manager.get_pool()
        assert fresh is not pool
        assert fresh.state == PoolState.CONNECTED
        assert len(engine_factory.calls) == 2

    @pytest.mark.asyncio
    async def test_statement_errors_do_not_tear_pool_down(self, manager, configured):
        pool = await manager.get_pool()

        with pytest.raises(OperationalError):
            with pool.connect() as conn:
                conn.execute(text("SELECT * FROM no_such_table"))

        assert pool.state == PoolState.CONNECTED
        assert await manager.get_pool() is pool


class TestClosePool:

    @pytest.mark.asyncio
    async def test_close_pool_resets_state(self, manager, engine_factory, configured):
        await manager.get_pool()

        await manager.close_pool()

        assert manager.state == PoolState.ABSENT
        await manager.get_pool()
        assert len(engine_factory.calls) == 2

    @pytest.mark.asyncio
    async def test_close_without_pool_is_noop(self, manager):
        await manager.close_pool()

        assert manager.state == PoolState.ABSENT


class TestTestConnection:

    @pytest.mark.asyncio
    async def test_success_uses_isolated_engine(self, manager, engine_factory, connection_settings):
        ok = await manager.test_connection(connection_settings, "s3cret")

        assert ok is True
        assert engine_factory.calls[0]["pool_size"] == 1
        assert engine_factory.calls[0]["timeout"] == 5
        assert manager.state == PoolState.ABSENT

    @pytest.mark.asyncio
    async def test_does_not_touch_live_pool(self, manager, configured):
        live = await manager.get_pool()

        assert await manager.test_connection(configured, "other") is True
        assert await manager.get_pool() is live

    @pytest.mark.asyncio
    async def test_failure_returns_false(self, settings_store, vault, connection_settings):
        manager = ErpPoolManager(settings_store, vault, RecordingEngineFactory("sqlite:////nonexistent-dir/erp.db"))

        assert await manager.test_connection(connection_settings, "s3cret") is False

    @pytest.mark.asyncio
    async def test_without_password_returns_false(self, manager, engine_factory, connection_settings):
        assert await manager.test_connection(connection_settings, None) is False
        assert engine_factory.calls == []


class TestMssqlEngine:

    def test_url_carries_driver_and_tls_flags(self, connection_settings):
        with patch("connectors.pool_manager.create_engine") as mock_create_engine, \
                patch("connectors.pool_manager.event.listens_for", return_value=lambda fn: fn):
            create_mssql_engine(connection_settings, "s3cret", 15, 10)

        url = mock_create_engine.call_args.args[0]
        kwargs = mock_create_engine.call_args.kwargs
        assert url.drivername == "mssql+pyodbc"
        assert url.host == "wawi.example.local"
        assert url.port == 1433
        assert url.database == "eazybusiness"
        assert url.query["Encrypt"] == "yes"
        assert url.query["TrustServerCertificate"] == "yes"
        assert kwargs["pool_size"] == 10
        assert kwargs["max_overflow"] == 0
        assert kwargs["pool_timeout"] == 15
        assert kwargs["connect_args"] == {"timeout": 15}
