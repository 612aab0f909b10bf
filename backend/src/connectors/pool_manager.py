"""
ERP connection pool manager

Owns the single live SQLAlchemy engine (connection pool) towards the ERP's
SQL Server. The pool is created lazily on first use from the saved connection
settings and the password in the credential vault, verified with a handshake
and torn down again when the driver reports a lost connection. The next
caller then builds a fresh pool.

All blocking driver calls are run in the default executor so the event loop
is never blocked.
"""

import asyncio
import functools
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, URL
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from observability.logging_config import mask_value
from observability.metrics import erp_pool_events_total
from .credential_vault import CredentialVault
from .error_translation import describe_connection_error
from .ports import ConfigurationError, ConnectionFailedError
from .schemas import ConnectionSettings
from .settings_store import ConnectionSettingsStore


logger = logging.getLogger(__name__)

HANDSHAKE_SQL = text("SELECT 1")

# (settings, password, timeout_seconds, pool_size) -> Engine
EngineFactory = Callable[[ConnectionSettings, str, int, int], Engine]


async def run_blocking(func, *args, **kwargs):
    """Run a blocking callable in the default executor."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


def create_mssql_engine(
    connection_settings: ConnectionSettings,
    password: str,
    timeout_seconds: int,
    pool_size: int,
) -> Engine:
    """
    Build a SQLAlchemy engine for SQL Server via pyodbc.

    Args:
        connection_settings: Saved connection settings
        password: Password from the credential vault
        timeout_seconds: Login and query timeout
        pool_size: Maximum number of pooled connections

    Returns:
        Engine (no connection is opened yet)
    """
    url = URL.create(
        "mssql+pyodbc",
        username=connection_settings.user,
        password=password,
        host=connection_settings.host,
        port=connection_settings.port,
        database=connection_settings.database,
        query={
            "driver": settings.ERP_ODBC_DRIVER,
            "Encrypt": "yes" if connection_settings.encrypt else "no",
            "TrustServerCertificate": "yes" if connection_settings.trust_server_certificate else "no",
        },
    )

    engine = create_engine(
        url,
        pool_size=pool_size,
        max_overflow=0,
        pool_timeout=timeout_seconds,
        pool_pre_ping=True,
        pool_recycle=settings.ERP_POOL_RECYCLE_SECONDS or -1,
        connect_args={"timeout": timeout_seconds},  # login timeout
    )

    @event.listens_for(engine, "connect")
    def _set_query_timeout(dbapi_connection, connection_record):
        dbapi_connection.timeout = timeout_seconds

    return engine


class PoolState(str, Enum):
    """Lifecycle of the ERP connection pool"""
    ABSENT = "ABSENT"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERRORED = "ERRORED"


class ErpPool:
    """
    One live ERP connection pool.

    Attributes:
        engine: SQLAlchemy engine holding the pooled connections
        connection_settings: Settings the pool was built from
        state: Current PoolState
        created_at: When the pool was created
    """

    def __init__(self, engine: Engine, connection_settings: ConnectionSettings):
        self.engine = engine
        self.connection_settings = connection_settings
        self.state = PoolState.CONNECTING
        self.created_at = datetime.now(timezone.utc)
        self.last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.state == PoolState.CONNECTED

    def connect(self):
        """Check out a connection from the pool."""
        return self.engine.connect()

    def mark_errored(self, error: BaseException) -> None:
        """Flag the pool as broken and release all of its connections."""
        self.state = PoolState.ERRORED
        self.last_error = str(error)
        self.dispose()

    def dispose(self) -> None:
        self.engine.dispose()
        if self.state != PoolState.ERRORED:
            self.state = PoolState.ABSENT

    def __repr__(self):
        return f"<ErpPool(server={self.connection_settings.host}, state={self.state.value})>"


class ErpPoolManager:
    """
    Single owner of the shared ERP connection pool.

    Usage:
        manager = ErpPoolManager()
        pool = await manager.get_pool()
        with pool.connect() as conn:
            ...
    """

    def __init__(
        self,
        settings_store: Optional[ConnectionSettingsStore] = None,
        vault: Optional[CredentialVault] = None,
        engine_factory: Optional[EngineFactory] = None,
    ):
        """
        Args:
            settings_store: Source of the saved connection settings
            vault: Source of the password
            engine_factory: Builds engines; defaults to create_mssql_engine
        """
        self.settings_store = settings_store or ConnectionSettingsStore()
        self.vault = vault or CredentialVault()
        self.engine_factory = engine_factory or create_mssql_engine
        self._pool: Optional[ErpPool] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> PoolState:
        if self._pool is None:
            return PoolState.ABSENT
        return self._pool.state

    async def get_pool(self) -> ErpPool:
        """
        Return the live pool, creating it if necessary.

        Creation is single-flight: concurrent callers wait for the first one
        and then share its pool.

        Raises:
            ConfigurationError: Settings or password missing
            ConnectionFailedError: Handshake against the server failed
        """
        pool = self._pool
        if pool is not None and pool.is_connected:
            erp_pool_events_total.labels(event="reused").inc()
            return pool

        async with self._lock:
            pool = self._pool
            if pool is not None and pool.is_connected:
                return pool

            if pool is not None:
                logger.info(
                    "Discarding stale ERP connection pool",
                    extra={"pool_event": "discarded", "server": pool.connection_settings.host},
                )
                self._pool = None
                await self._dispose_quietly(pool)

            self._pool = await self._create_pool()
            return self._pool

    async def _create_pool(self) -> ErpPool:
        connection_settings = self.settings_store.load()
        if connection_settings is None:
            raise ConfigurationError("ERP connection settings are not configured")

        password = self.vault.get(connection_settings.identity)
        if not password:
            raise ConfigurationError(
                "No password stored for the ERP connection. Please re-enter it in the settings."
            )

        logger.info(
            "Creating ERP connection pool",
            extra={"pool_event": "connecting", "server": connection_settings.host},
        )
        logger.debug(
            f"Connecting to {connection_settings.host}:{connection_settings.port}/"
            f"{connection_settings.database} as {mask_value(connection_settings.user)}"
        )

        engine = self.engine_factory(
            connection_settings,
            password,
            settings.ERP_CONNECT_TIMEOUT_SECONDS,
            settings.ERP_POOL_MAX_SIZE,
        )
        pool = ErpPool(engine, connection_settings)

        try:
            await run_blocking(self._handshake, engine)
        except SQLAlchemyError as e:
            parsed = describe_connection_error(e)
            logger.error(
                f"ERP connection failed: {parsed.title}",
                extra={
                    "pool_event": "connect_failed",
                    "server": connection_settings.host,
                    "error_category": parsed.category,
                    "error": parsed.original_message,
                },
            )
            erp_pool_events_total.labels(event="connect_failed").inc()
            await self._dispose_quietly(pool)
            raise ConnectionFailedError(
                f"{parsed.title}: {parsed.description} ({parsed.original_message})",
                original_message=parsed.original_message,
            )

        def _on_engine_error(context):
            # Only lost connections invalidate the pool, not failing statements
            if context.is_disconnect:
                self.handle_pool_error(pool, context.original_exception)

        event.listen(engine, "handle_error", _on_engine_error)
        pool.state = PoolState.CONNECTED

        erp_pool_events_total.labels(event="created").inc()
        logger.info(
            "ERP connection pool established",
            extra={"pool_event": "created", "server": connection_settings.host},
        )
        return pool

    @staticmethod
    def _handshake(engine: Engine) -> None:
        with engine.connect() as conn:
            conn.execute(HANDSHAKE_SQL).scalar()

    def handle_pool_error(self, pool: ErpPool, error: BaseException) -> None:
        """
        Tear down a pool after a pool-level error.

        The pool is not recreated here; the next get_pool() call does that.
        """
        if pool.state == PoolState.ERRORED:
            return

        logger.error(
            f"ERP connection pool error, closing pool: {error}",
            extra={"pool_event": "errored", "server": pool.connection_settings.host},
        )
        erp_pool_events_total.labels(event="errored").inc()

        if self._pool is pool:
            self._pool = None
        try:
            pool.mark_errored(error)
        except SQLAlchemyError as e:
            logger.warning(f"Error while disposing broken ERP pool: {e}")

    async def close_pool(self) -> None:
        """Dispose the live pool. Errors while closing are logged, not raised."""
        async with self._lock:
            pool, self._pool = self._pool, None

        if pool is None:
            return

        await self._dispose_quietly(pool)
        erp_pool_events_total.labels(event="closed").inc()
        logger.info(
            "ERP connection pool closed",
            extra={"pool_event": "closed", "server": pool.connection_settings.host},
        )

    async def _dispose_quietly(self, pool: ErpPool) -> None:
        try:
            await run_blocking(pool.dispose)
        except SQLAlchemyError as e:
            logger.warning(f"Error while closing ERP connection pool: {e}")

    async def test_connection(self, connection_settings: ConnectionSettings, password: Optional[str]) -> bool:
        """
        Try a connection with the given settings without touching the live pool.

        Uses a dedicated single-connection engine with short timeouts which is
        always disposed afterwards.

        Returns:
            True if the handshake succeeded
        """
        if not password:
            logger.warning("Connection test skipped: no password available")
            return False

        engine = self.engine_factory(
            connection_settings,
            password,
            settings.ERP_TEST_TIMEOUT_SECONDS,
            1,
        )
        try:
            await run_blocking(self._handshake, engine)
        except SQLAlchemyError as e:
            parsed = describe_connection_error(e)
            logger.warning(
                f"ERP connection test failed: {parsed.title}",
                extra={
                    "server": connection_settings.host,
                    "error_category": parsed.category,
                    "error": parsed.original_message,
                },
            )
            return False
        finally:
            try:
                await run_blocking(engine.dispose)
            except SQLAlchemyError as e:
                logger.warning(f"Error while disposing test engine: {e}")

        logger.info("ERP connection test succeeded", extra={"server": connection_settings.host})
        return True
