"""Connection Provider — one async connection, its detached driver task, and transaction scoping.

Invariants:
    - One engine per provider, NullPool: every connect() opens a fresh server session
    - All SQLAlchemy/driver exceptions mapped to typed TxDemoError subclasses (core/errors.py)
    - The driver task never raises into the caller: its failures are logged only
    - A transaction left without commit (including on exception) is rolled back on exit
    - At most one transaction per connection; ConnectionHandle is not safe for concurrent callers

Design Decisions:
    - Driver task watches asyncpg termination listeners: a dead transport is logged
      immediately and surfaces to the foreground as an error on the next operation
    - transaction() never commits implicitly: commit() is an explicit, separately-mapped step
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection, AsyncTransaction, create_async_engine,
)
from sqlalchemy.pool import NullPool

from txdemo.core.errors import (
    CommitError, DatabaseConnectionError, TransactionStartError,
)
from txdemo.infrastructure.observability import log_error

logger = logging.getLogger(__name__)


async def _drive_connection(terminated: asyncio.Future) -> None:
    """Park until the connection closes; report an abnormal end to the log."""
    try:
        await terminated
    except DatabaseConnectionError as e:
        log_error(logger, e)


class ConnectionHandle:
    """A live database session plus the task watching its transport."""

    def __init__(self, connection: AsyncConnection, driver_connection: Any = None):
        self.connection = connection
        self._closing = False
        self._terminated: asyncio.Future = asyncio.get_running_loop().create_future()
        self._watch(driver_connection)
        self.driver = asyncio.create_task(
            _drive_connection(self._terminated), name="txdemo-connection-driver",
        )

    def _watch(self, driver_connection: Any) -> None:
        add_listener = getattr(driver_connection, "add_termination_listener", None)
        if add_listener is not None:
            add_listener(self._on_terminated)

    def _on_terminated(self, _driver_connection: Any) -> None:
        if self._terminated.done():
            return
        if self._closing:
            self._terminated.set_result(None)
        else:
            self._terminated.set_exception(
                DatabaseConnectionError("connection terminated unexpectedly"),
            )

    async def close(self) -> None:
        """Close the connection and let the driver task finish."""
        if self._closing:
            return
        self._closing = True
        try:
            await self.connection.close()
        finally:
            if not self._terminated.done():
                self._terminated.set_result(None)
            await self.driver

    async def __aenter__(self) -> "ConnectionHandle":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class DatabaseConnectionProvider:
    """Opens connections to one database URL."""

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = create_async_engine(
            database_url, echo=echo, poolclass=NullPool,
        )

    async def connect(self) -> ConnectionHandle:
        """Open one connection and start its driver task."""
        try:
            connection = await self.engine.connect()
        except (SQLAlchemyError, OSError) as e:
            raise log_error(logger, DatabaseConnectionError(str(e))) from e
        try:
            raw = await connection.get_raw_connection()
        except SQLAlchemyError as e:
            await connection.close()
            raise log_error(logger, DatabaseConnectionError(str(e))) from e
        logger.debug(f"Connected to {self.engine.url.render_as_string(hide_password=True)}")
        return ConnectionHandle(connection, raw.driver_connection)

    async def ping(self) -> None:
        """Run SELECT 1 on a throwaway connection; raises DatabaseConnectionError."""
        async with await self.connect() as handle:
            try:
                await handle.connection.execute(text("SELECT 1"))
            except SQLAlchemyError as e:
                raise log_error(logger, DatabaseConnectionError(str(e))) from e

    async def dispose(self) -> None:
        await self.engine.dispose()


@asynccontextmanager
async def transaction(
    connection: AsyncConnection,
) -> AsyncGenerator[AsyncTransaction, None]:
    """Begin a transaction; roll it back on exit unless it was committed."""
    if connection.closed or connection.invalidated:
        raise log_error(
            logger, TransactionStartError("connection is closed or has failed"),
        )
    tx = connection.begin()
    try:
        await tx.start()
    except SQLAlchemyError as e:
        raise log_error(logger, TransactionStartError(str(e))) from e
    try:
        yield tx
    finally:
        if tx.is_active:
            await _rollback(tx)


async def _rollback(tx: AsyncTransaction) -> None:
    try:
        await tx.rollback()
        logger.info("Transaction rolled back")
    except SQLAlchemyError as e:
        # the server discards the transaction with the session
        logger.warning(f"DB rollback failed: {e}")


async def commit(tx: AsyncTransaction) -> None:
    """Commit tx, mapping a server-side rejection to CommitError.

    A rejected commit leaves the transaction inactive but still pending a
    rollback; it is rolled back here so the connection can begin again.
    """
    try:
        await tx.commit()
    except SQLAlchemyError as e:
        err = log_error(logger, CommitError(str(e)))
        await _rollback(tx)
        await _rollback_driver(tx.connection)
        raise err from e


async def _rollback_driver(connection: AsyncConnection) -> None:
    """Roll back on the DBAPI connection itself.

    After a rejected COMMIT, SQLAlchemy's rollback only clears its own state;
    SQLite keeps the failed transaction open until the driver rolls it back.
    """
    try:
        await connection.run_sync(
            lambda sync_conn: sync_conn.connection.dbapi_connection.rollback(),
        )
    except (SQLAlchemyError, connection.dialect.loaded_dbapi.Error) as e:
        logger.warning(f"Driver rollback failed: {e}")
