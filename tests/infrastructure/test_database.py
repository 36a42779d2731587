"""Connection Provider — verifies connect, the detached driver task, and transaction scoping.

Invariants:
    - connect() failures surface as DatabaseConnectionError
    - The driver task logs transport termination and never raises
    - transaction() rolls back anything not committed
    - Beginning twice on one connection is a TransactionStartError
"""

import logging

import pytest
from sqlalchemy import delete, insert, text
from sqlalchemy.exc import IntegrityError, OperationalError

from txdemo.core.errors import (
    CommitError, DatabaseConnectionError, TransactionStartError,
)
from txdemo.infrastructure.database import (
    ConnectionHandle, DatabaseConnectionProvider, commit, transaction,
)
from txdemo.models.user import User


class _FakeDriverConnection:
    """Stands in for an asyncpg connection's termination listener API."""

    def __init__(self):
        self.listeners = []

    def add_termination_listener(self, callback):
        self.listeners.append(callback)

    def terminate(self):
        for callback in self.listeners:
            callback(self)


async def test_connect_starts_driver_task(provider):
    async with await provider.connect() as handle:
        assert not handle.connection.closed
        assert not handle.driver.done()
    assert handle.connection.closed
    assert handle.driver.done()
    assert handle.driver.exception() is None


async def test_close_is_idempotent(provider):
    handle = await provider.connect()
    await handle.close()
    await handle.close()
    assert handle.driver.done()


async def test_connect_failure_is_connection_error(tmp_path):
    provider = DatabaseConnectionProvider(
        f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}",
    )
    try:
        with pytest.raises(DatabaseConnectionError) as exc:
            await provider.connect()
        assert exc.value.__cause__ is not None
    finally:
        await provider.dispose()


async def test_driver_logs_unexpected_termination(provider, caplog):
    fake = _FakeDriverConnection()
    connection = await provider.engine.connect()
    handle = ConnectionHandle(connection, fake)

    with caplog.at_level(logging.ERROR, logger="txdemo.infrastructure.database"):
        fake.terminate()
        await handle.driver

    assert handle.driver.exception() is None
    assert "connection terminated unexpectedly" in caplog.text
    await handle.close()


async def test_driver_is_quiet_on_requested_close(provider, caplog):
    fake = _FakeDriverConnection()
    connection = await provider.engine.connect()
    handle = ConnectionHandle(connection, fake)

    with caplog.at_level(logging.ERROR, logger="txdemo.infrastructure.database"):
        handle._closing = True
        fake.terminate()
        await handle.driver

    await connection.close()

    assert "terminated" not in caplog.text


async def test_ping_reachable(provider):
    await provider.ping()


async def test_ping_unreachable_keeps_driver_error(tmp_path):
    provider = DatabaseConnectionProvider(
        f"sqlite+aiosqlite:///{tmp_path / 'nope' / 'x.db'}",
    )
    try:
        with pytest.raises(DatabaseConnectionError) as exc:
            await provider.ping()
        assert isinstance(exc.value.__cause__, OperationalError)
        assert "unable to open database file" in exc.value.message
    finally:
        await provider.dispose()


async def test_uncommitted_transaction_rolls_back(handle, count_users):
    async with transaction(handle.connection):
        await handle.connection.execute(insert(User).values(name="Eve", age=40))
    assert await count_users() == 0
    assert not handle.connection.in_transaction()


async def test_transaction_rolls_back_on_exception(handle, count_users):
    with pytest.raises(RuntimeError):
        async with transaction(handle.connection):
            await handle.connection.execute(insert(User).values(name="Eve", age=40))
            raise RuntimeError("abandoned")
    assert await count_users() == 0


async def test_committed_transaction_persists(handle, count_users):
    async with transaction(handle.connection) as tx:
        await handle.connection.execute(insert(User).values(name="Eve", age=40))
        await commit(tx)
    assert await count_users("Eve") == 1


async def test_begin_inside_open_transaction_fails(handle):
    outer = handle.connection.begin()
    await outer.start()
    try:
        with pytest.raises(TransactionStartError) as exc:
            async with transaction(handle.connection):
                pass
        assert exc.value.code == "TRANSACTION_START"
    finally:
        await outer.rollback()


async def test_begin_on_closed_connection_fails(provider):
    handle = await provider.connect()
    await handle.close()
    with pytest.raises(TransactionStartError):
        async with transaction(handle.connection):
            pass


async def test_commit_rejection_rolls_back_and_frees_connection(
    handle, count_users, pets_adopting_users,
):
    with pytest.raises(CommitError) as exc:
        async with transaction(handle.connection) as tx:
            await handle.connection.execute(insert(User).values(name="Eve", age=40))
            await handle.connection.execute(delete(User).where(User.name == "Eve"))
            await commit(tx)

    assert isinstance(exc.value.__cause__, IntegrityError)
    assert exc.value.context.step == "commit"
    assert not handle.connection.in_transaction()
    assert await count_users() == 0

    async with transaction(handle.connection) as tx:
        pets = await handle.connection.execute(text("SELECT count(*) FROM pets"))
        assert pets.scalar_one() == 0
        await commit(tx)
