"""Unit of Work — begin, insert, update, select, delete, commit as one atomic group.

Invariants:
    - Steps run strictly in order, each awaiting the previous server round-trip
    - Values travel as bound parameters, never interpolated into SQL text
    - Affected-row counts of update/delete are not checked: zero rows is success
    - Any failure abandons the transaction without commit, rolling back every write

Design Decisions:
    - A linear pipeline, no state machine: there is exactly one execution path
    - Each statement is its own coroutine so it can be exercised in isolation
    - Progress lines go through an echo callable (print by default), logs stay on stderr
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from txdemo.core.domain_types import (
    DemoUser, UnitOfWorkStep, UserRecord, decode_user_row,
)
from txdemo.core.errors import DecodeError, StatementError
from txdemo.infrastructure.database import commit, transaction
from txdemo.infrastructure.observability import log_error
from txdemo.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class UnitOfWorkReport:
    """What a completed unit-of-work did."""
    steps: list[UnitOfWorkStep] = field(default_factory=list)
    selected: list[UserRecord] = field(default_factory=list)


def _statement_failed(step: UnitOfWorkStep, e: SQLAlchemyError) -> StatementError:
    return log_error(logger, StatementError(str(e), step.value))


async def insert_user(connection: AsyncConnection, name: str, age: int) -> None:
    try:
        await connection.execute(insert(User).values(name=name, age=age))
    except SQLAlchemyError as e:
        raise _statement_failed(UnitOfWorkStep.INSERT, e) from e


async def update_age(connection: AsyncConnection, name: str, age: int) -> None:
    """Set age on every row named name. Matching nothing is not an error."""
    try:
        await connection.execute(
            update(User).where(User.name == name).values(age=age),
        )
    except SQLAlchemyError as e:
        raise _statement_failed(UnitOfWorkStep.UPDATE, e) from e


async def select_users(connection: AsyncConnection, name: str) -> list[UserRecord]:
    """Fetch (id, name, age) rows named name and decode them positionally."""
    try:
        result = await connection.execute(
            select(User.id, User.name, User.age).where(User.name == name),
        )
        rows = result.all()
    except SQLAlchemyError as e:
        raise _statement_failed(UnitOfWorkStep.SELECT, e) from e
    try:
        return [decode_user_row(tuple(row)) for row in rows]
    except DecodeError as e:
        log_error(logger, e)
        raise


async def delete_users(connection: AsyncConnection, name: str) -> None:
    try:
        await connection.execute(delete(User).where(User.name == name))
    except SQLAlchemyError as e:
        raise _statement_failed(UnitOfWorkStep.DELETE, e) from e


async def run_unit_of_work(
    connection: AsyncConnection,
    user: DemoUser = DemoUser(),
    echo: Callable[[str], None] = print,
) -> UnitOfWorkReport:
    """Run the fixed insert/update/select/delete sequence in one transaction.

    Not safe to call concurrently on the same connection: the connection may
    hold only one open transaction, so callers must serialize access.
    """
    report = UnitOfWorkReport()

    def done(step: UnitOfWorkStep, line: str, **extra) -> None:
        report.steps.append(step)
        logger.debug(line, extra={"step": step.value, **extra})
        echo(line)

    async with transaction(connection) as tx:
        done(UnitOfWorkStep.BEGIN, "Transaction started.")

        await insert_user(connection, user.name, user.initial_age)
        done(
            UnitOfWorkStep.INSERT,
            f"Row inserted: name = {user.name}, age = {user.initial_age}.",
            user_name=user.name,
        )

        await update_age(connection, user.name, user.updated_age)
        done(
            UnitOfWorkStep.UPDATE,
            f"Row updated: name = {user.name}, age = {user.updated_age}.",
            user_name=user.name,
        )

        records = await select_users(connection, user.name)
        for record in records:
            echo(f"Selected row - id: {record.id}, name: {record.name}, age: {record.age}")
        report.selected = records
        done(
            UnitOfWorkStep.SELECT,
            f"Selected {len(records)} row(s).",
            user_name=user.name, row_count=len(records),
        )

        await delete_users(connection, user.name)
        done(
            UnitOfWorkStep.DELETE,
            f"Row deleted: name = {user.name}.",
            user_name=user.name,
        )

        await commit(tx)
        done(UnitOfWorkStep.COMMIT, "Transaction committed.")

    return report
