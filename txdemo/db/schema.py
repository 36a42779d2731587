"""Schema Bootstrap — idempotent CREATE TABLE IF NOT EXISTS for the users table.

Invariants:
    - Running ensure_schema any number of times never fails and never touches rows
    - Runs in its own begin/commit block, so the connection is idle afterwards
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from txdemo.core.errors import StatementError
from txdemo.db.base import Base
from txdemo.infrastructure.observability import log_error
import txdemo.models  # noqa: F401

logger = logging.getLogger(__name__)


async def ensure_schema(connection: AsyncConnection) -> None:
    """Create every table in Base.metadata that does not exist yet."""
    try:
        async with connection.begin():
            await connection.run_sync(Base.metadata.create_all, checkfirst=True)
    except SQLAlchemyError as e:
        raise log_error(logger, StatementError(str(e), "bootstrap")) from e
    logger.debug("Schema ready", extra={"step": "bootstrap"})
