"""Root conftest — shared fixtures over a temporary SQLite database.

Invariants:
    - Every test gets a fresh database file, so separate connections see committed state
    - The handle fixture's connection has the users table and no open transaction

Design Decisions:
    - sqlite+aiosqlite instead of PostgreSQL: no external service needed, and the
      unit-of-work only uses portable Core statements
"""

import os

import pytest
from sqlalchemy import func, select, text

from txdemo.db.schema import ensure_schema
from txdemo.infrastructure.database import DatabaseConnectionProvider
from txdemo.models.user import User

# Ensure tests never reach a real server through the default settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'txdemo.db'}"


@pytest.fixture
async def provider(database_url):
    provider = DatabaseConnectionProvider(database_url)
    yield provider
    await provider.dispose()


@pytest.fixture
async def handle(provider):
    async with await provider.connect() as handle:
        await ensure_schema(handle.connection)
        yield handle


@pytest.fixture
def count_users(provider):
    """Count rows from a separate connection (only committed rows are visible)."""
    async def _count(name: str | None = None) -> int:
        stmt = select(func.count()).select_from(User)
        if name is not None:
            stmt = stmt.where(User.name == name)
        async with await provider.connect() as other:
            result = await other.connection.execute(stmt)
            return result.scalar_one()
    return _count


@pytest.fixture
async def pets_adopting_users(handle):
    """Every inserted user adopts a pet, so deleting the user fails at COMMIT.

    The pets foreign key is deferred; the violation surfaces only when the
    transaction commits. Yields the trigger name so tests can drop it.
    """
    for ddl in (
        "PRAGMA foreign_keys=ON",
        "CREATE TABLE pets (id INTEGER PRIMARY KEY, owner_id INTEGER NOT NULL "
        "REFERENCES users(id) DEFERRABLE INITIALLY DEFERRED)",
        "CREATE TRIGGER adopt_pet AFTER INSERT ON users "
        "BEGIN INSERT INTO pets (owner_id) VALUES (NEW.id); END",
    ):
        await handle.connection.execute(text(ddl))
    await handle.connection.commit()
    yield "adopt_pet"
