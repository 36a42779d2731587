"""Domain Types — the user record, the fixed demo values, and row decoding.

Invariants:
    - UserRecord is decoded from exactly three positional columns: (int, str, int)
    - None in any column is a DecodeError, never a silent default
    - UnitOfWorkStep members are listed in program order

Design Decisions:
    - NewType for UserId: zero runtime cost, full type-checker support
    - bool rejected where int is expected: bool is an int subclass in Python
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType, Sequence

from txdemo.core.errors import DecodeError


UserId = NewType("UserId", int)


class UnitOfWorkStep(str, Enum):
    """Steps of the one transaction shape, in the order they run."""
    BEGIN = "begin"
    INSERT = "insert"
    UPDATE = "update"
    SELECT = "select"
    DELETE = "delete"
    COMMIT = "commit"


@dataclass(frozen=True)
class UserRecord:
    """One decoded row of the users table."""
    id: UserId
    name: str
    age: int


@dataclass(frozen=True)
class DemoUser:
    """Values written by the unit-of-work."""
    name: str = "Bob"
    initial_age: int = 25
    updated_age: int = 30


_COLUMNS = (("id", int), ("name", str), ("age", int))


def decode_user_row(row: Sequence) -> UserRecord:
    """Decode (id, name, age) by position, raising DecodeError on any mismatch."""
    if len(row) != len(_COLUMNS):
        raise DecodeError(
            f"expected {len(_COLUMNS)} columns, got {len(row)}",
        )
    values = []
    for index, ((column, expected), value) in enumerate(zip(_COLUMNS, row)):
        if value is None:
            raise DecodeError(f"unexpected NULL in column '{column}'", column=index)
        if isinstance(value, bool) or not isinstance(value, expected):
            raise DecodeError(
                f"column '{column}' expected {expected.__name__}, "
                f"got {type(value).__name__}",
                column=index,
            )
        values.append(value)
    return UserRecord(id=UserId(values[0]), name=values[1], age=values[2])
