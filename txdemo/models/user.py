"""User ORM — the single table the unit-of-work writes to.

Invariants:
    - id is an integer primary key generated by the server (SERIAL on PostgreSQL)
    - name and age are non-nullable
    - No uniqueness or foreign-key constraints beyond the primary key
"""

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from txdemo.db.base import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)