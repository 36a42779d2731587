"""Database Infrastructure — declarative Base and schema bootstrap.

Invariants:
    - All connections are async (AsyncConnection)

Design Decisions:
    - asyncpg driver for PostgreSQL: native async, positional $n parameters
"""
