"""ORM Models — SQLAlchemy declarative models.

Design Decisions:
    - Models imported here so Base.metadata is populated before ensure_schema runs
"""

from txdemo.models.user import User  # noqa: F401
