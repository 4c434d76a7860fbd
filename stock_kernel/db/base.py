"""
Module: stock_kernel.db.base
Responsibility: Declarative base for all SQLAlchemy ORM models.  Provides the
    type annotation map for consistent column types and the UTCDateTime
    decorator that keeps every stored timestamp in UTC.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Decimal precision: Decimal maps to Numeric(18, 4).  Never float for
      monetary amounts.
    - Timestamps: datetime maps to UTCDateTime -- aware values in, aware UTC
      values out, naive UTC text at rest (SQLite has no timezone type).
    - Integer keys: int maps to Integer so SQLite rowid aliasing and
      AUTOINCREMENT apply to primary keys.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as naive UTC.

    Guarantees:
        - process_bind_param: aware -> converted to UTC, tzinfo stripped.
          Naive values are taken to already be UTC.
        - process_result_value: naive -> tzinfo=UTC attached.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - Decimal maps to Numeric(18, 4).
        - datetime maps to UTCDateTime.
        - int maps to Integer.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 4),
        datetime: UTCDateTime(),
        int: Integer,
    }
