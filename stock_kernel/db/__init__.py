"""Database layer - engine, base classes and column types.

The gateway and schema manager import models, so they are imported from
their own modules (``stock_kernel.db.gateway``, ``stock_kernel.db.schema``).
"""

from stock_kernel.db.base import Base, UTCDateTime
from stock_kernel.db.engine import create_storage_engine, session_scope
from stock_kernel.db.types import ItemName, Money, NoteText

__all__ = [
    "create_storage_engine",
    "session_scope",
    "Base",
    "UTCDateTime",
    "Money",
    "ItemName",
    "NoteText",
]
