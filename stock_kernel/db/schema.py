"""
Module: stock_kernel.db.schema
Responsibility: Create, migrate and drop the ledger schema.
Architecture position: Kernel > DB.  Imports models/ (for table metadata)
    the same way create_tables does; nothing in models/ imports this module.

Invariants enforced:
    - Both tables exist with the full constraint set after ensure_schema().
    - A legacy stock_transactions table (kind constraint without 'sold') is
      rebuilt in a single transaction with every row reinserted verbatim:
      ids, quantities, notes and timestamps are unchanged.
    - Columns added after the first release (inventory_items.total_sold,
      stock_transactions.unit_cost) are back-filled with ALTER TABLE.
    - SQL trigger files in db/sql/ are installed after the tables.

Failure modes:
    - MigrationError(table, step, detail) if any migration step fails.  The
      transaction is rolled back; the old table is left untouched.
"""

from pathlib import Path

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from stock_kernel.db.base import Base
from stock_kernel.exceptions import MigrationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models import InventoryItem, StockTransaction

logger = get_logger("db.schema")

# Directory containing SQL trigger files
SQL_DIR = Path(__file__).parent / "sql"

# Installed in order after the tables exist
TRIGGER_FILES = [
    "01_inventory_item_timestamp.sql",
    "02_stock_transaction_immutability.sql",
]

ALL_TRIGGER_NAMES = [
    "trg_inventory_items_touch_updated_at",
    "trg_stock_transactions_immutability_update",
]

ITEMS_TABLE = InventoryItem.__tablename__
TRANSACTIONS_TABLE = StockTransaction.__tablename__

# Marker of the current kind constraint in stored DDL
_SOLD_KIND_MARKER = "'sold'"

# (table, column, DDL fragment) added when missing
_BACKFILL_COLUMNS = [
    (ITEMS_TABLE, "total_sold", "INTEGER NOT NULL DEFAULT 0"),
    (TRANSACTIONS_TABLE, "unit_cost", "NUMERIC(18, 4)"),
]


def _load_sql_file(filename: str) -> str:
    path = SQL_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"SQL file not found: {path}")
    return path.read_text()


class SchemaManager:
    """
    Owns DDL for the ledger tables.

    Contract:
        ensure_schema() is idempotent: running it against a current database
        changes nothing.  It is called once per successful initialization by
        the StorageGateway.
    """

    def __init__(self, engine: Engine):
        self._engine = engine

    def ensure_schema(self) -> None:
        """Create missing tables, migrate legacy ones, install triggers."""
        if self.needs_kind_migration():
            self.migrate_transactions_table()

        with self._engine.begin() as conn:
            Base.metadata.create_all(conn)
            self._backfill_columns(conn)
            for filename in TRIGGER_FILES:
                conn.exec_driver_sql(_load_sql_file(filename))

        logger.info(
            "schema_ready",
            extra={"tables": [ITEMS_TABLE, TRANSACTIONS_TABLE]},
        )

    def table_sql(self, table: str) -> str | None:
        """Stored CREATE TABLE statement, or None if the table is absent."""
        with self._engine.connect() as conn:
            return conn.execute(
                text(
                    "SELECT sql FROM sqlite_master "
                    "WHERE type = 'table' AND name = :name"
                ),
                {"name": table},
            ).scalar()

    def needs_kind_migration(self) -> bool:
        """An existing transactions table that predates the 'sold' kind."""
        ddl = self.table_sql(TRANSACTIONS_TABLE)
        return ddl is not None and _SOLD_KIND_MARKER not in ddl

    def migrate_transactions_table(self) -> int:
        """
        Rebuild stock_transactions with the current constraint set.

        Returns:
            Number of rows carried over.

        Raises:
            MigrationError: any step failed; nothing was changed.
        """
        step = "read"
        logger.info("schema_migration_started", extra={"table": TRANSACTIONS_TABLE})
        try:
            with self._engine.begin() as conn:
                result = conn.execute(text(f"SELECT * FROM {TRANSACTIONS_TABLE}"))
                old_columns = list(result.keys())
                rows = [dict(row) for row in result.mappings()]

                step = "drop"
                conn.exec_driver_sql(f"DROP TABLE {TRANSACTIONS_TABLE}")

                step = "create"
                StockTransaction.__table__.create(conn)

                step = "copy"
                new_columns = {c.name for c in StockTransaction.__table__.columns}
                columns = [c for c in old_columns if c in new_columns]
                if rows and columns:
                    insert = text(
                        f"INSERT INTO {TRANSACTIONS_TABLE} ({', '.join(columns)}) "
                        f"VALUES ({', '.join(':' + c for c in columns)})"
                    )
                    conn.execute(
                        insert,
                        [{c: row[c] for c in columns} for row in rows],
                    )
        except SQLAlchemyError as exc:
            logger.error(
                "schema_migration_failed",
                extra={"table": TRANSACTIONS_TABLE, "step": step},
                exc_info=True,
            )
            raise MigrationError(TRANSACTIONS_TABLE, step, str(exc)) from exc

        logger.info(
            "schema_migration_completed",
            extra={"table": TRANSACTIONS_TABLE, "rows_copied": len(rows)},
        )
        return len(rows)

    def _backfill_columns(self, conn: Connection) -> None:
        inspector = inspect(conn)
        for table, column, ddl in _BACKFILL_COLUMNS:
            existing = {c["name"] for c in inspector.get_columns(table)}
            if column in existing:
                continue
            try:
                conn.exec_driver_sql(
                    f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"
                )
            except SQLAlchemyError as exc:
                raise MigrationError(table, f"add_column:{column}", str(exc)) from exc
            logger.info(
                "schema_column_added",
                extra={"table": table, "column": column},
            )

    def drop_all(self) -> None:
        """Drop every ledger table (triggers go with them)."""
        with self._engine.begin() as conn:
            Base.metadata.drop_all(conn)
        logger.warning("schema_dropped", extra={"tables": [ITEMS_TABLE, TRANSACTIONS_TABLE]})

    def installed_triggers(self) -> set[str]:
        with self._engine.connect() as conn:
            names = conn.execute(
                text("SELECT name FROM sqlite_master WHERE type = 'trigger'")
            ).scalars()
            return set(names) & set(ALL_TRIGGER_NAMES)
