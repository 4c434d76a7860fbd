"""
Module: stock_kernel.models.stock_transaction
Responsibility: ORM persistence for the append-only stock ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - kind IN ('in', 'out', 'sold') (ck_stock_transactions_type).  The
      literal 'sold' in the stored DDL is what SchemaManager checks to
      detect legacy tables.
    - quantity > 0 (ck_stock_transactions_quantity).
    - unit_price and total_amount present iff kind = 'sold'
      (ck_stock_transactions_sale_amounts).
    - Rows are never updated (ORM listener, see register_ledger_listeners);
      they are deleted only by the item cascade.

Column names follow the shape already present on devices: the kind is
stored in ``type`` and the note in ``notes``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base
from stock_kernel.db.types import Money, NoteText
from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from stock_kernel.models.item import InventoryItem

logger = get_logger("models.stock_transaction")


class TransactionKind(str, Enum):
    """What moved the stock.

    IN and OUT are adjustments; SOLD is a sale and carries price data.
    """

    IN = "in"
    OUT = "out"
    SOLD = "sold"

    @property
    def sign(self) -> int:
        """+1 for stock received, -1 for stock leaving."""
        return 1 if self is TransactionKind.IN else -1


class StockTransaction(Base):
    """
    One immutable ledger entry.

    Contract:
        Exactly one row per ledger-mutating call.  Sale rows snapshot the
        item's cost price into unit_cost so later cost changes do not
        rewrite historical profit.
    """

    __tablename__ = "stock_transactions"

    __table_args__ = (
        CheckConstraint(
            "type IN ('in', 'out', 'sold')",
            name="ck_stock_transactions_type",
        ),
        CheckConstraint("quantity > 0", name="ck_stock_transactions_quantity"),
        CheckConstraint(
            "(type = 'sold' AND unit_price IS NOT NULL AND total_amount IS NOT NULL)"
            " OR (type != 'sold' AND unit_price IS NULL AND total_amount IS NULL)",
            name="ck_stock_transactions_sale_amounts",
        ),
        Index("idx_stock_transactions_item", "item_id"),
        Index("idx_stock_transactions_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(
        "type",
        String(10),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    # Sale-only pricing
    unit_price: Mapped[Money | None] = mapped_column(nullable=True)
    total_amount: Mapped[Money | None] = mapped_column(nullable=True)

    # Cost price at the time of sale; NULL on adjustments and legacy rows
    unit_cost: Mapped[Money | None] = mapped_column(nullable=True)

    note: Mapped[NoteText | None] = mapped_column("notes", nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    item: Mapped["InventoryItem"] = relationship(back_populates="transactions")

    @property
    def signed_quantity(self) -> int:
        """Quantity with the ledger sign applied."""
        return TransactionKind(self.kind).sign * self.quantity

    @property
    def line_total(self) -> Decimal | None:
        return self.total_amount

    def __repr__(self) -> str:
        return f"<StockTransaction {self.id} {self.kind} {self.quantity} item={self.item_id}>"


def _reject_transaction_update(mapper, connection, target):
    """Ledger rows are append-only."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockTransaction",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        "StockTransaction", str(target.id), "ledger entries are append-only"
    )


def register_ledger_listeners() -> None:
    """Install the append-only guard (idempotent)."""
    if not event.contains(StockTransaction, "before_update", _reject_transaction_update):
        event.listen(StockTransaction, "before_update", _reject_transaction_update)


def unregister_ledger_listeners() -> None:
    """Remove the append-only guard. FOR TESTING ONLY."""
    if event.contains(StockTransaction, "before_update", _reject_transaction_update):
        event.remove(StockTransaction, "before_update", _reject_transaction_update)
