"""
Module: stock_kernel.models.item
Responsibility: ORM persistence for tracked inventory items.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Unique, non-null item name (uq_inventory_items_name).
    - Non-negative prices, quantity, minimum level and total sold (CHECK).
    - quantity == initial quantity + signed sum of the item's transactions.
      Maintained by LedgerService; this model never changes quantity itself.

Failure modes:
    - IntegrityError on duplicate name (translated to DuplicateNameError).
    - IntegrityError on a negative value that slipped past validation.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base
from stock_kernel.db.types import ItemName, Money

if TYPE_CHECKING:
    from stock_kernel.models.stock_transaction import StockTransaction


class InventoryItem(Base):
    """
    A tracked product and its current stock level.

    Contract:
        Created with total_sold = 0.  quantity and total_sold change only
        through LedgerService.  Deleting an item deletes its transactions
        (ON DELETE CASCADE in the database, passive_deletes in the ORM).
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint("name", name="uq_inventory_items_name"),
        CheckConstraint("cost_price >= 0", name="ck_inventory_items_cost_price"),
        CheckConstraint("selling_price >= 0", name="ck_inventory_items_selling_price"),
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity"),
        CheckConstraint("min_stock_level >= 0", name="ck_inventory_items_min_stock_level"),
        CheckConstraint("total_sold >= 0", name="ck_inventory_items_total_sold"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[ItemName] = mapped_column(nullable=False)

    cost_price: Mapped[Money] = mapped_column(nullable=False)

    selling_price: Mapped[Money] = mapped_column(nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    min_stock_level: Mapped[int] = mapped_column(nullable=False, default=0)

    # Monotonically non-decreasing; only record_sale increments it
    total_sold: Mapped[int] = mapped_column(nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    transactions: Mapped[list["StockTransaction"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StockTransaction.id",
    )

    @property
    def is_low_stock(self) -> bool:
        """At or below the configured minimum level."""
        return self.quantity <= self.min_stock_level

    def __repr__(self) -> str:
        return f"<InventoryItem {self.id} {self.name!r} qty={self.quantity}>"
