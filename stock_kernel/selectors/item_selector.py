"""
Module: stock_kernel.selectors.item_selector
Responsibility: Read-only item and transaction listings.
Architecture position: Kernel > Selectors.

Ordering guarantees:
    - Item listings are ordered by name ascending.
    - Transaction listings are newest first (created_at DESC, then id DESC
      so entries sharing a timestamp keep their insertion order reversed).
"""

from sqlalchemy import func, select

from stock_kernel.domain.dtos import ItemSnapshot, TransactionRecord
from stock_kernel.models import InventoryItem, StockTransaction
from stock_kernel.selectors.base import BaseSelector


class ItemSelector(BaseSelector[InventoryItem]):
    """Selector for items and their ledger entries."""

    def all_items(self) -> list[ItemSnapshot]:
        stmt = select(InventoryItem).order_by(InventoryItem.name.asc())
        return [ItemSnapshot.from_model(i) for i in self.session.scalars(stmt)]

    def get(self, item_id: int) -> ItemSnapshot | None:
        item = self.session.get(InventoryItem, item_id)
        return ItemSnapshot.from_model(item) if item is not None else None

    def low_stock(self) -> list[ItemSnapshot]:
        """Items at or below their minimum stock level."""
        stmt = (
            select(InventoryItem)
            .where(InventoryItem.quantity <= InventoryItem.min_stock_level)
            .order_by(InventoryItem.name.asc())
        )
        return [ItemSnapshot.from_model(i) for i in self.session.scalars(stmt)]

    def search(self, term: str) -> list[ItemSnapshot]:
        """Case-insensitive substring match on the item name."""
        term = (term or "").strip()
        if not term:
            return self.all_items()
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        stmt = (
            select(InventoryItem)
            .where(InventoryItem.name.ilike(f"%{escaped}%", escape="\\"))
            .order_by(InventoryItem.name.asc())
        )
        return [ItemSnapshot.from_model(i) for i in self.session.scalars(stmt)]

    def transactions(self, item_id: int | None = None) -> list[TransactionRecord]:
        """Ledger entries with their item's name, newest first."""
        stmt = select(StockTransaction, InventoryItem.name).join(
            InventoryItem, StockTransaction.item_id == InventoryItem.id
        )
        if item_id is not None:
            stmt = stmt.where(StockTransaction.item_id == item_id)
        stmt = stmt.order_by(
            StockTransaction.created_at.desc(),
            StockTransaction.id.desc(),
        )
        return [
            TransactionRecord.from_model(txn, name)
            for txn, name in self.session.execute(stmt)
        ]

    def count(self) -> int:
        return self.session.scalar(select(func.count()).select_from(InventoryItem)) or 0
