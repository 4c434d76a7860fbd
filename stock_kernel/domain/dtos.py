"""
Result DTOs returned across the kernel boundary.

Services and selectors never hand ORM instances to callers: the session that
loaded them is closed by the time the caller sees the result.  Every value
here is a frozen snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stock_kernel.models import InventoryItem, StockTransaction


@dataclass(frozen=True)
class ItemSnapshot:
    """An item as it was when the unit of work committed."""

    id: int
    name: str
    cost_price: Decimal
    selling_price: Decimal
    quantity: int
    min_stock_level: int
    total_sold: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock_level

    @property
    def stock_value(self) -> Decimal:
        return self.cost_price * self.quantity

    @classmethod
    def from_model(cls, item: InventoryItem) -> ItemSnapshot:
        return cls(
            id=item.id,
            name=item.name,
            cost_price=Decimal(item.cost_price),
            selling_price=Decimal(item.selling_price),
            quantity=item.quantity,
            min_stock_level=item.min_stock_level,
            total_sold=item.total_sold,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )


@dataclass(frozen=True)
class TransactionRecord:
    """One ledger entry, optionally labelled with its item's name."""

    id: int
    item_id: int
    kind: str
    quantity: int
    unit_price: Decimal | None
    total_amount: Decimal | None
    unit_cost: Decimal | None
    note: str | None
    created_at: datetime
    item_name: str | None = None

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.kind == "in" else -self.quantity

    @classmethod
    def from_model(
        cls,
        txn: StockTransaction,
        item_name: str | None = None,
    ) -> TransactionRecord:
        return cls(
            id=txn.id,
            item_id=txn.item_id,
            kind=str(getattr(txn.kind, "value", txn.kind)),
            quantity=txn.quantity,
            unit_price=txn.unit_price,
            total_amount=txn.total_amount,
            unit_cost=txn.unit_cost,
            note=txn.note,
            created_at=txn.created_at,
            item_name=item_name,
        )


@dataclass(frozen=True)
class StockMutation:
    """Outcome of a ledger-mutating call."""

    item: ItemSnapshot
    transaction: TransactionRecord | None

    @property
    def is_low_stock(self) -> bool:
        return self.item.is_low_stock


@dataclass(frozen=True)
class SalesSummary:
    total_sold: int
    total_revenue: Decimal
    total_profit: Decimal


@dataclass(frozen=True)
class InventoryTotals:
    """Current all-time inventory figures."""

    item_count: int
    low_stock_count: int
    stock_value: Decimal


@dataclass(frozen=True)
class PeriodFlow:
    """Activity inside a date range.

    net_stock_movement counts 'in' minus 'out' adjustments; sales are not
    included.  net_value_change prices that movement at the current cost.
    """

    items_created: int
    net_stock_movement: int
    net_value_change: Decimal


@dataclass(frozen=True)
class MainStats:
    """
    Headline figures for a dashboard period.

    When is_all_time is True the fields are current totals (item count,
    low-stock count, stock value).  Otherwise they carry the period flow
    (items created, net stock movement, net value change) under the same
    names.
    """

    total_items: int
    low_stock_count: int
    total_value: Decimal
    is_all_time: bool


@dataclass(frozen=True)
class DailyReport:
    """Sales for one UTC day plus current inventory health."""

    day: date
    sales: SalesSummary
    total_items: int
    low_stock_count: int
