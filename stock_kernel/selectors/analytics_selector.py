"""
Module: stock_kernel.selectors.analytics_selector
Responsibility: Reporting aggregates derived from items and the ledger:
    stock value, revenue, profit, units sold, period flow and the
    dashboard main stats.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - No stored totals.  Every figure is computed at query time from
      inventory_items and stock_transactions.
    - Date ranges are inclusive on both ends and compared in UTC.  Stored
      timestamps are compared at fixed width, so rows carried over from
      CURRENT_TIMESTAMP defaults (no fractional seconds) match a bound at
      the same second.
    - All monetary results are Decimal at the stored scale (never float).
      Empty aggregates are 0, never None.

Profit cost basis:
    "snapshot"  (default) -- each sale is costed at the unit_cost captured
                when it was recorded, falling back to the item's current
                cost_price for rows written before unit_cost existed.
    "current"   -- every sale is costed at the item's current cost_price.
"""

from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import String, and_, case, func, literal, select, type_coerce
from sqlalchemy.orm import Session

from stock_kernel.db.base import UTCDateTime
from stock_kernel.db.types import round_money
from stock_kernel.domain.dtos import (
    DailyReport,
    InventoryTotals,
    MainStats,
    PeriodFlow,
    SalesSummary,
)
from stock_kernel.models import InventoryItem, StockTransaction, TransactionKind
from stock_kernel.selectors.base import BaseSelector

PROFIT_BASIS_SNAPSHOT = "snapshot"
PROFIT_BASIS_CURRENT = "current"
PROFIT_COST_BASES = (PROFIT_BASIS_SNAPSHOT, PROFIT_BASIS_CURRENT)

ALL_TIME_CUTOFF = datetime(1970, 1, 1, tzinfo=UTC)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """First and last representable instant of a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


def _timestamp_text(column):
    # "YYYY-MM-DD HH:MM:SS" (19 chars) gets the ".ffffff" every bound carries
    as_text = type_coerce(column, String)
    return case((func.length(as_text) == 19, as_text.concat(".000000")), else_=as_text)


def within(column, start: datetime | None, end: datetime | None) -> list:
    """Clauses for start <= column <= end; either bound may be open."""
    clauses = []
    if start is not None:
        clauses.append(_timestamp_text(column) >= literal(as_utc(start), UTCDateTime()))
    if end is not None:
        clauses.append(_timestamp_text(column) <= literal(as_utc(end), UTCDateTime()))
    return clauses


def _money(value) -> Decimal:
    if value is None:
        return round_money(Decimal(0))
    return round_money(Decimal(str(value)))


class AnalyticsSelector(BaseSelector[StockTransaction]):
    """
    Aggregates over the ledger.

    Contract:
        Every method is independently computable and side-effect free.
        Optional start/end arguments narrow sale-based figures to
        transactions whose created_at falls inside [start, end].
    """

    def __init__(
        self,
        session: Session,
        profit_cost_basis: str = PROFIT_BASIS_SNAPSHOT,
        all_time_cutoff: datetime = ALL_TIME_CUTOFF,
    ):
        super().__init__(session)
        if profit_cost_basis not in PROFIT_COST_BASES:
            raise ValueError(f"Unknown profit cost basis: {profit_cost_basis}")
        self.profit_cost_basis = profit_cost_basis
        self.all_time_cutoff = as_utc(all_time_cutoff)

    def _range(self, start: datetime | None, end: datetime | None) -> list:
        return within(StockTransaction.created_at, start, end)

    def _sold(self, start: datetime | None, end: datetime | None):
        return and_(StockTransaction.kind == TransactionKind.SOLD.value, *self._range(start, end))

    def _unit_cost(self):
        if self.profit_cost_basis == PROFIT_BASIS_CURRENT:
            return InventoryItem.cost_price
        return func.coalesce(StockTransaction.unit_cost, InventoryItem.cost_price)

    # ------------------------------------------------------------------
    # Current inventory
    # ------------------------------------------------------------------

    def total_stock_value(self) -> Decimal:
        """Sum of cost_price * quantity over all items."""
        value = self.session.scalar(
            select(func.sum(InventoryItem.cost_price * InventoryItem.quantity))
        )
        return _money(value)

    def inventory_totals(self) -> InventoryTotals:
        low = case((InventoryItem.quantity <= InventoryItem.min_stock_level, 1), else_=0)
        count, low_count = self.session.execute(
            select(func.count(InventoryItem.id), func.coalesce(func.sum(low), 0))
        ).one()
        return InventoryTotals(
            item_count=count or 0,
            low_stock_count=low_count or 0,
            stock_value=self.total_stock_value(),
        )

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def total_revenue(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Decimal:
        value = self.session.scalar(
            select(func.sum(StockTransaction.total_amount)).where(self._sold(start, end))
        )
        return _money(value)

    def total_profit(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Decimal:
        """Sum of (unit_price - unit cost) * quantity over sales."""
        margin = (StockTransaction.unit_price - self._unit_cost()) * StockTransaction.quantity
        value = self.session.scalar(
            select(func.sum(margin))
            .select_from(StockTransaction)
            .join(InventoryItem, StockTransaction.item_id == InventoryItem.id)
            .where(self._sold(start, end))
        )
        return _money(value)

    def units_sold(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        value = self.session.scalar(
            select(func.sum(StockTransaction.quantity)).where(self._sold(start, end))
        )
        return int(value or 0)

    def sales_summary(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> SalesSummary:
        return SalesSummary(
            total_sold=self.units_sold(start, end),
            total_revenue=self.total_revenue(start, end),
            total_profit=self.total_profit(start, end),
        )

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    def period_flow(self, start: datetime, end: datetime) -> PeriodFlow:
        """
        Items created, net in/out movement and its value inside a range.

        Sales are not stock movements here; only 'in' and 'out'
        adjustments count.
        """
        start, end = as_utc(start), as_utc(end)
        items_created = self.session.scalar(
            select(func.count(InventoryItem.id)).where(
                *within(InventoryItem.created_at, start, end)
            )
        )

        sign = case((StockTransaction.kind == TransactionKind.IN.value, 1), else_=-1)
        movement, value = self.session.execute(
            select(
                func.sum(sign * StockTransaction.quantity),
                func.sum(sign * StockTransaction.quantity * InventoryItem.cost_price),
            )
            .select_from(StockTransaction)
            .join(InventoryItem, StockTransaction.item_id == InventoryItem.id)
            .where(
                StockTransaction.kind.in_(
                    [TransactionKind.IN.value, TransactionKind.OUT.value]
                ),
                *self._range(start, end),
            )
        ).one()

        return PeriodFlow(
            items_created=items_created or 0,
            net_stock_movement=int(movement or 0),
            net_value_change=_money(value),
        )

    def is_all_time(self, start: datetime) -> bool:
        return as_utc(start) <= self.all_time_cutoff

    def main_stats_for_period(self, start: datetime, end: datetime) -> MainStats:
        """
        Dashboard headline figures.

        A start at or before the all-time cutoff yields current totals;
        any later start yields the period flow under the same field names
        (total_items = items created, low_stock_count = net stock movement,
        total_value = net value change).
        """
        if self.is_all_time(start):
            totals = self.inventory_totals()
            return MainStats(
                total_items=totals.item_count,
                low_stock_count=totals.low_stock_count,
                total_value=totals.stock_value,
                is_all_time=True,
            )

        flow = self.period_flow(start, end)
        return MainStats(
            total_items=flow.items_created,
            low_stock_count=flow.net_stock_movement,
            total_value=flow.net_value_change,
            is_all_time=False,
        )

    def daily_report(self, day: date) -> DailyReport:
        """Sales for one UTC day plus current item and low-stock counts."""
        start, end = day_bounds(day)
        totals = self.inventory_totals()
        return DailyReport(
            day=day,
            sales=self.sales_summary(start, end),
            total_items=totals.item_count,
            low_stock_count=totals.low_stock_count,
        )
