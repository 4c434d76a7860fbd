"""
StockLedger -- public facade and composition root of the stock kernel.

Responsibility:
    Wires the StorageGateway, LedgerService, selectors and the
    LowStockDispatcher together and exposes the operations the app
    screens call.  Every operation is one gateway unit of work.

Architecture position:
    Kernel > Services -- outermost kernel layer.  The only kernel module
    that reads ``stock_config``.

Invariants enforced:
    - Mutations run as write units: the stock check, the item update and
      the transaction insert commit together or not at all.
    - Low-stock signals are sent only after commit, and only when the
      resulting quantity is at or below the minimum level.
    - No module-level state: two ledgers built from two configs are fully
      independent.

Usage:
    ledger = build_stock_ledger(get_active_config(), listeners=[refresh])
    widget = ledger.add_item("Widget", "2.50", "4.00", 10, 3)
    ledger.record_sale(widget.id, 8)        # refresh() runs in background
    ledger.get_sales_data()
"""

import time
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, TypeVar

from sqlalchemy.orm import Session

from stock_config import LedgerConfig, get_active_config
from stock_kernel.db.engine import create_storage_engine
from stock_kernel.db.gateway import RetryPolicy, StorageGateway
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    DailyReport,
    InventoryTotals,
    ItemSnapshot,
    MainStats,
    PeriodFlow,
    SalesSummary,
    StockMutation,
    TransactionRecord,
)
from stock_kernel.logging_config import LogContext, configure_logging, get_logger
from stock_kernel.models import register_ledger_listeners
from stock_kernel.selectors.analytics_selector import AnalyticsSelector
from stock_kernel.selectors.item_selector import ItemSelector
from stock_kernel.services.ledger_service import LedgerService
from stock_kernel.services.low_stock import LowStockDispatcher, LowStockListener

logger = get_logger("services.stock_ledger")

T = TypeVar("T")


class StockLedger:
    """
    Inventory operations over one local database.

    Contract:
        Safe to call from many threads.  Writes are serialized by the
        gateway; reads run concurrently, except on an in-memory database
        where every call is serialized.  Errors are the typed
        StockKernelError hierarchy.
    """

    def __init__(
        self,
        gateway: StorageGateway,
        *,
        clock: Clock | None = None,
        dispatcher: LowStockDispatcher | None = None,
        profit_cost_basis: str = "snapshot",
        all_time_cutoff: datetime | None = None,
    ):
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher or LowStockDispatcher()
        self._analytics_options = {"profit_cost_basis": profit_cost_basis}
        if all_time_cutoff is not None:
            self._analytics_options["all_time_cutoff"] = all_time_cutoff

    @property
    def gateway(self) -> StorageGateway:
        return self._gateway

    @property
    def dispatcher(self) -> LowStockDispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _write(self, name: str, fn: Callable[[LedgerService], T], item_id=None) -> T:
        with LogContext.bind(
            correlation_id=str(uuid.uuid4()), operation=name, item_id=item_id
        ):
            return self._gateway.run_in_transaction(
                name, lambda session: fn(LedgerService(session, self._clock))
            )

    def _read(self, name: str, fn: Callable[[Session], T]) -> T:
        with LogContext.bind(operation=name):
            return self._gateway.execute_once(name, fn)

    def _items(self, name: str, fn: Callable[[ItemSelector], T]) -> T:
        return self._read(name, lambda session: fn(ItemSelector(session)))

    def _analytics(self, name: str, fn: Callable[[AnalyticsSelector], T]) -> T:
        return self._read(
            name,
            lambda session: fn(AnalyticsSelector(session, **self._analytics_options)),
        )

    def _signal_if_low(self, mutation: StockMutation) -> StockMutation:
        if mutation.is_low_stock:
            self._dispatcher.notify(mutation.item.id)
        return mutation

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize_database(self) -> None:
        """Create or migrate the schema now instead of on first use."""
        self._gateway.ensure_ready()

    def is_ready(self) -> bool:
        return self._gateway.is_ready()

    def reset_database(self) -> None:
        """Drop every item and transaction and start from an empty schema."""
        with LogContext.bind(operation="reset_database"):
            self._gateway.reset()

    def close(self) -> None:
        self._dispatcher.close()
        self._gateway.close()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_item(
        self,
        name: str,
        cost_price,
        selling_price,
        initial_quantity: int = 0,
        min_stock_level: int = 0,
    ) -> ItemSnapshot:
        mutation = self._write(
            "add_item",
            lambda svc: svc.add_item(
                name, cost_price, selling_price, initial_quantity, min_stock_level
            ),
        )
        return self._signal_if_low(mutation).item

    def update_stock(
        self,
        item_id: int,
        new_quantity: int,
        note: str | None = None,
    ) -> StockMutation:
        mutation = self._write(
            "update_stock",
            lambda svc: svc.update_stock(item_id, new_quantity, note),
            item_id=item_id,
        )
        return self._signal_if_low(mutation)

    def record_sale(
        self,
        item_id: int,
        quantity_sold: int,
        unit_price=None,
        note: str | None = None,
    ) -> StockMutation:
        mutation = self._write(
            "record_sale",
            lambda svc: svc.record_sale(item_id, quantity_sold, unit_price, note),
            item_id=item_id,
        )
        return self._signal_if_low(mutation)

    def delete_item(self, item_id: int) -> ItemSnapshot:
        return self._write(
            "delete_item", lambda svc: svc.delete_item(item_id), item_id=item_id
        )

    # ------------------------------------------------------------------
    # Item queries
    # ------------------------------------------------------------------

    def get_all_items(self) -> list[ItemSnapshot]:
        return self._items("get_all_items", lambda sel: sel.all_items())

    def get_item_by_id(self, item_id: int) -> ItemSnapshot | None:
        return self._items("get_item_by_id", lambda sel: sel.get(item_id))

    def search_items(self, term: str) -> list[ItemSnapshot]:
        return self._items("search_items", lambda sel: sel.search(term))

    def get_low_stock_items(self) -> list[ItemSnapshot]:
        return self._items("get_low_stock_items", lambda sel: sel.low_stock())

    def get_stock_transactions(self, item_id: int | None = None) -> list[TransactionRecord]:
        return self._items(
            "get_stock_transactions", lambda sel: sel.transactions(item_id)
        )

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def get_total_stock_value(self) -> Decimal:
        return self._analytics("get_total_stock_value", lambda a: a.total_stock_value())

    def get_total_revenue(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Decimal:
        return self._analytics("get_total_revenue", lambda a: a.total_revenue(start, end))

    def get_total_profit(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Decimal:
        return self._analytics("get_total_profit", lambda a: a.total_profit(start, end))

    def get_sales_data(self) -> SalesSummary:
        return self._analytics("get_sales_data", lambda a: a.sales_summary())

    def get_sales_data_by_date_range(self, start: datetime, end: datetime) -> SalesSummary:
        return self._analytics(
            "get_sales_data_by_date_range", lambda a: a.sales_summary(start, end)
        )

    def get_inventory_totals(self) -> InventoryTotals:
        return self._analytics("get_inventory_totals", lambda a: a.inventory_totals())

    def get_period_flow(self, start: datetime, end: datetime) -> PeriodFlow:
        return self._analytics("get_period_flow", lambda a: a.period_flow(start, end))

    def get_main_stats_for_period(self, start: datetime, end: datetime) -> MainStats:
        return self._analytics(
            "get_main_stats_for_period", lambda a: a.main_stats_for_period(start, end)
        )

    def get_daily_report(self, day: date | None = None) -> DailyReport:
        """Report for ``day`` (default: today in UTC)."""
        day = day or self._clock.today()
        return self._analytics("get_daily_report", lambda a: a.daily_report(day))


def build_stock_ledger(
    config: LedgerConfig | None = None,
    *,
    clock: Clock | None = None,
    listeners: Iterable[LowStockListener] = (),
    sleep: Callable[[float], None] = time.sleep,
) -> StockLedger:
    """
    Assemble a StockLedger from configuration.

    Nothing touches the database here; the schema is created or migrated
    on the first operation (or by initialize_database()).
    """
    configure_logging()
    config = config or get_active_config()
    register_ledger_listeners()

    storage = config.storage
    engine = create_storage_engine(
        storage.database_url,
        echo=storage.echo,
        busy_timeout_seconds=storage.busy_timeout_seconds,
        journal_mode=storage.journal_mode,
    )
    gateway = StorageGateway(
        engine,
        retry_policy=RetryPolicy(
            max_attempts=config.retry.max_attempts,
            base_delay_seconds=config.retry.base_delay_seconds,
            transient_markers=tuple(config.retry.transient_markers),
        ),
        sleep=sleep,
    )
    dispatcher = LowStockDispatcher(
        listeners,
        enabled=config.notifications.low_stock_enabled,
        max_workers=config.notifications.dispatch_workers,
    )
    logger.info(
        "stock_ledger_built",
        extra={
            "config_checksum": config.checksum,
            "listener_count": len(dispatcher.listeners),
            "low_stock_enabled": dispatcher.enabled,
        },
    )
    return StockLedger(
        gateway,
        clock=clock,
        dispatcher=dispatcher,
        profit_cost_basis=config.analytics.profit_cost_basis,
        all_time_cutoff=config.analytics.all_time_cutoff,
    )
