"""
Analytics tests: stock value, revenue, profit basis, period flow, main stats
and the daily report.
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from stock_config import AnalyticsConfig, LedgerConfig, RetryConfig, StorageConfig
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.services.stock_ledger import build_stock_ledger

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class TestTotals:
    def test_empty_ledger_is_zero(self, stock_ledger):
        assert stock_ledger.get_total_stock_value() == Decimal("0")
        assert stock_ledger.get_total_revenue() == Decimal("0")
        assert stock_ledger.get_total_profit() == Decimal("0")
        summary = stock_ledger.get_sales_data()
        assert summary.total_sold == 0

    def test_stock_value(self, stock_ledger, widget):
        stock_ledger.add_item("Gear", "2.50", 5, 4, 0)
        assert stock_ledger.get_total_stock_value() == Decimal("1010")

    def test_sales_summary(self, stock_ledger, widget):
        stock_ledger.record_sale(widget.id, 5, 15)
        stock_ledger.record_sale(widget.id, 2, 12)

        summary = stock_ledger.get_sales_data()
        assert summary.total_sold == 7
        assert summary.total_revenue == Decimal("99")
        assert summary.total_profit == Decimal("29")

    def test_adjustments_do_not_count_as_sales(self, stock_ledger, widget):
        stock_ledger.update_stock(widget.id, 50)
        assert stock_ledger.get_sales_data().total_sold == 0

    def test_inventory_totals(self, stock_ledger, widget):
        stock_ledger.add_item("Scarce", 1, 2, 1, 5)
        totals = stock_ledger.get_inventory_totals()
        assert totals.item_count == 2
        assert totals.low_stock_count == 1
        assert totals.stock_value == Decimal("1001")


class TestProfitCostBasis:
    def test_snapshot_basis_ignores_later_cost_changes(self, stock_ledger, widget):
        stock_ledger.record_sale(widget.id, 5, 15)
        stock_ledger.gateway.execute(
            "reprice",
            "UPDATE inventory_items SET cost_price = 14 WHERE id = :id",
            {"id": widget.id},
        )
        assert stock_ledger.get_total_profit() == Decimal("25")

    def test_current_basis_follows_cost_changes(self, database_url, deterministic_clock):
        config = LedgerConfig(
            storage=StorageConfig(database_url=database_url),
            retry=RetryConfig(base_delay_seconds=0.0),
            analytics=AnalyticsConfig(profit_cost_basis="current"),
        )
        ledger = build_stock_ledger(config, clock=deterministic_clock)
        try:
            item = ledger.add_item("Widget", 10, 15, 100, 20)
            ledger.record_sale(item.id, 5, 15)
            ledger.gateway.execute(
                "reprice",
                "UPDATE inventory_items SET cost_price = 14 WHERE id = :id",
                {"id": item.id},
            )
            assert ledger.get_total_profit() == Decimal("5")
        finally:
            ledger.close()

    def test_legacy_sales_fall_back_to_current_cost(self, stock_ledger, widget):
        stock_ledger.gateway.execute(
            "legacy_sale",
            "INSERT INTO stock_transactions "
            "(item_id, type, quantity, unit_price, total_amount, created_at) "
            "VALUES (:id, 'sold', 2, 15, 30, '2024-01-01 12:00:00.000000')",
            {"id": widget.id},
        )
        assert stock_ledger.get_total_profit() == Decimal("10")


class TestDateRanges:
    @pytest.fixture
    def dated_sales(self, stock_ledger, widget, deterministic_clock):
        """Sales on 2024-01-01 12:00, 2024-01-02 12:00 and 2024-01-03 12:00."""
        stock_ledger.record_sale(widget.id, 1, 10)
        deterministic_clock.advance(86400)
        stock_ledger.record_sale(widget.id, 2, 10)
        deterministic_clock.advance(86400)
        stock_ledger.record_sale(widget.id, 3, 10)
        return widget

    def test_range_is_inclusive(self, stock_ledger, dated_sales):
        start = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        end = datetime(2024, 1, 2, 12, 0, tzinfo=UTC)

        summary = stock_ledger.get_sales_data_by_date_range(start, end)

        assert summary.total_sold == 3
        assert summary.total_revenue == Decimal("30")
        assert stock_ledger.get_total_revenue(start, end) == Decimal("30")
        assert stock_ledger.get_total_profit(start, end) == Decimal("0")

    def test_open_ended_ranges(self, stock_ledger, dated_sales):
        middle = datetime(2024, 1, 2, 0, 0, tzinfo=UTC)
        assert stock_ledger.get_total_revenue(start=middle) == Decimal("50")
        assert stock_ledger.get_total_revenue(end=middle) == Decimal("10")

    def test_naive_datetimes_are_utc(self, stock_ledger, dated_sales):
        summary = stock_ledger.get_sales_data_by_date_range(
            datetime(2024, 1, 3), datetime(2024, 1, 3, 23, 59)
        )
        assert summary.total_sold == 3

    def test_daily_report(self, stock_ledger, dated_sales):
        report = stock_ledger.get_daily_report(date(2024, 1, 2))

        assert report.day == date(2024, 1, 2)
        assert report.sales.total_sold == 2
        assert report.sales.total_revenue == Decimal("20")
        assert report.total_items == 1
        assert report.low_stock_count == 0

    def test_daily_report_defaults_to_today(self, stock_ledger, dated_sales):
        assert stock_ledger.get_daily_report().day == date(2024, 1, 3)


class TestMainStats:
    @pytest.fixture
    def week_of_activity(self, stock_ledger, deterministic_clock):
        """Old item from Jan 1; a new item and movements during Jan 8-14."""
        old = stock_ledger.add_item("Old", 2, 3, 10, 5)

        deterministic_clock.set_time(datetime(2024, 1, 9, 9, 0, tzinfo=UTC))
        new = stock_ledger.add_item("New", 4, 6, 3, 5)
        stock_ledger.update_stock(old.id, 4)
        stock_ledger.record_sale(new.id, 1)

        deterministic_clock.set_time(datetime(2024, 1, 20, 9, 0, tzinfo=UTC))
        stock_ledger.update_stock(old.id, 8)
        return old, new

    def test_all_time_returns_current_totals(self, stock_ledger, week_of_activity):
        stats = stock_ledger.get_main_stats_for_period(EPOCH, datetime(2024, 2, 1, tzinfo=UTC))

        assert stats.is_all_time
        assert stats.total_items == 2
        assert stats.low_stock_count == 1
        assert stats.total_value == Decimal("24")

    def test_before_epoch_is_all_time(self, stock_ledger, week_of_activity):
        stats = stock_ledger.get_main_stats_for_period(
            EPOCH - timedelta(days=1), datetime(2024, 2, 1, tzinfo=UTC)
        )
        assert stats.is_all_time

    def test_bounded_period_returns_flow(self, stock_ledger, week_of_activity):
        start = datetime(2024, 1, 8, tzinfo=UTC)
        end = datetime(2024, 1, 14, 23, 59, 59, tzinfo=UTC)

        stats = stock_ledger.get_main_stats_for_period(start, end)
        flow = stock_ledger.get_period_flow(start, end)

        # New's initial 'in' 3, Old's 'out' 6; the sale is not a movement
        assert not stats.is_all_time
        assert stats.total_items == 1
        assert stats.low_stock_count == -3
        assert stats.total_value == Decimal("0")
        assert flow.items_created == 1
        assert flow.net_stock_movement == -3
        assert flow.net_value_change == Decimal("0")

    def test_period_outside_activity_is_empty(self, stock_ledger, week_of_activity):
        flow = stock_ledger.get_period_flow(
            datetime(2023, 6, 1, tzinfo=UTC), datetime(2023, 6, 30, tzinfo=UTC)
        )
        assert flow.items_created == 0
        assert flow.net_stock_movement == 0
        assert flow.net_value_change == Decimal("0")


class TestSearch:
    def test_case_insensitive_substring(self, stock_ledger):
        stock_ledger.add_item("Blue Widget", 1, 2, 1, 0)
        stock_ledger.add_item("Red widget", 1, 2, 1, 0)
        stock_ledger.add_item("Gear", 1, 2, 1, 0)

        names = [i.name for i in stock_ledger.search_items("WIDGET")]
        assert names == ["Blue Widget", "Red widget"]

    def test_wildcards_are_literal(self, stock_ledger):
        stock_ledger.add_item("100% cotton", 1, 2, 1, 0)
        stock_ledger.add_item("1000 screws", 1, 2, 1, 0)
        assert [i.name for i in stock_ledger.search_items("0%")] == ["100% cotton"]

    def test_blank_term_lists_everything(self, stock_ledger, widget):
        assert [i.name for i in stock_ledger.search_items("  ")] == ["Widget"]


class TestMemoryLedger:
    def test_in_memory_database(self, make_memory_ledger):
        ledger = make_memory_ledger(DeterministicClock())
        item = ledger.add_item("Widget", 10, 15, 100, 20)
        ledger.record_sale(item.id, 5, 15)
        assert ledger.get_total_revenue() == Decimal("75")
