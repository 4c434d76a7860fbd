"""
Concurrency tests: the ledger invariant holds when many threads mutate the
same item at once.

Run with: pytest tests/concurrency/test_race_safety.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from stock_kernel.exceptions import InsufficientStockError

pytestmark = pytest.mark.slow_locks


def _run_concurrently(fn, workers: int) -> list:
    """Start ``workers`` calls of fn(index) together; return result or exception per call."""
    barrier = Barrier(workers)

    def call(index):
        barrier.wait()
        try:
            return fn(index)
        except InsufficientStockError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(call, range(workers)))


class TestConcurrentSales:
    def test_no_oversell(self, stock_ledger):
        item = stock_ledger.add_item("Limited", 1, 2, 10, 0)

        results = _run_concurrently(lambda i: stock_ledger.record_sale(item.id, 1), workers=16)

        sold = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, InsufficientStockError)]
        assert len(sold) == 10
        assert len(rejected) == 6

        final = stock_ledger.get_item_by_id(item.id)
        assert final.quantity == 0
        assert final.total_sold == 10
        assert stock_ledger.get_sales_data().total_sold == 10

    def test_quantities_observed_are_distinct(self, stock_ledger):
        item = stock_ledger.add_item("Counted", 1, 2, 20, 0)

        results = _run_concurrently(lambda i: stock_ledger.record_sale(item.id, 1), workers=20)

        remaining = sorted(r.item.quantity for r in results)
        assert remaining == list(range(20))


class TestConcurrentMixedOperations:
    def test_invariant_holds_under_mixed_writes(self, stock_ledger):
        item = stock_ledger.add_item("Busy", 1, 2, 50, 0)

        def operation(i):
            if i % 3 == 0:
                return stock_ledger.update_stock(item.id, 40 + i)
            return stock_ledger.record_sale(item.id, 1)

        _run_concurrently(operation, workers=12)

        final = stock_ledger.get_item_by_id(item.id)
        ledger_sum = sum(t.signed_quantity for t in stock_ledger.get_stock_transactions(item.id))
        assert final.quantity == ledger_sum
        assert final.total_sold == stock_ledger.get_sales_data().total_sold

    def test_concurrent_readers_during_writes(self, stock_ledger):
        item = stock_ledger.add_item("Watched", 1, 2, 30, 0)

        def operation(i):
            if i % 2 == 0:
                return stock_ledger.record_sale(item.id, 1)
            return stock_ledger.get_item_by_id(item.id).quantity

        results = _run_concurrently(operation, workers=10)

        observed = [r for r in results if isinstance(r, int)]
        assert all(25 <= q <= 30 for q in observed)
        assert stock_ledger.get_item_by_id(item.id).quantity == 25

    def test_first_use_from_many_threads_initializes_once(self, stock_ledger, captured_logs):
        results = _run_concurrently(
            lambda i: stock_ledger.add_item(f"Item {i:02d}", 1, 2, 1, 0), workers=8
        )

        assert len({r.id for r in results}) == 8
        started = [r for r in captured_logs() if r["message"] == "storage_init_started"]
        assert len(started) == 1


class TestInMemoryLedger:
    """One shared connection: reads and writes interleaving across threads."""

    def test_reads_interleaved_with_sales(self, make_memory_ledger):
        ledger = make_memory_ledger()
        item = ledger.add_item("Shared", 1, 2, 400, 0)

        def operation(i):
            if i % 2 == 0:
                return ledger.record_sale(item.id, 1)
            return len(ledger.get_all_items())

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(operation, range(400)))

        assert results.count(1) == 200
        final = ledger.get_item_by_id(item.id)
        ledger_sum = sum(t.signed_quantity for t in ledger.get_stock_transactions(item.id))
        assert final.quantity == 200
        assert final.quantity == ledger_sum
        assert final.total_sold == 200
