"""
Fault injection: a failure at any point of a mutation leaves the ledger
exactly as it was, and transient failures are retried as whole units.
"""

import sqlite3
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from stock_kernel.exceptions import (
    StorageFatalError,
    StorageTransientError,
    is_user_correctable,
)
from stock_kernel.services.ledger_service import LedgerService
from stock_kernel.services.stock_ledger import build_stock_ledger


class SimulatedCrash(Exception):
    """Exception to simulate a crash at a specific point."""


def _locked_error() -> OperationalError:
    return OperationalError(
        "INSERT INTO stock_transactions", {}, sqlite3.OperationalError("database is locked")
    )


def _assert_untouched(ledger, item_id, quantity=100, total_sold=0, entries=1):
    item = ledger.get_item_by_id(item_id)
    assert item.quantity == quantity
    assert item.total_sold == total_sold
    assert len(ledger.get_stock_transactions(item_id)) == entries


class TestAtomicity:
    def test_crash_before_ledger_insert_rolls_back_quantity(self, stock_ledger, widget):
        with patch.object(
            LedgerService, "_append", side_effect=SimulatedCrash("crash before insert")
        ):
            with pytest.raises(SimulatedCrash):
                stock_ledger.record_sale(widget.id, 5)

        _assert_untouched(stock_ledger, widget.id)

    def test_crash_after_flush_rolls_back_everything(self, stock_ledger, widget):
        with patch.object(
            LedgerService, "_result", side_effect=SimulatedCrash("crash after flush")
        ):
            with pytest.raises(SimulatedCrash):
                stock_ledger.update_stock(widget.id, 40)

        _assert_untouched(stock_ledger, widget.id)

    def test_crash_during_add_leaves_no_orphan_item(self, stock_ledger):
        with patch.object(
            LedgerService, "_append", side_effect=SimulatedCrash("crash before insert")
        ):
            with pytest.raises(SimulatedCrash):
                stock_ledger.add_item("Phantom", 1, 2, 5, 0)

        assert stock_ledger.get_all_items() == []
        assert stock_ledger.get_stock_transactions() == []
        # the name is still free
        assert stock_ledger.add_item("Phantom", 1, 2, 5, 0).quantity == 5

    def test_crash_does_not_signal_low_stock(self, stock_ledger, widget, low_stock_recorder):
        with patch.object(
            LedgerService, "_result", side_effect=SimulatedCrash("crash after flush")
        ):
            with pytest.raises(SimulatedCrash):
                stock_ledger.record_sale(widget.id, 90)

        assert not low_stock_recorder.wait(timeout=0.2)


class TestTransientRecovery:
    def test_sale_retried_as_whole_unit(self, stock_ledger, widget, captured_logs):
        original = LedgerService._append
        calls = []

        def flaky(self, *args, **kwargs):
            calls.append(1)
            txn = original(self, *args, **kwargs)
            if len(calls) == 1:
                raise StorageTransientError("record_sale", 1, "handle not ready")
            return txn

        with patch.object(LedgerService, "_append", autospec=True, side_effect=flaky):
            mutation = stock_ledger.record_sale(widget.id, 5)

        assert len(calls) == 2
        assert mutation.item.quantity == 95
        _assert_untouched(stock_ledger, widget.id, quantity=95, total_sold=5, entries=2)
        retries = [r for r in captured_logs() if r["message"] == "storage_operation_retry"]
        assert len(retries) == 1

    def test_locked_database_is_retried(self, stock_ledger, widget):
        original = LedgerService._append
        failures = [_locked_error(), _locked_error()]

        def locked_twice(self, *args, **kwargs):
            if failures:
                raise failures.pop()
            return original(self, *args, **kwargs)

        with patch.object(LedgerService, "_append", autospec=True, side_effect=locked_twice):
            stock_ledger.record_sale(widget.id, 3)

        _assert_untouched(stock_ledger, widget.id, quantity=97, total_sold=3, entries=2)

    def test_exhausted_retries_are_fatal_and_change_nothing(self, stock_ledger, widget):
        with patch.object(LedgerService, "_append", side_effect=_locked_error()):
            with pytest.raises(StorageFatalError) as exc_info:
                stock_ledger.record_sale(widget.id, 5)

        assert exc_info.value.operation == "record_sale"
        assert exc_info.value.attempts == 3
        assert not is_user_correctable(exc_info.value)
        _assert_untouched(stock_ledger, widget.id)


class TestDurability:
    def test_committed_state_survives_reopen(self, ledger_config, deterministic_clock):
        ledger = build_stock_ledger(ledger_config, clock=deterministic_clock)
        item = ledger.add_item("Durable", 3, 5, 12, 2)
        ledger.record_sale(item.id, 4)
        ledger.close()

        reopened = build_stock_ledger(ledger_config, clock=deterministic_clock)
        try:
            _assert_untouched(reopened, item.id, quantity=8, total_sold=4, entries=2)
            assert reopened.get_total_revenue() == 20
        finally:
            reopened.close()

    def test_reset_clears_everything(self, stock_ledger, widget):
        stock_ledger.record_sale(widget.id, 1)
        stock_ledger.reset_database()

        assert stock_ledger.get_all_items() == []
        assert stock_ledger.get_stock_transactions() == []
        assert stock_ledger.add_item("Widget", 1, 2, 3, 0).quantity == 3
