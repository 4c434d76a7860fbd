"""ORM models for the stock kernel."""

from stock_kernel.models.item import InventoryItem
from stock_kernel.models.stock_transaction import (
    StockTransaction,
    TransactionKind,
    register_ledger_listeners,
    unregister_ledger_listeners,
)

__all__ = [
    "InventoryItem",
    "StockTransaction",
    "TransactionKind",
    "register_ledger_listeners",
    "unregister_ledger_listeners",
]
