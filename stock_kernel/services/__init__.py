"""Write services and the StockLedger facade."""

from stock_kernel.services.ledger_service import LedgerService
from stock_kernel.services.low_stock import LowStockDispatcher
from stock_kernel.services.stock_ledger import StockLedger, build_stock_ledger

__all__ = [
    "LedgerService",
    "LowStockDispatcher",
    "StockLedger",
    "build_stock_ledger",
]
