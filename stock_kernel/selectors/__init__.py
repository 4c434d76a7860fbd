"""Read-only query selectors for the stock kernel."""

from stock_kernel.selectors.analytics_selector import AnalyticsSelector
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.item_selector import ItemSelector

__all__ = [
    "AnalyticsSelector",
    "BaseSelector",
    "ItemSelector",
]
