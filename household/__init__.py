"""
Household domain services.

Every mutation goes through an authorization decision first, then a
version-guarded write, then publishes its event on the bus. Side effects
(low-stock tracking, shopping-list fan-out, suggestion responses) subscribe
to those events and never fail the write that triggered them.
"""

from household.inventory import InventoryService
from household.shopping_list import ShoppingListService
from household.suggestions import SuggestionService
from household.low_stock import LowStockManager

__all__ = [
    "InventoryService",
    "ShoppingListService",
    "SuggestionService",
    "LowStockManager",
]
