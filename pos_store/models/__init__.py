from .inventory import Product, InventoryMovement
from .categories import Category
from .sales import Transaction
from .schema import SchemaVersion

__all__ = [
    'Product', 'InventoryMovement',
    'Category',
    'Transaction',
    'SchemaVersion',
]
