from .catalog import Branch, Category, Product
from .stock import StockRecord, StockMovement
from .sales import Sale, BasketLine

__all__ = [
    'Branch', 'Category', 'Product',
    'StockRecord', 'StockMovement',
    'Sale', 'BasketLine',
]
