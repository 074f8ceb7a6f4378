from .auth import User
from .catalog import Product
from .stock import StockAdjustment, ProductDistribution
from .sales import Sale, SaleItem

__all__ = [
    'User',
    'Product',
    'StockAdjustment', 'ProductDistribution',
    'Sale', 'SaleItem',
]
