from .catalog import ProductType, Product, Location
from .inventory import StockRecord, InventoryLog
from .sales import Sale, SaleItem
from .returns import Return, ReturnItem
from .auth import User, SessionToken

__all__ = [
    'ProductType', 'Product', 'Location',
    'StockRecord', 'InventoryLog',
    'Sale', 'SaleItem',
    'Return', 'ReturnItem',
    'User', 'SessionToken',
]
