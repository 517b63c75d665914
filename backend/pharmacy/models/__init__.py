from .auth import User, SessionToken
from .inventory import Product, StockMovement
from .customers import Customer
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderLine
from .sales import Sale, SaleLine, SalePayment
from .documents import DocumentSequence

__all__ = [
    'User', 'SessionToken',
    'Product', 'StockMovement',
    'Customer',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderLine',
    'Sale', 'SaleLine', 'SalePayment',
    'DocumentSequence',
]
