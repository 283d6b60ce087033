from .auth import User
from .catalog import Category, Supplier, Product
from .customers import Customer
from .stock import PurchaseBatch, InventorySummary, SupplierReturn
from .sales import Invoice, SaleLine, SaleSerial, WarrantyClaim
from .audit import PurchaseUndoLog, SaleUndoLog
from .repairs import Repair, RepairItem
from .notifications import Notification, OutboxEvent

__all__ = [
    'User',
    'Category', 'Supplier', 'Product',
    'Customer',
    'PurchaseBatch', 'InventorySummary', 'SupplierReturn',
    'Invoice', 'SaleLine', 'SaleSerial', 'WarrantyClaim',
    'PurchaseUndoLog', 'SaleUndoLog',
    'Repair', 'RepairItem',
    'Notification', 'OutboxEvent',
]
