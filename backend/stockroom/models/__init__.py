from .catalog import Product, Supplier
from .inventory import StockTransaction, ProductBatch
from .sales import Invoice, InvoiceItem
from .purchasing import PurchaseOrder, PurchaseOrderItem, GoodsReceipt, GoodsReceiptItem
from .documents import DocumentSequence

__all__ = [
    'Product', 'Supplier',
    'StockTransaction', 'ProductBatch',
    'Invoice', 'InvoiceItem',
    'PurchaseOrder', 'PurchaseOrderItem', 'GoodsReceipt', 'GoodsReceiptItem',
    'DocumentSequence',
]
