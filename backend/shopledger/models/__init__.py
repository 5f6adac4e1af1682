from .tenancy import Shop, SHOP_TIERS, TIER_PRODUCT_LIMITS
from .catalog import Product, PRODUCT_ACTIVE, PRODUCT_INACTIVE, PRODUCT_STATUSES
from .sales import (
    Sale,
    SaleItem,
    PAYMENT_METHODS,
    SALE_STATUSES,
    SALE_PENDING,
    SALE_COMPLETED,
    SALE_VOIDED,
    SALE_REFUNDED,
)
from .stock import StockLogEntry, STOCK_LOG_TYPES, ImmutableLedgerError
from .documents import ReceiptSequence

__all__ = [
    'Shop', 'SHOP_TIERS', 'TIER_PRODUCT_LIMITS',
    'Product', 'PRODUCT_ACTIVE', 'PRODUCT_INACTIVE', 'PRODUCT_STATUSES',
    'Sale', 'SaleItem', 'PAYMENT_METHODS', 'SALE_STATUSES',
    'SALE_PENDING', 'SALE_COMPLETED', 'SALE_VOIDED', 'SALE_REFUNDED',
    'StockLogEntry', 'STOCK_LOG_TYPES', 'ImmutableLedgerError',
    'ReceiptSequence',
]
