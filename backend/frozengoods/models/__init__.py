from .products import Product
from .ledger import LedgerEntry
from .sales import Sale
from .reservations import Reservation
from .reorder import ReorderSettings, ReorderDraftItem, ReorderSnapshot, ReorderSnapshotItem

__all__ = [
    'Product',
    'LedgerEntry',
    'Sale',
    'Reservation',
    'ReorderSettings', 'ReorderDraftItem', 'ReorderSnapshot', 'ReorderSnapshotItem',
]
