from .master import Location, Item, Supplier
from .periods import Period, PeriodLocation, ItemPrice, Reconciliation, MandayEntry
from .stock import LocationStock, Delivery, DeliveryLine, Issue, IssueLine
from .documents import Transfer, TransferLine, NCR, NCRLine, Approval, DocumentSequence
from .audit import LedgerEvent

__all__ = [
    'Location', 'Item', 'Supplier',
    'Period', 'PeriodLocation', 'ItemPrice', 'Reconciliation', 'MandayEntry',
    'LocationStock', 'Delivery', 'DeliveryLine', 'Issue', 'IssueLine',
    'Transfer', 'TransferLine', 'NCR', 'NCRLine', 'Approval', 'DocumentSequence',
    'LedgerEvent',
]
