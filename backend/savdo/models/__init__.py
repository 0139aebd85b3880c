from .tenancy import Tenant
from .catalog import Product
from .parties import Customer, Dealer, DealerCustomer, Supplier
from .consignment import DealerInventory, DealerTransaction
from .sales import Sale, SaleItem, Delivery
from .purchases import Purchase, PurchaseItem
from .ledger import Payment, DebtEntry, LedgerEvent
from .append_only import AppendOnlyViolation

__all__ = [
    'Tenant',
    'Product',
    'Customer', 'Dealer', 'DealerCustomer', 'Supplier',
    'DealerInventory', 'DealerTransaction',
    'Sale', 'SaleItem', 'Delivery',
    'Purchase', 'PurchaseItem',
    'Payment', 'DebtEntry', 'LedgerEvent',
    'AppendOnlyViolation',
]
