from .base import new_id
from .catalog import Category, Item, Customer
from .shifts import (
    Shift, ShiftSale, Expense, ExternalMoney, Supply,
    SHIFT_ACTIVE, SHIFT_CLOSED, STATUS_BALANCED, STATUS_DISCREPANCY,
)
from .debts import (
    CustomerPurchase, CustomerPayment, SupplementDebt, SupplementDebtTransaction,
    SUPPLEMENT_DEBT_ID, TXN_DEBT, TXN_PAYMENT, VALID_TXN_TYPES,
)
from .audit import AdminLog, MonthlyArchive

__all__ = [
    'new_id',
    'Category', 'Item', 'Customer',
    'Shift', 'ShiftSale', 'Expense', 'ExternalMoney', 'Supply',
    'SHIFT_ACTIVE', 'SHIFT_CLOSED', 'STATUS_BALANCED', 'STATUS_DISCREPANCY',
    'CustomerPurchase', 'CustomerPayment', 'SupplementDebt', 'SupplementDebtTransaction',
    'SUPPLEMENT_DEBT_ID', 'TXN_DEBT', 'TXN_PAYMENT', 'VALID_TXN_TYPES',
    'AdminLog', 'MonthlyArchive',
]
