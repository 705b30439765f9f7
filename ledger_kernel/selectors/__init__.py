"""Read-only query selectors."""

from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.selectors.transaction_selector import TransactionSelector

__all__ = ["AccountSelector", "LedgerSelector", "TransactionSelector"]
