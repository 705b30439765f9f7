"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import (
    NORMAL_BALANCE_BY_TYPE,
    Account,
    AccountType,
    NormalBalance,
)
from ledger_kernel.models.cost_variance import CostVariance, VarianceType
from ledger_kernel.models.sequence import DocumentSequenceCounter
from ledger_kernel.models.transaction import (
    EntrySide,
    LedgerEntry,
    Transaction,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "NORMAL_BALANCE_BY_TYPE",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "LedgerEntry",
    "EntrySide",
    "DocumentSequenceCounter",
    "CostVariance",
    "VarianceType",
]
