"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.balance_accumulator import BalanceAccumulator
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.posting_orchestrator import (
    LedgerResult,
    LedgerStatus,
    PostingOrchestrator,
)
from ledger_kernel.services.reversal_service import ReversalService, VoidResult
from ledger_kernel.services.sequence_service import DocumentSequencer
from ledger_kernel.services.variance_service import VarianceService

__all__ = [
    "AccountRegistry",
    "BalanceAccumulator",
    "DocumentSequencer",
    "LedgerResult",
    "LedgerService",
    "LedgerStatus",
    "PostingOrchestrator",
    "ReversalService",
    "VarianceService",
    "VoidResult",
]
