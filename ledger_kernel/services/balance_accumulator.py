"""
BalanceAccumulator -- the only writer of the cached Account.balance.

Responsibility:
    Turns posted entries into signed per-account deltas (normal-balance
    rule) and applies them to the cached balance column.

Architecture position:
    Kernel > Services -- called by LedgerService in the same unit of work
    that persists the entries being posted.

Invariants enforced:
    - Each account row is locked (``SELECT ... FOR UPDATE``) and re-read
      with ``populate_existing`` before the delta is added, so concurrent
      postings to one account serialize instead of losing updates.
    - Deltas are applied in ascending account-id order, so two postings
      touching the same accounts lock them in the same order.
    - The cached balance equals the signed sum of the account's POSTED and
      VOIDED entries (see LedgerSelector.reconcile_balances).
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.balance import signed_delta
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.transaction import EntrySide, LedgerEntry
from ledger_kernel.services.base import BaseService

logger = get_logger("services.balance_accumulator")


class BalanceAccumulator(BaseService[Account]):
    """Applies signed balance deltas under row locks."""

    @staticmethod
    def signed_delta(account_type: AccountType, side: EntrySide, amount: Decimal) -> Decimal:
        return signed_delta(account_type, side, amount)

    def _lock(self, account_id: UUID) -> Account:
        account = self.session.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def apply_delta(self, account_id: UUID, signed_amount: Decimal) -> Decimal:
        """Add ``signed_amount`` to the account's cached balance; return the new balance."""
        account = self._lock(account_id)
        account.balance = account.balance + signed_amount
        self.session.flush()
        logger.debug(
            "balance_delta_applied",
            extra={
                "account_id": str(account_id),
                "delta": signed_amount,
                "new_balance": account.balance,
            },
        )
        return account.balance

    def apply_entries(self, entries: Iterable[LedgerEntry]) -> dict[UUID, Decimal]:
        """
        Apply the balance effect of a set of entries.

        Entries are aggregated per account first, so each account row is
        locked and written once.

        Returns:
            New cached balance per touched account.
        """
        deltas: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
        for entry in entries:
            account_type = entry.account.account_type
            deltas[entry.account_id] += signed_delta(account_type, entry.side, entry.amount_in_base)

        new_balances = {}
        for account_id in sorted(deltas, key=str):
            new_balances[account_id] = self.apply_delta(account_id, deltas[account_id])
        return new_balances
