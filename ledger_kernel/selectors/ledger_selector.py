"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only balance queries: single-account balances (cached
    or as of a date), hierarchical roll-ups, trial balance, and the
    reconciliation of cached balances against the entry history.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A balance recomputed from entries uses the same signed_delta rule as
      the BalanceAccumulator, so cache and history are comparable.
    - Entries of POSTED and VOIDED transactions count; a voided original is
      offset by its POSTED reversal.  DRAFT entries never count.
    - Sums are Decimal, computed in Python for backend portability.

Non-goals:
    - Reads take no locks; reporting may observe a balance one commit stale.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.balance import signed_delta
from ledger_kernel.domain.dtos import (
    AccountBalanceNode,
    BalanceDiscrepancy,
    TrialBalanceRow,
)
from ledger_kernel.domain.rollup import rollup_balances
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.transaction import (
    EntrySide,
    LedgerEntry,
    Transaction,
    TransactionStatus,
)
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")

_ZERO = Decimal("0")

BALANCE_STATUSES = (TransactionStatus.POSTED.value, TransactionStatus.VOIDED.value)


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Balance read path.

    Without ``as_of_date`` balances come from the cached ``Account.balance``
    column.  With a date they are recomputed from the entries of
    transactions dated on or before it.
    """

    def _accounts(self, tenant_id: UUID) -> list[Account]:
        return list(
            self.session.execute(
                select(Account).where(Account.tenant_id == tenant_id).order_by(Account.code)
            ).scalars()
        )

    def _entry_rows(
        self,
        tenant_id: UUID,
        as_of_date: date | None = None,
        account_id: UUID | None = None,
    ):
        stmt = (
            select(
                LedgerEntry.account_id,
                LedgerEntry.side,
                LedgerEntry.amount_in_base,
                Account.account_type,
            )
            .join(Transaction, LedgerEntry.transaction_id == Transaction.id)
            .join(Account, LedgerEntry.account_id == Account.id)
            .where(
                Transaction.tenant_id == tenant_id,
                Transaction.status.in_(BALANCE_STATUSES),
            )
        )
        if as_of_date is not None:
            stmt = stmt.where(Transaction.transaction_date <= as_of_date)
        if account_id is not None:
            stmt = stmt.where(LedgerEntry.account_id == account_id)
        return self.session.execute(stmt).all()

    def computed_balances(
        self, tenant_id: UUID, as_of_date: date | None = None
    ) -> dict[UUID, Decimal]:
        """Own balance per account, recomputed from the entry history."""
        balances: dict[UUID, Decimal] = defaultdict(lambda: _ZERO)
        for account_id, side, amount, account_type in self._entry_rows(tenant_id, as_of_date):
            balances[account_id] += signed_delta(account_type, side, amount)
        return dict(balances)

    def recompute_balance(
        self, tenant_id: UUID, account_id: UUID, as_of_date: date | None = None
    ) -> Decimal:
        total = _ZERO
        for _, side, amount, account_type in self._entry_rows(tenant_id, as_of_date, account_id):
            total += signed_delta(account_type, side, amount)
        return total

    def account_balance(
        self, tenant_id: UUID, account_id: UUID, as_of_date: date | None = None
    ) -> Decimal:
        """
        Own (direct) balance of one account.

        Raises:
            AccountNotFoundError: If the account does not exist for the tenant.
        """
        account = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.id == account_id)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id), str(tenant_id))
        if as_of_date is None:
            return account.balance
        return self.recompute_balance(tenant_id, account_id, as_of_date)

    def _rollup(self, tenant_id: UUID, as_of_date: date | None):
        accounts = self._accounts(tenant_id)
        if as_of_date is None:
            own = {a.id: a.balance for a in accounts}
        else:
            computed = self.computed_balances(tenant_id, as_of_date)
            own = {a.id: computed.get(a.id, _ZERO) for a in accounts}

        known = set(own)
        children_of: dict[UUID, list[UUID]] = defaultdict(list)
        roots: list[UUID] = []
        for account in accounts:
            if account.parent_id is not None and account.parent_id in known:
                children_of[account.parent_id].append(account.id)
            else:
                roots.append(account.id)

        def _report_cycle(parent_id, child_id):
            logger.warning(
                "account_hierarchy_cycle_detected",
                extra={"parent_id": str(parent_id), "child_id": str(child_id)},
            )

        rolled = rollup_balances(own, children_of, roots + list(own), _report_cycle)
        return accounts, own, children_of, roots, rolled

    def rollup(
        self, tenant_id: UUID, account_id: UUID, as_of_date: date | None = None
    ) -> Decimal:
        """Own balance plus the rolled-up balance of every descendant."""
        _, _, _, _, rolled = self._rollup(tenant_id, as_of_date)
        if account_id not in rolled:
            raise AccountNotFoundError(str(account_id), str(tenant_id))
        return rolled[account_id]

    def hierarchical_balances(
        self, tenant_id: UUID, as_of_date: date | None = None
    ) -> list[AccountBalanceNode]:
        """Tree of rolled-up balances, one root per top-level account."""
        accounts, own, children_of, roots, rolled = self._rollup(tenant_id, as_of_date)
        by_id = {a.id: a for a in accounts}
        emitted: set[UUID] = set()
        built: dict[UUID, AccountBalanceNode] = {}
        result = []

        for root_id in roots:
            if root_id in emitted:
                continue
            emitted.add(root_id)
            # Post-order: a node is built once all of its children are.
            stack: list[tuple[UUID, list[UUID] | None]] = [(root_id, None)]
            while stack:
                account_id, kids = stack.pop()
                if kids is None:
                    kids = [c for c in children_of.get(account_id, ()) if c not in emitted]
                    emitted.update(kids)
                    stack.append((account_id, kids))
                    stack.extend((child_id, None) for child_id in reversed(kids))
                    continue
                account = by_id[account_id]
                built[account_id] = AccountBalanceNode(
                    account_id=account.id,
                    code=account.code,
                    name=account.name,
                    account_type=AccountType(account.account_type),
                    currency=account.currency,
                    own_balance=own[account_id],
                    balance=rolled[account_id],
                    children=tuple(built.pop(child_id) for child_id in kids),
                )
            result.append(built.pop(root_id))
        return result

    def trial_balance(
        self, tenant_id: UUID, as_of_date: date | None = None
    ) -> list[TrialBalanceRow]:
        """Debit and credit totals per account that has entries."""
        debits: dict[UUID, Decimal] = defaultdict(lambda: _ZERO)
        credits: dict[UUID, Decimal] = defaultdict(lambda: _ZERO)
        for account_id, side, amount, _ in self._entry_rows(tenant_id, as_of_date):
            if EntrySide(side) == EntrySide.DEBIT:
                debits[account_id] += amount
            else:
                credits[account_id] += amount

        rows = []
        for account in self._accounts(tenant_id):
            if account.id not in debits and account.id not in credits:
                continue
            debit_total = debits.get(account.id, _ZERO)
            credit_total = credits.get(account.id, _ZERO)
            account_type = AccountType(account.account_type)
            rows.append(
                TrialBalanceRow(
                    account_id=account.id,
                    code=account.code,
                    name=account.name,
                    account_type=account_type,
                    total_debits=debit_total,
                    total_credits=credit_total,
                    balance=signed_delta(account_type, EntrySide.DEBIT, debit_total)
                    + signed_delta(account_type, EntrySide.CREDIT, credit_total),
                )
            )
        return rows

    def reconcile_balances(self, tenant_id: UUID) -> list[BalanceDiscrepancy]:
        """Accounts whose cached balance disagrees with their entry history."""
        computed = self.computed_balances(tenant_id)
        discrepancies = []
        for account in self._accounts(tenant_id):
            expected = computed.get(account.id, _ZERO)
            if account.balance != expected:
                discrepancies.append(
                    BalanceDiscrepancy(
                        account_id=account.id,
                        code=account.code,
                        cached_balance=account.balance,
                        computed_balance=expected,
                    )
                )
        if discrepancies:
            logger.warning(
                "balance_discrepancies_found",
                extra={"tenant_id": str(tenant_id), "count": len(discrepancies)},
            )
        return discrepancies
