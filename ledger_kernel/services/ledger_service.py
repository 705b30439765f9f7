"""
LedgerService -- the double-entry posting engine.

Responsibility:
    Validates a proposed entry set, resolves and checks every target
    account, allocates the document number, persists header and entries,
    and (for postings) applies the balance deltas -- all inside one unit of
    work.  Also moves DRAFT transactions to POSTED.

Architecture position:
    Kernel > Services -- imperative shell.  Pure rules live in
    domain/balance.py; this service sequences them with persistence.
    Collaborators: AccountRegistry (eligibility), DocumentSequencer
    (numbers), BalanceAccumulator (cached balances).

Invariants enforced:
    - All structural validation (entry validity, count, balance, sides)
      precedes any write.
    - Every account is resolved for the tenant and postable; accounts are
      checked in ascending id order.
    - Debits equal credits in base currency, exact Decimal comparison.
    - Balances move exactly once per transaction: when it becomes POSTED.
      A DRAFT consumes a document number but moves nothing.
    - Header, entries, number and balance deltas commit together or not at
      all (caller's unit of work).

Failure modes:
    - ValidationError subclasses for malformed input (nothing persisted).
    - AccountNotFoundError / AccountNotPostableError for bad targets.
    - TransactionNotFoundError / TransactionAlreadyVoidedError from
      post_transaction().
"""

import time
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.unit_of_work import UnitOfWork
from ledger_kernel.domain import balance as balance_rules
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    BalanceSummary,
    EntryInput,
    LedgerSettings,
    TransactionInput,
)
from ledger_kernel.exceptions import (
    InsufficientEntriesError,
    TransactionAlreadyVoidedError,
    TransactionNotFoundError,
    UnbalancedTransactionError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import (
    EntrySide,
    LedgerEntry,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.balance_accumulator import BalanceAccumulator
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import DocumentSequencer

logger = get_logger("services.ledger")


class LedgerService(BaseService[Transaction]):
    """
    Posting engine.

    Usage:
        ledger = LedgerService(uow, settings, clock)
        txn = ledger.create_transaction(TransactionInput(...))
    """

    def __init__(
        self,
        uow: UnitOfWork,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        registry: AccountRegistry | None = None,
        sequencer: DocumentSequencer | None = None,
        accumulator: BalanceAccumulator | None = None,
    ):
        super().__init__(uow)
        self._settings = settings or LedgerSettings()
        self._clock = clock or SystemClock()
        self._registry = registry or AccountRegistry(uow, self._settings)
        self._sequencer = sequencer or DocumentSequencer(uow, self._settings, self._clock)
        self._accumulator = accumulator or BalanceAccumulator(uow)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    # -------------------------------------------------------------------------
    # Pure checks
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_balance(entries: Iterable[EntryInput]) -> bool:
        """True iff Σ debit amount_in_base == Σ credit amount_in_base."""
        return balance_rules.validate_balance(entries)

    @staticmethod
    def balance_summary(entries: Iterable[EntryInput]) -> BalanceSummary:
        return balance_rules.balance_summary(entries)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _resolve_accounts(
        self, tenant_id: UUID, account_ids: Iterable[UUID], is_manual: bool
    ) -> dict[UUID, Account]:
        accounts = {}
        for account_id in sorted(set(account_ids), key=str):
            accounts[account_id] = self._registry.require_postable(
                tenant_id, account_id, is_manual_entry=is_manual
            )
        return accounts

    def lock_transaction(self, tenant_id: UUID, transaction_id: UUID) -> Transaction:
        txn = self.session.execute(
            select(Transaction)
            .where(Transaction.tenant_id == tenant_id, Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id), str(tenant_id))
        return txn

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def create_transaction(self, data: TransactionInput) -> Transaction:
        """
        Validate and persist one transaction.

        Created POSTED (balances applied) unless ``data.post_immediately`` is
        False, in which case it is stored as a DRAFT.

        Raises:
            InvalidEntryError: A line has a bad amount, rate or currency.
            InsufficientEntriesError: Fewer than two entries.
            UnbalancedTransactionError: Debits != credits in base currency.
            MissingEntrySideError: No debit or no credit line.
            AccountNotFoundError: An entry targets an unknown account.
            AccountNotPostableError: An entry targets an inactive, parent
                or (for manual entries) system-controlled account.
        """
        t0 = time.monotonic()
        try:
            transaction_type = TransactionType(data.transaction_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown transaction type: {data.transaction_type!r}") from exc
        if not data.description or not data.description.strip():
            raise ValidationError("Transaction description is required")

        summary = balance_rules.validate_entries(
            data.entries, self._settings.base_currency
        )

        with self.uow.atomic():
            accounts = self._resolve_accounts(
                data.tenant_id, (e.account_id for e in data.entries), data.is_manual
            )

            number = self._sequencer.next_number(
                data.tenant_id, transaction_type, data.transaction_date.year
            )

            status = (
                TransactionStatus.POSTED if data.post_immediately else TransactionStatus.DRAFT
            )
            now = self._clock.now()
            txn = Transaction(
                tenant_id=data.tenant_id,
                transaction_type=transaction_type.value,
                sequence_year=number.year,
                sequence_number=number.value,
                transaction_number=number.formatted,
                transaction_date=data.transaction_date,
                description=data.description,
                notes=data.notes,
                is_manual=data.is_manual,
                status=status.value,
                reference_type=data.reference_type,
                reference_id=data.reference_id,
                reversal_of_id=data.reversal_of_id,
                posted_at=now if status == TransactionStatus.POSTED else None,
                created_by_id=data.actor_id,
            )
            for line_seq, entry in enumerate(data.entries, start=1):
                txn.entries.append(
                    LedgerEntry(
                        account=accounts[entry.account_id],
                        account_id=entry.account_id,
                        line_seq=line_seq,
                        side=EntrySide(entry.side).value,
                        amount=Decimal(entry.amount),
                        currency=(entry.currency or self._settings.base_currency).upper(),
                        exchange_rate=Decimal(entry.exchange_rate),
                        amount_in_base=entry.amount_in_base,
                        description=entry.description,
                        created_by_id=data.actor_id,
                    )
                )
            self.session.add(txn)
            self.session.flush()

            if status == TransactionStatus.POSTED:
                self._accumulator.apply_entries(txn.entries)

        logger.info(
            "transaction_created",
            extra={
                "tenant_id": str(data.tenant_id),
                "transaction_id": str(txn.id),
                "transaction_number": txn.transaction_number,
                "transaction_type": transaction_type.value,
                "status": status.value,
                "entry_count": len(data.entries),
                "total_debits": summary.total_debits,
                "total_credits": summary.total_credits,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return txn

    def post_transaction(self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID) -> Transaction:
        """
        Move a DRAFT to POSTED and apply its balance deltas.

        Posting an already POSTED transaction is a no-op.  The stored
        entries are re-validated against the current state of their
        accounts, since an account may have changed since the draft was
        saved.

        Raises:
            TransactionNotFoundError: Unknown id for the tenant.
            TransactionAlreadyVoidedError: The transaction is VOIDED.
        """
        with self.uow.atomic():
            txn = self.lock_transaction(tenant_id, transaction_id)
            status = TransactionStatus(txn.status)

            if status == TransactionStatus.VOIDED:
                raise TransactionAlreadyVoidedError(str(txn.id), txn.transaction_number)
            if status == TransactionStatus.POSTED:
                logger.info(
                    "transaction_already_posted",
                    extra={"transaction_id": str(txn.id), "transaction_number": txn.transaction_number},
                )
                return txn

            self._check_stored_entries(tenant_id, txn.entries, txn.is_manual)

            txn.status = TransactionStatus.POSTED.value
            txn.posted_at = self._clock.now()
            txn.updated_by_id = actor_id
            self.session.flush()
            self._accumulator.apply_entries(txn.entries)

        logger.info(
            "transaction_posted",
            extra={
                "tenant_id": str(tenant_id),
                "transaction_id": str(txn.id),
                "transaction_number": txn.transaction_number,
            },
        )
        return txn

    def _check_stored_entries(
        self, tenant_id: UUID, entries: Sequence[LedgerEntry], is_manual: bool
    ) -> None:
        if len(entries) < balance_rules.MIN_ENTRIES:
            raise InsufficientEntriesError(len(entries), balance_rules.MIN_ENTRIES)
        summary = balance_rules.balance_summary(entries)
        if not summary.is_balanced:
            raise UnbalancedTransactionError(
                summary.total_debits, summary.total_credits
            )
        self._resolve_accounts(tenant_id, (e.account_id for e in entries), is_manual)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_transaction(self, tenant_id: UUID, transaction_id: UUID) -> Transaction:
        """
        Raises:
            TransactionNotFoundError: Unknown id for the tenant.
        """
        txn = self.session.execute(
            select(Transaction).where(
                Transaction.tenant_id == tenant_id, Transaction.id == transaction_id
            )
        ).scalar_one_or_none()
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id), str(tenant_id))
        return txn
