"""
Module: ledger_kernel.selectors.transaction_selector
Responsibility: Read-only transaction lookups and filtered listings.
Architecture position: Kernel > Selectors.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import TransactionRecord
from ledger_kernel.models.transaction import (
    LedgerEntry,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.selectors.base import BaseSelector


class TransactionSelector(BaseSelector[Transaction]):
    """Transaction read path; every result is a detached TransactionRecord."""

    def get(self, tenant_id: UUID, transaction_id: UUID) -> TransactionRecord | None:
        txn = self.session.execute(
            select(Transaction).where(
                Transaction.tenant_id == tenant_id, Transaction.id == transaction_id
            )
        ).scalar_one_or_none()
        return TransactionRecord.from_model(txn) if txn is not None else None

    def get_by_number(self, tenant_id: UUID, transaction_number: str) -> TransactionRecord | None:
        txn = self.session.execute(
            select(Transaction).where(
                Transaction.tenant_id == tenant_id,
                Transaction.transaction_number == transaction_number,
            )
        ).scalar_one_or_none()
        return TransactionRecord.from_model(txn) if txn is not None else None

    def get_reversal(self, tenant_id: UUID, transaction_id: UUID) -> TransactionRecord | None:
        """The transaction that reversed ``transaction_id``, if any."""
        txn = self.session.execute(
            select(Transaction).where(
                Transaction.tenant_id == tenant_id,
                Transaction.reversal_of_id == transaction_id,
            )
        ).scalar_one_or_none()
        return TransactionRecord.from_model(txn) if txn is not None else None

    def list_transactions(
        self,
        tenant_id: UUID,
        status: TransactionStatus | None = None,
        transaction_type: TransactionType | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        account_id: UUID | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        """Transactions matching every given filter, oldest first."""
        stmt = select(Transaction).where(Transaction.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(Transaction.status == TransactionStatus(status).value)
        if transaction_type is not None:
            stmt = stmt.where(
                Transaction.transaction_type == TransactionType(transaction_type).value
            )
        if date_from is not None:
            stmt = stmt.where(Transaction.transaction_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Transaction.transaction_date <= date_to)
        if reference_type is not None:
            stmt = stmt.where(Transaction.reference_type == reference_type)
        if reference_id is not None:
            stmt = stmt.where(Transaction.reference_id == reference_id)
        if account_id is not None:
            stmt = stmt.where(
                Transaction.id.in_(
                    select(LedgerEntry.transaction_id).where(LedgerEntry.account_id == account_id)
                )
            )

        stmt = stmt.order_by(
            Transaction.transaction_date,
            Transaction.sequence_year,
            Transaction.transaction_type,
            Transaction.sequence_number,
        ).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        return [TransactionRecord.from_model(t) for t in self.session.execute(stmt).scalars()]
