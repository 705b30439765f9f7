"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for Transaction headers and their owned
    LedgerEntry lines -- the append-only record of financial events.
Architecture position: Kernel > Models.  May import from db/ and
    models/account.py only.
Invariants enforced:
    - (tenant_id, transaction_number) and
      (tenant_id, transaction_type, sequence_year, sequence_number) are unique.
    - A transaction is reversed at most once (reversal_of_id is unique).
    - Entries belong to exactly one transaction and are deleted only with it.
    - POSTED rows change only by moving to VOIDED; VOIDED rows are frozen
      (enforced by db/immutability.py).
Failure modes:
    - IntegrityError on a duplicate document number (backstop for the
      DocumentSequencer).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyType, RateType

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class TransactionStatus(str, Enum):
    """Lifecycle: DRAFT -> POSTED -> VOIDED (terminal)."""

    DRAFT = "draft"
    POSTED = "posted"
    VOIDED = "voided"


class TransactionType(str, Enum):
    """Kind of business event; selects the document-number prefix."""

    JOURNAL_ENTRY = "journal_entry"
    INVOICE = "invoice"
    BILL = "bill"
    PAYMENT = "payment"
    RECEIPT = "receipt"
    BANK_TRANSFER = "bank_transfer"
    INVENTORY_ADJUSTMENT = "inventory_adjustment"
    DEPRECIATION = "depreciation"
    OPENING_BALANCE = "opening_balance"
    CLOSING_ENTRY = "closing_entry"
    COST_VARIANCE = "cost_variance"
    REVERSAL = "reversal"


class EntrySide(str, Enum):
    """Debit or credit side of a ledger entry."""

    DEBIT = "debit"
    CREDIT = "credit"

    def flipped(self) -> "EntrySide":
        return EntrySide.CREDIT if self is EntrySide.DEBIT else EntrySide.DEBIT


class Transaction(TrackedBase):
    """
    One atomic financial event and the entries that make it up.

    The document number ``{prefix}-{year}-{NNNN}`` is assigned by the
    DocumentSequencer in the same unit of work that persists the row.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "transaction_number", name="uq_transaction_number"),
        UniqueConstraint(
            "tenant_id",
            "transaction_type",
            "sequence_year",
            "sequence_number",
            name="uq_transaction_sequence",
        ),
        Index("idx_transaction_tenant_date", "tenant_id", "transaction_date"),
        Index("idx_transaction_tenant_status", "tenant_id", "status"),
        Index("idx_transaction_reference", "tenant_id", "reference_type", "reference_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(String(30), nullable=False)

    sequence_year: Mapped[int] = mapped_column(Integer, nullable=False)

    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)

    transaction_number: Mapped[str] = mapped_column(String(50), nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(1000), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    # User-keyed entry; re-checked against allow_manual_posting when a draft is posted
    is_manual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[TransactionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.DRAFT,
    )

    # Originating business document (invoice, bill, payment, ...)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=True,
        unique=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entries: Mapped[list["LedgerEntry"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LedgerEntry.line_seq",
    )

    reversal_of: Mapped[Optional["Transaction"]] = relationship(
        remote_side="Transaction.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.transaction_number} ({self.status})>"

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (e.amount_in_base for e in self.entries if e.side == EntrySide.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (e.amount_in_base for e in self.entries if e.side == EntrySide.CREDIT),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    @property
    def is_voided(self) -> bool:
        return self.status == TransactionStatus.VOIDED


class LedgerEntry(TrackedBase):
    """
    One debit or credit line on one account.

    ``amount_in_base`` = ``amount`` x ``exchange_rate`` and is the figure
    balance checks and account balances are computed from.
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("idx_entry_transaction", "transaction_id"),
        Index("idx_entry_account", "account_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    side: Mapped[EntrySide] = mapped_column(String(10), nullable=False)

    amount: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    exchange_rate: Mapped[Decimal] = mapped_column(
        RateType(),
        nullable=False,
        default=Decimal("1"),
    )

    amount_in_base: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    transaction: Mapped["Transaction"] = relationship(back_populates="entries")

    account: Mapped["Account"] = relationship()

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.side} {self.amount} {self.currency}>"

    @property
    def is_debit(self) -> bool:
        return self.side == EntrySide.DEBIT
