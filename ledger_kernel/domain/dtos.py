"""
DTOs -- immutable data structures crossing the kernel's boundaries.

Responsibility:
    Defines the inputs handed to the posting engine (EntryInput,
    TransactionInput), the settings it runs with (LedgerSettings,
    AccountSpec), and the detached read-side records returned to callers
    (AccountRecord, TransactionRecord, VoidRecord, balance trees).

Architecture position:
    Kernel > Domain -- pure, no I/O.  ``from_model()`` converters read ORM
    attributes but are only invoked from services and selectors.

Invariants enforced:
    - Every monetary field is a Decimal, never a float.
    - Records are frozen and detached from the Session, so they stay valid
      after the unit of work commits or rolls back.

Data flow:
    TransactionInput -> LedgerService -> Transaction (ORM) -> TransactionRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Mapping
from uuid import UUID

from ledger_kernel.db.types import round_money
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.cost_variance import VarianceType
from ledger_kernel.models.transaction import EntrySide, TransactionStatus, TransactionType

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.cost_variance import CostVariance as CostVarianceModel
    from ledger_kernel.models.transaction import LedgerEntry as LedgerEntryModel
    from ledger_kernel.models.transaction import Transaction as TransactionModel


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

DEFAULT_DOCUMENT_PREFIXES: Mapping[str, str] = {
    TransactionType.JOURNAL_ENTRY.value: "JE",
    TransactionType.INVOICE.value: "INV",
    TransactionType.BILL.value: "BILL",
    TransactionType.PAYMENT.value: "PAY",
    TransactionType.RECEIPT.value: "REC",
    TransactionType.BANK_TRANSFER.value: "TRF",
    TransactionType.INVENTORY_ADJUSTMENT.value: "INV-ADJ",
    TransactionType.DEPRECIATION.value: "DEP",
    TransactionType.OPENING_BALANCE.value: "OB",
    TransactionType.CLOSING_ENTRY.value: "CE",
    TransactionType.COST_VARIANCE.value: "CV",
    TransactionType.REVERSAL.value: "REV",
}

# Inclusive code ranges per account type
DEFAULT_CODE_RANGES: Mapping[AccountType, tuple[int, int]] = {
    AccountType.ASSET: (1000, 1999),
    AccountType.LIABILITY: (2000, 2999),
    AccountType.EQUITY: (3000, 3999),
    AccountType.REVENUE: (4000, 4999),
    AccountType.EXPENSE: (5000, 9999),
}


@dataclass(frozen=True)
class LedgerSettings:
    """Tenant-independent knobs the kernel runs with."""

    base_currency: str = "USD"
    sequence_padding: int = 4
    default_prefix: str = "TXN"
    document_prefixes: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_DOCUMENT_PREFIXES)
    )
    account_code_ranges: Mapping[AccountType, tuple[int, int]] = field(
        default_factory=lambda: dict(DEFAULT_CODE_RANGES)
    )

    def prefix_for(self, document_type: str) -> str:
        key = document_type.value if isinstance(document_type, Enum) else document_type
        return self.document_prefixes.get(key, self.default_prefix)


DEFAULT_VARIANCE_PREFIXES: Mapping[str, str] = {
    "EXCHANGE_RATE_FLUCTUATION": "5450",
    "SUPPLIER_PRICE_HIKE": "5410",
    "PRODUCTION_INEFFICIENCY": "5420",
}


@dataclass(frozen=True)
class VarianceAccounts:
    """
    Account-code prefixes cost variances are posted against.

    The variance account is chosen by reason code (falling back to
    ``default_prefix``); the offset always goes to ``inventory_prefix``.
    """

    default_prefix: str = "5400"
    inventory_prefix: str = "1300"
    by_reason_code: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_VARIANCE_PREFIXES)
    )

    def prefix_for(self, reason_code: str | None) -> str:
        if reason_code is None:
            return self.default_prefix
        return self.by_reason_code.get(reason_code, self.default_prefix)


@dataclass(frozen=True)
class AccountSpec:
    """One account of a chart template; parents are referenced by code."""

    code: str
    name: str
    account_type: AccountType
    parent_code: str | None = None
    account_subtype: str | None = None
    description: str | None = None
    allow_manual_posting: bool = True
    is_system: bool = False
    tags: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Posting inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntryInput:
    """
    One proposed debit or credit line.

    ``currency`` defaults to the tenant base currency when None.
    ``amount_in_base`` is derived, never supplied.
    """

    account_id: UUID
    side: EntrySide
    amount: Decimal
    currency: str | None = None
    exchange_rate: Decimal = Decimal("1")
    description: str | None = None

    @property
    def amount_in_base(self) -> Decimal:
        return round_money(Decimal(self.amount) * Decimal(self.exchange_rate))

    @classmethod
    def debit(cls, account_id: UUID, amount: Decimal, **kwargs) -> EntryInput:
        return cls(account_id=account_id, side=EntrySide.DEBIT, amount=amount, **kwargs)

    @classmethod
    def credit(cls, account_id: UUID, amount: Decimal, **kwargs) -> EntryInput:
        return cls(account_id=account_id, side=EntrySide.CREDIT, amount=amount, **kwargs)


@dataclass(frozen=True)
class TransactionInput:
    """
    Everything the posting engine needs to create one transaction.

    ``is_manual`` marks user-keyed journal entries; those may not touch
    accounts with ``allow_manual_posting = False``.  ``post_immediately``
    False creates a DRAFT that moves balances only when posted.
    """

    tenant_id: UUID
    transaction_type: TransactionType
    transaction_date: date
    description: str
    entries: tuple[EntryInput, ...]
    actor_id: UUID
    reference_type: str | None = None
    reference_id: str | None = None
    notes: str | None = None
    is_manual: bool = False
    post_immediately: bool = True
    reversal_of_id: UUID | None = None


@dataclass(frozen=True)
class BalanceSummary:
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    is_balanced: bool


@dataclass(frozen=True)
class PostingValidation:
    """Outcome of an account posting check: ok, or the reasons it is not."""

    is_valid: bool
    reasons: tuple[str, ...] = ()

    @classmethod
    def success(cls) -> PostingValidation:
        return cls(is_valid=True)

    @classmethod
    def failure(cls, *reasons: str) -> PostingValidation:
        return cls(is_valid=False, reasons=tuple(reasons))

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass(frozen=True)
class DocumentNumber:
    prefix: str
    year: int
    value: int
    formatted: str

    def __str__(self) -> str:
        return self.formatted


# ---------------------------------------------------------------------------
# Read-side records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountRecord:
    id: UUID
    tenant_id: UUID
    code: str
    name: str
    account_type: AccountType
    parent_id: UUID | None
    currency: str
    balance: Decimal
    level: int
    has_children: bool
    allow_manual_posting: bool
    is_system: bool
    is_active: bool
    full_path: str
    account_subtype: str | None = None

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountRecord:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            code=model.code,
            name=model.name,
            account_type=AccountType(model.account_type),
            parent_id=model.parent_id,
            currency=model.currency,
            balance=model.balance,
            level=model.level,
            has_children=model.has_children,
            allow_manual_posting=model.allow_manual_posting,
            is_system=model.is_system,
            is_active=model.is_active,
            full_path=model.full_path,
            account_subtype=model.account_subtype,
        )


@dataclass(frozen=True)
class EntryRecord:
    id: UUID
    account_id: UUID
    side: EntrySide
    amount: Decimal
    currency: str
    exchange_rate: Decimal
    amount_in_base: Decimal
    description: str | None

    @classmethod
    def from_model(cls, model: LedgerEntryModel) -> EntryRecord:
        return cls(
            id=model.id,
            account_id=model.account_id,
            side=EntrySide(model.side),
            amount=model.amount,
            currency=model.currency,
            exchange_rate=model.exchange_rate,
            amount_in_base=model.amount_in_base,
            description=model.description,
        )


@dataclass(frozen=True)
class TransactionRecord:
    """Detached view of a transaction and its entries."""

    id: UUID
    tenant_id: UUID
    transaction_number: str
    transaction_type: TransactionType
    transaction_date: date
    description: str
    status: TransactionStatus
    entries: tuple[EntryRecord, ...]
    created_by_id: UUID
    reference_type: str | None = None
    reference_id: str | None = None
    reversal_of_id: UUID | None = None
    posted_at: datetime | None = None
    voided_at: datetime | None = None
    voided_by_id: UUID | None = None

    @classmethod
    def from_model(cls, model: TransactionModel) -> TransactionRecord:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            transaction_number=model.transaction_number,
            transaction_type=TransactionType(model.transaction_type),
            transaction_date=model.transaction_date,
            description=model.description,
            status=TransactionStatus(model.status),
            entries=tuple(EntryRecord.from_model(e) for e in model.entries),
            created_by_id=model.created_by_id,
            reference_type=model.reference_type,
            reference_id=model.reference_id,
            reversal_of_id=model.reversal_of_id,
            posted_at=model.posted_at,
            voided_at=model.voided_at,
            voided_by_id=model.voided_by_id,
        )

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


@dataclass(frozen=True)
class VoidRecord:
    original: TransactionRecord
    reversing: TransactionRecord


@dataclass(frozen=True)
class AccountNode:
    """Hierarchy view of one account and its (filtered) descendants."""

    account: AccountRecord
    children: tuple[AccountNode, ...] = ()


@dataclass(frozen=True)
class AccountBalanceNode:
    """
    Rolled-up balance of one account.

    ``own_balance`` covers entries posted directly to the account;
    ``balance`` adds the rolled-up balances of all children.
    """

    account_id: UUID
    code: str
    name: str
    account_type: AccountType
    currency: str
    own_balance: Decimal
    balance: Decimal
    children: tuple[AccountBalanceNode, ...] = ()


@dataclass(frozen=True)
class BalanceDiscrepancy:
    account_id: UUID
    code: str
    cached_balance: Decimal
    computed_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.cached_balance - self.computed_balance


@dataclass(frozen=True)
class CostVarianceRecord:
    id: UUID
    tenant_id: UUID
    item_reference: str
    variance_type: VarianceType
    standard_cost: Decimal
    actual_cost: Decimal
    quantity: Decimal
    total_variance: Decimal
    components: Mapping[str, Decimal]
    transaction_id: UUID | None
    reason_code: str | None = None

    @classmethod
    def from_model(cls, model: CostVarianceModel) -> CostVarianceRecord:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            item_reference=model.item_reference,
            variance_type=VarianceType(model.variance_type),
            standard_cost=model.standard_cost,
            actual_cost=model.actual_cost,
            quantity=model.quantity,
            total_variance=model.total_variance,
            components={k: Decimal(v) for k, v in (model.components or {}).items()},
            transaction_id=model.transaction_id,
            reason_code=model.reason_code,
        )

    @property
    def is_favorable(self) -> bool:
        return self.total_variance < 0


@dataclass(frozen=True)
class TrialBalanceRow:
    account_id: UUID
    code: str
    name: str
    account_type: AccountType
    total_debits: Decimal
    total_credits: Decimal
    balance: Decimal
