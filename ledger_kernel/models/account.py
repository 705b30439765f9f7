"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every ledger entry, organised per tenant as a parent/child hierarchy.
Architecture position: Kernel > Models.  May import from db/ only.
Invariants enforced (by AccountRegistry and db/immutability.py):
    - (tenant_id, code) is unique.
    - A child's account_type equals its parent's account_type.
    - code lies inside the numeric range configured for account_type.
    - Accounts with children, and inactive accounts, reject postings.
    - account_type and code are frozen once the account has entries.
    - Accounts are never deleted, only deactivated.
Failure modes:
    - AccountNotFoundError when a posting references an unknown account.
    - AccountNotPostableError when a posting targets a parent, inactive or
      system-controlled account.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyType


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Side whose increase raises the account's economic value."""

    DEBIT = "debit"
    CREDIT = "credit"


NORMAL_BALANCE_BY_TYPE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


class Account(TrackedBase):
    """
    One node of a tenant's chart of accounts.

    ``balance`` is a cache of the signed sum of the account's posted entries.
    It is only written by the BalanceAccumulator inside the posting unit of
    work and can always be recomputed from the entry history.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_type", "tenant_id", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Human-readable code; its numeric range determines the type
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    account_subtype: Mapped[str | None] = mapped_column(String(50), nullable=True)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    balance: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
    )

    # 0 for roots, parent.level + 1 otherwise
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    has_children: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    allow_manual_posting: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )

    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # parent.full_path + "/" + code
    full_path: Mapped[str] = mapped_column(Text, nullable=False)

    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    parent: Mapped[Optional["Account"]] = relationship(
        remote_side="Account.id",
        back_populates="children",
    )

    children: Mapped[list["Account"]] = relationship(
        back_populates="parent",
        order_by="Account.code",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        return NORMAL_BALANCE_BY_TYPE[AccountType(self.account_type)]

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def is_postable(self) -> bool:
        """Leaf and active."""
        return self.is_active and not self.has_children

    def has_tag(self, tag: str) -> bool:
        return self.tags is not None and tag in self.tags
