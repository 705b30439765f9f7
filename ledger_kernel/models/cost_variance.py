"""
Module: ledger_kernel.models.cost_variance
Responsibility: Persist computed standard-vs-actual cost variances and link
    each one to the ledger transaction that booked it.
Architecture position: Kernel > Models.
Invariants enforced:
    - total_variance is in base currency; positive means unfavorable.
    - transaction_id, when set, points at a POSTED COST_VARIANCE transaction
      whose entries sum to abs(total_variance) on each side.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyType


class VarianceType(str, Enum):
    PURCHASE_PRICE = "purchase_price"
    MATERIAL_USAGE = "material_usage"
    LABOR_RATE = "labor_rate"
    LABOR_EFFICIENCY = "labor_efficiency"
    OVERHEAD = "overhead"
    STANDARD_COST = "standard_cost"
    EXCHANGE_RATE = "exchange_rate"


class CostVariance(TrackedBase):
    """A recorded cost variance and its decomposition."""

    __tablename__ = "cost_variances"
    __table_args__ = (
        Index("idx_cost_variance_tenant_item", "tenant_id", "item_reference"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item_reference: Mapped[str] = mapped_column(String(100), nullable=False)

    variance_type: Mapped[VarianceType] = mapped_column(String(30), nullable=False)

    standard_cost: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    actual_cost: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    total_variance: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    # Component name -> amount (decimal string), produced by a VarianceDecomposer
    components: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)

    reason_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    @property
    def is_favorable(self) -> bool:
        return self.total_variance < 0
