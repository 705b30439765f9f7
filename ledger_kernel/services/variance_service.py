"""
VarianceService -- records cost variances and books them to the ledger.

Responsibility:
    Computes a standard-vs-actual variance, splits it with the injected
    VarianceDecomposer, stores a CostVariance row, and posts the total as a
    balanced two-line COST_VARIANCE transaction through LedgerService.

Architecture position:
    Kernel > Services -- a collaborator of the posting engine.  It only
    ever produces a TransactionInput; it never writes entries or balances
    itself.

Invariants enforced:
    - Decomposer components sum exactly to the total variance.
    - Unfavorable (positive) variance: Dr variance / Cr inventory.
      Favorable (negative): Dr inventory / Cr variance.
    - A zero variance is recorded without posting.
    - Row and transaction commit together or not at all.

Failure modes:
    - ConfigurationError: No postable account matches the configured
      variance or inventory prefix, or the decomposer's components do not
      sum to the total.
    - ValidationError: Negative quantity.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.dtos import EntryInput, TransactionInput, VarianceAccounts
from ledger_kernel.domain.variance import (
    SingleComponentDecomposer,
    VarianceDecomposer,
    VarianceInput,
)
from ledger_kernel.exceptions import ConfigurationError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.cost_variance import CostVariance, VarianceType
from ledger_kernel.models.transaction import TransactionType
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_service import LedgerService

logger = get_logger("services.variance")

VARIANCE_REFERENCE_TYPE = "CostVariance"


class VarianceService(BaseService[CostVariance]):

    def __init__(
        self,
        ledger: LedgerService,
        registry: AccountRegistry | None = None,
        decomposer: VarianceDecomposer | None = None,
        accounts: VarianceAccounts | None = None,
    ):
        super().__init__(ledger.uow)
        self._ledger = ledger
        self._registry = registry or AccountRegistry(ledger.uow, ledger.settings)
        self._decomposer = decomposer or SingleComponentDecomposer()
        self._accounts = accounts or VarianceAccounts()

    def _resolve(self, tenant_id: UUID, prefix: str, setting: str) -> Account:
        account = self._registry.find_postable_account(tenant_id, prefix)
        if account is None:
            raise ConfigurationError(
                f"No postable account with code prefix {prefix} for {setting}",
                setting=setting,
            )
        return account

    def record_variance(
        self,
        tenant_id: UUID,
        item_reference: str,
        variance_type: VarianceType,
        data: VarianceInput,
        actor_id: UUID,
        reason_code: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        notes: str | None = None,
        transaction_date: date | None = None,
        post_to_ledger: bool = True,
    ) -> CostVariance:
        """
        Record one variance and, unless it is zero, post it.

        Returns:
            The persisted CostVariance, linked to its transaction when one
            was posted.
        """
        variance_type = VarianceType(variance_type)
        for name in ("standard_price", "actual_price", "standard_quantity", "actual_quantity"):
            value = getattr(data, name)
            if isinstance(value, float) or not isinstance(value, (Decimal, int)):
                raise ValidationError(f"Variance {name} must be a Decimal, got {type(value).__name__}")
            if not Decimal(value).is_finite():
                raise ValidationError(f"Variance {name} must be finite, got {value}")
        if data.standard_quantity < 0 or data.actual_quantity < 0:
            raise ValidationError("Variance quantities must be non-negative")

        total = data.total_variance
        components = dict(self._decomposer.decompose(data))
        if sum(components.values(), Decimal("0")) != total:
            raise ConfigurationError(
                f"{type(self._decomposer).__name__} components do not sum to the "
                f"total variance {total}",
                setting="decomposer",
            )

        with self.uow.atomic():
            variance_account = inventory_account = None
            if post_to_ledger and total != 0:
                variance_account = self._resolve(
                    tenant_id, self._accounts.prefix_for(reason_code), "variance_account"
                )
                inventory_account = self._resolve(
                    tenant_id, self._accounts.inventory_prefix, "inventory_account"
                )

            row = CostVariance(
                tenant_id=tenant_id,
                item_reference=item_reference,
                variance_type=variance_type.value,
                standard_cost=data.standard_cost,
                actual_cost=data.actual_cost,
                quantity=data.actual_quantity,
                total_variance=total,
                components={name: format(amount, "f") for name, amount in components.items()},
                reason_code=reason_code,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=notes,
                created_by_id=actor_id,
            )
            self.session.add(row)
            self.session.flush()

            if variance_account is not None:
                amount = abs(total)
                label = reason_code or "Cost variance"
                if total > 0:
                    entries = (
                        EntryInput.debit(variance_account.id, amount, description=f"Unfavorable variance - {label}"),
                        EntryInput.credit(inventory_account.id, amount, description="Inventory adjustment for variance"),
                    )
                else:
                    entries = (
                        EntryInput.debit(inventory_account.id, amount, description="Inventory adjustment for variance"),
                        EntryInput.credit(variance_account.id, amount, description=f"Favorable variance - {label}"),
                    )
                txn = self._ledger.create_transaction(
                    TransactionInput(
                        tenant_id=tenant_id,
                        transaction_type=TransactionType.COST_VARIANCE,
                        transaction_date=transaction_date or self._ledger.clock.today(),
                        description=f"Cost variance posting - {reason_code or 'Variance analysis'}",
                        entries=entries,
                        actor_id=actor_id,
                        reference_type=VARIANCE_REFERENCE_TYPE,
                        reference_id=str(row.id),
                    )
                )
                row.transaction_id = txn.id
                self.session.flush()

        logger.info(
            "cost_variance_recorded",
            extra={
                "tenant_id": str(tenant_id),
                "cost_variance_id": str(row.id),
                "item_reference": item_reference,
                "variance_type": variance_type.value,
                "total_variance": total,
                "transaction_id": str(row.transaction_id) if row.transaction_id else None,
            },
        )
        return row
