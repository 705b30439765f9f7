"""
ReversalService -- voids posted transactions by posting a mirror image.

Responsibility:
    Validates void preconditions, builds the reversing entry set (every
    line with its side flipped), posts it through LedgerService as a
    REVERSAL transaction, and marks the original VOIDED -- atomically.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes LedgerService.

Invariants enforced:
    - Original entries are never mutated or deleted; the only change to
      the original row is POSTED -> VOIDED plus voided_at / voided_by_id.
    - One reversal per original (reversal_of_id is unique).
    - The reversal goes through the full posting path, so its balance
      deltas exactly cancel the original's.
    - Reversal and status change commit together or not at all.

Failure modes:
    - TransactionNotFoundError: Unknown id for the tenant.
    - TransactionAlreadyVoidedError: Double void.
    - TransactionNotPostedError: Void of a DRAFT (nothing was posted).
    - AccountNotPostableError: An original account was deactivated or has
      gained children since the original was posted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from ledger_kernel.domain.dtos import EntryInput, TransactionInput
from ledger_kernel.exceptions import (
    TransactionAlreadyVoidedError,
    TransactionNotPostedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.transaction import (
    EntrySide,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_service import LedgerService

logger = get_logger("services.reversal")

REVERSAL_REFERENCE_TYPE = "Transaction"


@dataclass(frozen=True)
class VoidResult:
    """The voided original and the transaction that reversed it."""

    original: Transaction
    reversing: Transaction


class ReversalService(BaseService[Transaction]):
    """Void handler."""

    def __init__(self, ledger: LedgerService):
        super().__init__(ledger.uow)
        self._ledger = ledger
        self._clock = ledger.clock

    def void_transaction(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        void_date: date | None = None,
    ) -> VoidResult:
        """
        Void a POSTED transaction.

        The reversal is dated ``void_date`` (default: today), never before
        the original's own date.
        """
        with self.uow.atomic():
            original = self._ledger.lock_transaction(tenant_id, transaction_id)
            status = TransactionStatus(original.status)
            if status == TransactionStatus.VOIDED:
                logger.warning(
                    "void_rejected_already_voided",
                    extra={
                        "transaction_id": str(original.id),
                        "transaction_number": original.transaction_number,
                    },
                )
                raise TransactionAlreadyVoidedError(str(original.id), original.transaction_number)
            if status != TransactionStatus.POSTED:
                raise TransactionNotPostedError(str(original.id), status.value)

            label = f"Void of {original.transaction_number}"
            mirrored = tuple(
                EntryInput(
                    account_id=entry.account_id,
                    side=EntrySide(entry.side).flipped(),
                    amount=entry.amount,
                    currency=entry.currency,
                    exchange_rate=entry.exchange_rate,
                    description=label,
                )
                for entry in original.entries
            )

            reversal_date = max(void_date or self._clock.today(), original.transaction_date)
            reversing = self._ledger.create_transaction(
                TransactionInput(
                    tenant_id=tenant_id,
                    transaction_type=TransactionType.REVERSAL,
                    transaction_date=reversal_date,
                    description=f"{label}: {original.description}",
                    entries=mirrored,
                    actor_id=actor_id,
                    reference_type=REVERSAL_REFERENCE_TYPE,
                    reference_id=str(original.id),
                    notes=reason,
                    is_manual=False,
                    post_immediately=True,
                    reversal_of_id=original.id,
                )
            )

            original.status = TransactionStatus.VOIDED.value
            original.voided_at = self._clock.now()
            original.voided_by_id = actor_id
            original.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            "transaction_voided",
            extra={
                "tenant_id": str(tenant_id),
                "transaction_id": str(original.id),
                "transaction_number": original.transaction_number,
                "reversal_id": str(reversing.id),
                "reversal_number": reversing.transaction_number,
                "reason": reason,
            },
        )
        return VoidResult(original=original, reversing=reversing)
