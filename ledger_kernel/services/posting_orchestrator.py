"""
Posting Orchestrator - public boundary of the ledger kernel.

The Orchestrator ties together:
- AccountRegistry: chart of accounts and posting eligibility
- LedgerService: the double-entry posting engine
- ReversalService: voids
- VarianceService: cost variance postings
- Selectors: balances, roll-ups, listings

Every call runs inside one UnitOfWork scope.  With auto_commit (the
default) a successful call commits and a failed one rolls back; with
auto_commit=False the caller owns the enclosing transaction and may
compose several calls (e.g. bill creation plus its posting) into one.

Kernel exceptions never escape: they are logged and translated into a
LedgerResult whose status tells the caller what kind of failure occurred
and whose details carry the exception's structured data.  Anything that
is not a kernel error is a bug or an infrastructure fault and propagates
after rollback.
"""

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Generic, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.unit_of_work import UnitOfWork
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountBalanceNode,
    AccountNode,
    AccountRecord,
    AccountSpec,
    BalanceDiscrepancy,
    CostVarianceRecord,
    EntryInput,
    LedgerSettings,
    PostingValidation,
    TransactionInput,
    TransactionRecord,
    TrialBalanceRow,
    VarianceAccounts,
    VoidRecord,
)
from ledger_kernel.domain.variance import VarianceDecomposer, VarianceInput
from ledger_kernel.exceptions import (
    ConcurrencyError,
    ConfigurationError,
    ImmutabilityViolationError,
    LedgerKernelError,
    NotFoundError,
    StateError,
    TransactionNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.cost_variance import VarianceType
from ledger_kernel.models.transaction import TransactionType
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.balance_accumulator import BalanceAccumulator
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.reversal_service import ReversalService
from ledger_kernel.services.sequence_service import DocumentSequencer
from ledger_kernel.services.variance_service import VarianceService

logger = get_logger("services.posting_orchestrator")

T = TypeVar("T")


class LedgerStatus(str, Enum):
    """Outcome category of an orchestrator call."""

    OK = "ok"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    CONFIGURATION_ERROR = "configuration_error"
    CONCURRENCY_CONFLICT = "concurrency_conflict"


_STATUS_BY_ERROR: tuple[tuple[type[LedgerKernelError], LedgerStatus], ...] = (
    (ValidationError, LedgerStatus.VALIDATION_FAILED),
    (NotFoundError, LedgerStatus.NOT_FOUND),
    (StateError, LedgerStatus.STATE_CONFLICT),
    (ImmutabilityViolationError, LedgerStatus.STATE_CONFLICT),
    (ConfigurationError, LedgerStatus.CONFIGURATION_ERROR),
    (ConcurrencyError, LedgerStatus.CONCURRENCY_CONFLICT),
)


def _public_attributes(exc: BaseException) -> dict[str, Any]:
    return {k: v for k, v in vars(exc).items() if not k.startswith("_")}


@dataclass(frozen=True)
class LedgerResult(Generic[T]):
    """Result of an orchestrator call."""

    status: LedgerStatus
    value: T | None = None
    error_code: str | None = None
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == LedgerStatus.OK

    @classmethod
    def ok(cls, value: T) -> "LedgerResult[T]":
        return cls(status=LedgerStatus.OK, value=value)

    @classmethod
    def from_error(cls, exc: LedgerKernelError) -> "LedgerResult[T]":
        status = LedgerStatus.VALIDATION_FAILED
        for error_type, mapped in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                status = mapped
                break
        return cls(
            status=status,
            error_code=exc.code,
            message=str(exc),
            details=_public_attributes(exc),
        )


class PostingOrchestrator:
    """
    Entry point for every ledger operation.

    Args:
        session: SQLAlchemy session all work is flushed through.
        settings: Kernel settings (prefixes, code ranges, base currency).
        clock: Clock for timestamps and default dates.
        auto_commit: If True (default), each call commits on success and
            rolls back on failure.  If False, the caller manages the
            transaction.
        decomposer: Cost variance decomposer; defaults to a single
            "total" component.
        variance_accounts: Account-code prefixes for variance postings.
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
        decomposer: VarianceDecomposer | None = None,
        variance_accounts: VarianceAccounts | None = None,
    ):
        self._session = session
        self._settings = settings or LedgerSettings()
        self._clock = clock or SystemClock()
        self._uow = UnitOfWork(session, auto_commit=auto_commit)

        self._registry = AccountRegistry(self._uow, self._settings)
        self._sequencer = DocumentSequencer(self._uow, self._settings, self._clock)
        self._ledger = LedgerService(
            self._uow,
            self._settings,
            self._clock,
            registry=self._registry,
            sequencer=self._sequencer,
            accumulator=BalanceAccumulator(self._uow),
        )
        self._reversals = ReversalService(self._ledger)
        self._variances = VarianceService(
            self._ledger,
            registry=self._registry,
            decomposer=decomposer,
            accounts=variance_accounts,
        )
        self._ledger_selector = LedgerSelector(session)
        self._transaction_selector = TransactionSelector(session)

    @property
    def unit_of_work(self) -> UnitOfWork:
        return self._uow

    # -------------------------------------------------------------------------
    # Boundary
    # -------------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        fn: Callable[[], T],
        tenant_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> LedgerResult[T]:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=tenant_id,
            actor_id=actor_id,
            operation=operation,
        ):
            t0 = time.monotonic()
            try:
                with self._uow.atomic():
                    value = fn()
            except LedgerKernelError as exc:
                result: LedgerResult[T] = LedgerResult.from_error(exc)
                logger.warning(
                    "ledger_operation_failed",
                    extra={
                        "status": result.status.value,
                        "error_code": result.error_code,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                return result
            except IntegrityError as exc:
                # A unique constraint lost a race the locks did not cover
                conflict = ConcurrencyError(operation, str(exc.orig))
                logger.warning(
                    "ledger_operation_conflict",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                return LedgerResult.from_error(conflict)
            except Exception:
                logger.error(
                    "ledger_operation_error",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            logger.info(
                "ledger_operation_completed",
                extra={
                    "status": LedgerStatus.OK.value,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return LedgerResult.ok(value)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def create_transaction(
        self,
        tenant_id: UUID,
        transaction_type: TransactionType,
        transaction_date: date,
        description: str,
        entries: Sequence[EntryInput],
        actor_id: UUID,
        reference_type: str | None = None,
        reference_id: str | None = None,
        notes: str | None = None,
        is_manual: bool = False,
        post_immediately: bool = True,
    ) -> LedgerResult[TransactionRecord]:
        """Validate, number and persist a transaction (POSTED unless ``post_immediately`` is False)."""
        data = TransactionInput(
            tenant_id=tenant_id,
            transaction_type=transaction_type,
            transaction_date=transaction_date,
            description=description,
            entries=tuple(entries),
            actor_id=actor_id,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            is_manual=is_manual,
            post_immediately=post_immediately,
        )
        return self._run(
            "create_transaction",
            lambda: TransactionRecord.from_model(self._ledger.create_transaction(data)),
            tenant_id,
            actor_id,
        )

    def post_transaction(
        self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID
    ) -> LedgerResult[TransactionRecord]:
        return self._run(
            "post_transaction",
            lambda: TransactionRecord.from_model(
                self._ledger.post_transaction(tenant_id, transaction_id, actor_id)
            ),
            tenant_id,
            actor_id,
        )

    def void_transaction(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        void_date: date | None = None,
    ) -> LedgerResult[VoidRecord]:
        def _void() -> VoidRecord:
            result = self._reversals.void_transaction(
                tenant_id, transaction_id, actor_id, reason=reason, void_date=void_date
            )
            return VoidRecord(
                original=TransactionRecord.from_model(result.original),
                reversing=TransactionRecord.from_model(result.reversing),
            )

        return self._run("void_transaction", _void, tenant_id, actor_id)

    def get_transaction(self, tenant_id: UUID, transaction_id: UUID) -> LedgerResult[TransactionRecord]:
        return self._run(
            "get_transaction",
            lambda: TransactionRecord.from_model(
                self._ledger.get_transaction(tenant_id, transaction_id)
            ),
            tenant_id,
        )

    def get_transaction_by_number(
        self, tenant_id: UUID, transaction_number: str
    ) -> LedgerResult[TransactionRecord]:
        def _get() -> TransactionRecord:
            record = self._transaction_selector.get_by_number(tenant_id, transaction_number)
            if record is None:
                raise TransactionNotFoundError(transaction_number, str(tenant_id))
            return record

        return self._run("get_transaction_by_number", _get, tenant_id)

    def get_reversal(
        self, tenant_id: UUID, transaction_id: UUID
    ) -> LedgerResult[TransactionRecord | None]:
        """The reversing transaction of a voided original; None while it is not voided."""
        return self._run(
            "get_reversal",
            lambda: self._transaction_selector.get_reversal(tenant_id, transaction_id),
            tenant_id,
        )

    def list_transactions(self, tenant_id: UUID, **filters: Any) -> LedgerResult[list[TransactionRecord]]:
        """See TransactionSelector.list_transactions for the accepted filters."""
        return self._run(
            "list_transactions",
            lambda: self._transaction_selector.list_transactions(tenant_id, **filters),
            tenant_id,
        )

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    def get_account_balance(
        self, tenant_id: UUID, account_id: UUID, as_of_date: date | None = None
    ) -> LedgerResult[Decimal]:
        return self._run(
            "get_account_balance",
            lambda: self._ledger_selector.account_balance(tenant_id, account_id, as_of_date),
            tenant_id,
        )

    def get_rollup_balance(
        self, tenant_id: UUID, account_id: UUID, as_of_date: date | None = None
    ) -> LedgerResult[Decimal]:
        return self._run(
            "get_rollup_balance",
            lambda: self._ledger_selector.rollup(tenant_id, account_id, as_of_date),
            tenant_id,
        )

    def get_hierarchical_balances(
        self, tenant_id: UUID, as_of_date: date | None = None
    ) -> LedgerResult[list[AccountBalanceNode]]:
        return self._run(
            "get_hierarchical_balances",
            lambda: self._ledger_selector.hierarchical_balances(tenant_id, as_of_date),
            tenant_id,
        )

    def get_trial_balance(
        self, tenant_id: UUID, as_of_date: date | None = None
    ) -> LedgerResult[list[TrialBalanceRow]]:
        return self._run(
            "get_trial_balance",
            lambda: self._ledger_selector.trial_balance(tenant_id, as_of_date),
            tenant_id,
        )

    def reconcile_balances(self, tenant_id: UUID) -> LedgerResult[list[BalanceDiscrepancy]]:
        return self._run(
            "reconcile_balances",
            lambda: self._ledger_selector.reconcile_balances(tenant_id),
            tenant_id,
        )

    # -------------------------------------------------------------------------
    # Chart of accounts
    # -------------------------------------------------------------------------

    def create_account(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        **kwargs: Any,
    ) -> LedgerResult[AccountRecord]:
        """See AccountRegistry.create_account for the optional fields."""
        return self._run(
            "create_account",
            lambda: AccountRecord.from_model(
                self._registry.create_account(
                    tenant_id, code, name, account_type, actor_id, **kwargs
                )
            ),
            tenant_id,
            actor_id,
        )

    def initialize_chart(
        self, tenant_id: UUID, specs: Sequence[AccountSpec], actor_id: UUID
    ) -> LedgerResult[int]:
        """Create a chart from template entries; the value is the number of accounts created."""
        return self._run(
            "initialize_chart",
            lambda: len(self._registry.initialize_chart(tenant_id, specs, actor_id)),
            tenant_id,
            actor_id,
        )

    def deactivate_account(
        self, tenant_id: UUID, account_id: UUID, actor_id: UUID
    ) -> LedgerResult[AccountRecord]:
        return self._run(
            "deactivate_account",
            lambda: AccountRecord.from_model(
                self._registry.deactivate_account(tenant_id, account_id, actor_id)
            ),
            tenant_id,
            actor_id,
        )

    def reactivate_account(
        self, tenant_id: UUID, account_id: UUID, actor_id: UUID
    ) -> LedgerResult[AccountRecord]:
        return self._run(
            "reactivate_account",
            lambda: AccountRecord.from_model(
                self._registry.reactivate_account(tenant_id, account_id, actor_id)
            ),
            tenant_id,
            actor_id,
        )

    def get_account(self, tenant_id: UUID, account_id: UUID) -> LedgerResult[AccountRecord]:
        return self._run(
            "get_account",
            lambda: self._registry.get_account(tenant_id, account_id),
            tenant_id,
        )

    def get_account_by_code(self, tenant_id: UUID, code: str) -> LedgerResult[AccountRecord]:
        return self._run(
            "get_account_by_code",
            lambda: self._registry.get_account_by_code(tenant_id, code),
            tenant_id,
        )

    def get_account_hierarchy(self, tenant_id: UUID, **filters: Any) -> LedgerResult[list[AccountNode]]:
        return self._run(
            "get_account_hierarchy",
            lambda: self._registry.get_hierarchy(tenant_id, **filters),
            tenant_id,
        )

    def search_accounts(
        self, tenant_id: UUID, term: str | None = None, **filters: Any
    ) -> LedgerResult[list[AccountRecord]]:
        return self._run(
            "search_accounts",
            lambda: self._registry.search_accounts(tenant_id, term, **filters),
            tenant_id,
        )

    def validate_posting(
        self, tenant_id: UUID, account_id: UUID, is_manual_entry: bool = False
    ) -> LedgerResult[PostingValidation]:
        return self._run(
            "validate_posting",
            lambda: self._registry.validate_posting(tenant_id, account_id, is_manual_entry),
            tenant_id,
        )

    # -------------------------------------------------------------------------
    # Cost variances
    # -------------------------------------------------------------------------

    def record_cost_variance(
        self,
        tenant_id: UUID,
        item_reference: str,
        variance_type: VarianceType,
        data: VarianceInput,
        actor_id: UUID,
        **kwargs: Any,
    ) -> LedgerResult[CostVarianceRecord]:
        """See VarianceService.record_variance for the optional fields."""
        return self._run(
            "record_cost_variance",
            lambda: CostVarianceRecord.from_model(
                self._variances.record_variance(
                    tenant_id, item_reference, variance_type, data, actor_id, **kwargs
                )
            ),
            tenant_id,
            actor_id,
        )
