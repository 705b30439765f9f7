"""
DocumentSequencer -- per-tenant document numbers via locked counter rows.

Responsibility:
    Issues ``{prefix}-{year}-{NNNN}`` numbers, unique and strictly
    increasing per (tenant, document type, year).

Architecture position:
    Kernel > Services -- called by LedgerService inside the posting unit
    of work.

Invariants enforced:
    - The counter row is read with ``SELECT ... FOR UPDATE`` (PostgreSQL);
      on SQLite the unit of work's BEGIN IMMEDIATE serializes writers.
      Two concurrent allocations for one key therefore never see the same
      value.
    - The increment is only visible when the caller's unit of work commits.
      A rolled-back posting returns its number.
    - The first use of a key seeds the counter from the highest sequence
      number already on file for that key (0 when none).  After that the
      counter row is the sole source of the next value.
    - The (tenant, type, year, sequence_number) unique constraint on
      transactions is the final backstop.

Failure modes:
    - IntegrityError on concurrent first use of a key: handled by
      savepoint rollback and a locked re-read.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.unit_of_work import UnitOfWork
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import DocumentNumber, LedgerSettings
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import DocumentSequenceCounter
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.services.base import BaseService

logger = get_logger("services.sequence")


def _type_key(document_type) -> str:
    return getattr(document_type, "value", document_type)


class DocumentSequencer(BaseService[DocumentSequenceCounter]):
    """
    Transactional document-number generator.

    Usage:
        with uow.atomic():
            number = sequencer.next_number(tenant_id, TransactionType.INVOICE, 2024)
            # INV-2024-0001; returned to the pool if the scope rolls back
    """

    def __init__(
        self,
        uow: UnitOfWork,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(uow)
        self._settings = settings or LedgerSettings()
        self._clock = clock or SystemClock()

    def _locked_counter(self, tenant_id: UUID, key: str, year: int):
        return self.session.execute(
            select(DocumentSequenceCounter)
            .where(
                DocumentSequenceCounter.tenant_id == tenant_id,
                DocumentSequenceCounter.document_type == key,
                DocumentSequenceCounter.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _highest_on_file(self, tenant_id: UUID, key: str, year: int) -> int:
        highest = self.session.execute(
            select(func.max(Transaction.sequence_number)).where(
                Transaction.tenant_id == tenant_id,
                Transaction.transaction_type == key,
                Transaction.sequence_year == year,
            )
        ).scalar_one()
        return highest or 0

    def format_number(self, document_type, year: int, value: int) -> str:
        prefix = self._settings.prefix_for(_type_key(document_type))
        return f"{prefix}-{year}-{value:0{self._settings.sequence_padding}d}"

    def next_number(self, tenant_id: UUID, document_type, year: int | None = None) -> DocumentNumber:
        """
        Allocate the next number for (tenant, document type, year).

        ``year`` defaults to the current year of the injected clock.

        Returns:
            DocumentNumber with value = highest issued + 1.
        """
        key = _type_key(document_type)
        year = year if year is not None else self._clock.today().year

        counter = self._locked_counter(tenant_id, key, year)

        if counter is None:
            seed = self._highest_on_file(tenant_id, key, year)
            savepoint = self.session.begin_nested()
            try:
                counter = DocumentSequenceCounter(
                    tenant_id=tenant_id, document_type=key, year=year, current_value=seed
                )
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                # Another transaction created the row first
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"tenant_id": str(tenant_id), "document_type": key, "year": year},
                )
                savepoint.rollback()
                counter = self._locked_counter(tenant_id, key, year)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()

        number = DocumentNumber(
            prefix=self._settings.prefix_for(key),
            year=year,
            value=counter.current_value,
            formatted=self.format_number(key, year, counter.current_value),
        )
        logger.debug(
            "sequence_allocated",
            extra={
                "tenant_id": str(tenant_id),
                "document_type": key,
                "year": year,
                "value": number.value,
                "document_number": number.formatted,
            },
        )
        return number

    def current_value(self, tenant_id: UUID, document_type, year: int) -> int:
        """Highest number issued so far for the key, without incrementing."""
        key = _type_key(document_type)
        counter = self.session.execute(
            select(DocumentSequenceCounter).where(
                DocumentSequenceCounter.tenant_id == tenant_id,
                DocumentSequenceCounter.document_type == key,
                DocumentSequenceCounter.year == year,
            )
        ).scalar_one_or_none()
        if counter is not None:
            return counter.current_value
        return self._highest_on_file(tenant_id, key, year)
