"""
Module: ledger_kernel.models.sequence
Responsibility: Counter rows backing the DocumentSequencer, one per
    (tenant, document type, year).
Architecture position: Kernel > Models.
Invariants enforced:
    - (tenant_id, document_type, year) is unique, so concurrent first use
      of a key produces exactly one row.
"""

from uuid import UUID

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class DocumentSequenceCounter(Base):
    """
    Locked counter row.

    ``current_value`` is the highest number issued so far for the key; it
    only ever increases and only becomes visible when the issuing unit of
    work commits.
    """

    __tablename__ = "document_sequence_counters"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "document_type", "year", name="uq_document_sequence_key"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    document_type: Mapped[str] = mapped_column(String(30), nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<DocumentSequenceCounter {self.document_type}/{self.year}={self.current_value}>"
