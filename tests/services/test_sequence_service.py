"""
Tests for DocumentSequencer.

Tests cover:
- Formatted, strictly increasing numbers per (tenant, type, year)
- Independence of keys
- Configurable prefixes and padding
- Seeding from numbers already on file
- Numbers returned to the pool when the enclosing scope rolls back
"""

from decimal import Decimal

import pytest
from sqlalchemy import delete

from ledger_kernel.db.unit_of_work import UnitOfWork
from ledger_kernel.domain.dtos import LedgerSettings
from ledger_kernel.models.sequence import DocumentSequenceCounter
from ledger_kernel.models.transaction import TransactionType
from ledger_kernel.services.sequence_service import DocumentSequencer


@pytest.fixture
def uow(session):
    return UnitOfWork(session, auto_commit=False)


@pytest.fixture
def sequencer(uow, clock):
    return DocumentSequencer(uow, clock=clock)


class TestAllocation:

    def test_consecutive_numbers(self, sequencer, tenant_id):
        numbers = [
            sequencer.next_number(tenant_id, TransactionType.JOURNAL_ENTRY) for _ in range(3)
        ]

        assert [n.value for n in numbers] == [1, 2, 3]
        assert [n.formatted for n in numbers] == ["JE-2024-0001", "JE-2024-0002", "JE-2024-0003"]
        assert numbers[0].prefix == "JE"
        assert numbers[0].year == 2024

    def test_year_defaults_to_clock(self, sequencer, tenant_id):
        assert sequencer.next_number(tenant_id, TransactionType.INVOICE).year == 2024
        assert sequencer.next_number(tenant_id, TransactionType.INVOICE, 2023).formatted == "INV-2023-0001"

    def test_keys_are_independent(self, sequencer, tenant_id, other_tenant_id):
        sequencer.next_number(tenant_id, TransactionType.JOURNAL_ENTRY)
        sequencer.next_number(tenant_id, TransactionType.JOURNAL_ENTRY)

        assert sequencer.next_number(tenant_id, TransactionType.BILL).value == 1
        assert sequencer.next_number(tenant_id, TransactionType.JOURNAL_ENTRY, 2025).value == 1
        assert sequencer.next_number(other_tenant_id, TransactionType.JOURNAL_ENTRY).value == 1
        assert sequencer.next_number(tenant_id, TransactionType.JOURNAL_ENTRY).value == 3

    def test_accepts_plain_type_strings(self, sequencer, tenant_id):
        sequencer.next_number(tenant_id, TransactionType.DEPRECIATION)
        assert sequencer.next_number(tenant_id, "depreciation").formatted == "DEP-2024-0002"

    def test_current_value(self, sequencer, tenant_id):
        assert sequencer.current_value(tenant_id, TransactionType.PAYMENT, 2024) == 0
        sequencer.next_number(tenant_id, TransactionType.PAYMENT)
        sequencer.next_number(tenant_id, TransactionType.PAYMENT)
        assert sequencer.current_value(tenant_id, TransactionType.PAYMENT, 2024) == 2
        assert sequencer.next_number(tenant_id, TransactionType.PAYMENT).value == 3


class TestFormatting:

    @pytest.mark.parametrize(
        "transaction_type,expected",
        [
            (TransactionType.INVENTORY_ADJUSTMENT, "INV-ADJ-2024-0001"),
            (TransactionType.COST_VARIANCE, "CV-2024-0001"),
            (TransactionType.REVERSAL, "REV-2024-0001"),
            (TransactionType.OPENING_BALANCE, "OB-2024-0001"),
        ],
    )
    def test_default_prefixes(self, sequencer, tenant_id, transaction_type, expected):
        assert sequencer.next_number(tenant_id, transaction_type).formatted == expected

    def test_unknown_type_uses_default_prefix(self, sequencer, tenant_id):
        assert sequencer.next_number(tenant_id, "accrual").formatted == "TXN-2024-0001"

    def test_custom_padding_and_prefixes(self, uow, clock, tenant_id):
        settings = LedgerSettings(
            sequence_padding=6,
            default_prefix="DOC",
            document_prefixes={"journal_entry": "GJ"},
        )
        sequencer = DocumentSequencer(uow, settings, clock)

        assert sequencer.next_number(tenant_id, TransactionType.JOURNAL_ENTRY).formatted == "GJ-2024-000001"
        assert sequencer.next_number(tenant_id, TransactionType.INVOICE).formatted == "DOC-2024-000001"

    def test_value_wider_than_padding(self, sequencer):
        assert sequencer.format_number(TransactionType.BILL, 2024, 123456) == "BILL-2024-123456"


class TestSeeding:

    def test_seeds_from_highest_number_on_file(self, session, sequencer, post, tenant_id):
        for _ in range(3):
            assert post("1010", "3100", Decimal("1")).is_success
        session.execute(delete(DocumentSequenceCounter))
        session.flush()

        assert sequencer.current_value(tenant_id, TransactionType.JOURNAL_ENTRY, 2024) == 3
        assert sequencer.next_number(tenant_id, TransactionType.JOURNAL_ENTRY).formatted == "JE-2024-0004"


class TestRollback:

    def test_failed_scope_returns_first_number(self, uow, sequencer, tenant_id):
        with pytest.raises(RuntimeError):
            with uow.atomic():
                sequencer.next_number(tenant_id, TransactionType.RECEIPT)
                raise RuntimeError("posting failed")

        assert sequencer.next_number(tenant_id, TransactionType.RECEIPT).value == 1

    def test_failed_scope_returns_later_number(self, uow, sequencer, tenant_id):
        with uow.atomic():
            sequencer.next_number(tenant_id, TransactionType.RECEIPT)

        with pytest.raises(RuntimeError):
            with uow.atomic():
                assert sequencer.next_number(tenant_id, TransactionType.RECEIPT).value == 2
                raise RuntimeError("posting failed")

        assert sequencer.next_number(tenant_id, TransactionType.RECEIPT).value == 2
