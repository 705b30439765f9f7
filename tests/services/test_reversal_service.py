"""
ReversalService (void) tests.

Tests cover:
- Happy path: mirrored reversal, original voided, balances restored
- Error paths: double void, void of a draft, unknown transaction
- Reversal dating relative to the original
- Linkage: reversal_of_id, reference to the original, REVERSAL numbering
- Cached balances still agree with the entry history afterwards
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import EntryInput
from ledger_kernel.models.transaction import TransactionStatus, TransactionType
from ledger_kernel.services.posting_orchestrator import LedgerStatus
from ledger_kernel.services.reversal_service import REVERSAL_REFERENCE_TYPE


@pytest.fixture
def invoice(post):
    """A posted Dr AR 100 / Cr Sales 100 invoice dated 2024-06-01."""
    result = post(
        "1100", "4100", Decimal("100"),
        transaction_type=TransactionType.INVOICE,
        transaction_date=date(2024, 6, 1),
        description="Invoice 42",
    )
    assert result.is_success, result.message
    return result.value


class TestVoidTransaction:

    def test_void_mirrors_entries_and_restores_balances(
        self, orchestrator, tenant_id, actor_id, invoice, balance_of
    ):
        result = orchestrator.void_transaction(tenant_id, invoice.id, actor_id, reason="Duplicate")

        assert result.is_success, result.message
        original, reversing = result.value.original, result.value.reversing

        assert original.status == TransactionStatus.VOIDED
        assert original.voided_at is not None
        assert original.voided_by_id == actor_id

        assert reversing.status == TransactionStatus.POSTED
        assert reversing.transaction_type == TransactionType.REVERSAL
        assert len(reversing.entries) == len(invoice.entries)
        for before, after in zip(invoice.entries, reversing.entries):
            assert after.account_id == before.account_id
            assert after.side == before.side.flipped()
            assert after.amount == before.amount
            assert after.currency == before.currency
        assert reversing.total_debits == reversing.total_credits

        assert balance_of("1100") == Decimal("0")
        assert balance_of("4100") == Decimal("0")

    def test_reversal_linkage(self, orchestrator, tenant_id, actor_id, invoice):
        reversing = orchestrator.void_transaction(tenant_id, invoice.id, actor_id).value.reversing

        assert reversing.reversal_of_id == invoice.id
        assert reversing.reference_type == REVERSAL_REFERENCE_TYPE
        assert reversing.reference_id == str(invoice.id)
        assert reversing.transaction_number == "REV-2024-0001"
        assert reversing.description.startswith(f"Void of {invoice.transaction_number}")

    def test_reversal_lookup(self, orchestrator, tenant_id, actor_id, invoice):
        assert orchestrator.get_reversal(tenant_id, invoice.id).value is None

        reversing = orchestrator.void_transaction(tenant_id, invoice.id, actor_id).value.reversing

        assert orchestrator.get_reversal(tenant_id, invoice.id).value.id == reversing.id
        by_number = orchestrator.get_transaction_by_number(tenant_id, "REV-2024-0001")
        assert by_number.value.id == reversing.id
        missing = orchestrator.get_transaction_by_number(tenant_id, "REV-2024-0002")
        assert missing.status == LedgerStatus.NOT_FOUND

    def test_double_void_rejected(self, orchestrator, tenant_id, actor_id, invoice, balance_of):
        assert orchestrator.void_transaction(tenant_id, invoice.id, actor_id).is_success

        second = orchestrator.void_transaction(tenant_id, invoice.id, actor_id)

        assert second.status == LedgerStatus.STATE_CONFLICT
        assert second.error_code == "TRANSACTION_ALREADY_VOIDED"
        assert balance_of("1100") == Decimal("0")
        reversals = orchestrator.list_transactions(
            tenant_id, transaction_type=TransactionType.REVERSAL
        ).value
        assert len(reversals) == 1

    def test_void_of_draft_rejected(self, post, orchestrator, tenant_id, actor_id):
        draft = post("1010", "3100", Decimal("10"), post_immediately=False).value

        result = orchestrator.void_transaction(tenant_id, draft.id, actor_id)

        assert result.status == LedgerStatus.STATE_CONFLICT
        assert result.error_code == "TRANSACTION_NOT_POSTED"
        assert result.details["status"] == "draft"

    def test_void_unknown_transaction(self, orchestrator, tenant_id, actor_id, chart):
        result = orchestrator.void_transaction(tenant_id, uuid4(), actor_id)
        assert result.status == LedgerStatus.NOT_FOUND

    def test_void_from_other_tenant_rejected(self, orchestrator, other_tenant_id, actor_id, invoice):
        result = orchestrator.void_transaction(other_tenant_id, invoice.id, actor_id)

        assert result.status == LedgerStatus.NOT_FOUND
        assert orchestrator.get_transaction(other_tenant_id, invoice.id).status == LedgerStatus.NOT_FOUND

    def test_void_blocked_by_deactivated_account(
        self, orchestrator, tenant_id, actor_id, chart, invoice, balance_of
    ):
        orchestrator.deactivate_account(tenant_id, chart["4100"].id, actor_id)

        result = orchestrator.void_transaction(tenant_id, invoice.id, actor_id)

        assert result.status == LedgerStatus.STATE_CONFLICT
        assert orchestrator.get_transaction(tenant_id, invoice.id).value.status == TransactionStatus.POSTED
        assert balance_of("1100") == Decimal("100")

    def test_void_multi_currency_nets_to_zero(
        self, orchestrator, tenant_id, actor_id, today, chart, balance_of
    ):
        txn = orchestrator.create_transaction(
            tenant_id, TransactionType.RECEIPT, today, "GBP receipt",
            [
                EntryInput.debit(
                    chart["1020"].id, Decimal("80"), currency="GBP", exchange_rate=Decimal("1.25")
                ),
                EntryInput.credit(chart["4200"].id, Decimal("100")),
            ],
            actor_id,
        ).value

        reversing = orchestrator.void_transaction(tenant_id, txn.id, actor_id).value.reversing

        assert reversing.entries[0].currency == "GBP"
        assert reversing.entries[0].exchange_rate == Decimal("1.25")
        assert balance_of("1020") == Decimal("0")
        assert balance_of("4200") == Decimal("0")


class TestReversalDate:

    def test_defaults_to_today(self, orchestrator, tenant_id, actor_id, invoice, today):
        reversing = orchestrator.void_transaction(tenant_id, invoice.id, actor_id).value.reversing
        assert reversing.transaction_date == today

    def test_explicit_void_date(self, orchestrator, tenant_id, actor_id, invoice):
        reversing = orchestrator.void_transaction(
            tenant_id, invoice.id, actor_id, void_date=date(2024, 6, 10)
        ).value.reversing
        assert reversing.transaction_date == date(2024, 6, 10)

    def test_never_before_original(self, orchestrator, tenant_id, actor_id, invoice):
        reversing = orchestrator.void_transaction(
            tenant_id, invoice.id, actor_id, void_date=date(2024, 1, 1)
        ).value.reversing
        assert reversing.transaction_date == invoice.transaction_date

    def test_history_before_void_date_keeps_original_effect(
        self, orchestrator, tenant_id, actor_id, invoice, balance_of
    ):
        orchestrator.void_transaction(tenant_id, invoice.id, actor_id, void_date=date(2024, 6, 10))

        assert balance_of("1100", date(2024, 6, 5)) == Decimal("100")
        assert balance_of("1100", date(2024, 6, 10)) == Decimal("0")


class TestVoidConsistency:

    def test_cache_matches_history_after_posts_and_voids(
        self, post, orchestrator, tenant_id, actor_id, invoice
    ):
        keep = post("1010", "3100", Decimal("500")).value
        drop = post("6100", "1010", Decimal("120")).value
        post("1010", "4200", Decimal("60"), post_immediately=False)
        orchestrator.void_transaction(tenant_id, drop.id, actor_id)
        orchestrator.void_transaction(tenant_id, invoice.id, actor_id)

        assert keep.status == TransactionStatus.POSTED
        assert orchestrator.reconcile_balances(tenant_id).value == []
