"""
Property-based tests for the pure ledger rules.

Properties:
- Any entry set whose credits equal its debits validates, with exact totals
- Any imbalance is rejected and reported with its exact signed difference
- Roll-up of a random tree: each node equals own plus children, and a root
  carries the sum of every own balance beneath it
- Decomposed variance components always sum to the total variance
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from ledger_kernel.domain.balance import validate_entries
from ledger_kernel.domain.dtos import EntryInput
from ledger_kernel.domain.rollup import rollup_balances
from ledger_kernel.domain.variance import StandardCostDecomposer, VarianceInput
from ledger_kernel.exceptions import UnbalancedTransactionError

money = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@composite
def trees(draw):
    """(own balances, children_of) for a random tree rooted at node 0."""
    size = draw(st.integers(min_value=1, max_value=60))
    own = {
        node: draw(st.decimals(min_value=Decimal("-10000"), max_value=Decimal("10000"), places=2))
        for node in range(size)
    }
    children_of: dict[int, list[int]] = {}
    for node in range(1, size):
        parent = draw(st.integers(min_value=0, max_value=node - 1))
        children_of.setdefault(parent, []).append(node)
    return own, children_of


class TestBalanceProperties:

    @given(debits=st.lists(money, min_size=1, max_size=20))
    @settings(max_examples=200, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_balanced_sets_validate(self, debits):
        total = sum(debits, Decimal("0"))
        entries = [EntryInput.debit(uuid4(), amount) for amount in debits]
        entries.append(EntryInput.credit(uuid4(), total))

        summary = validate_entries(entries, "USD")

        assert summary.is_balanced
        assert summary.total_debits == total
        assert summary.total_credits == total

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        amount=money,
        delta=money,
        sign=st.sampled_from([1, -1]),
    )
    def test_imbalance_rejected_with_exact_difference(self, amount, delta, sign):
        credit = amount + sign * delta
        if credit < 0:
            credit = amount + delta
        entries = [EntryInput.debit(uuid4(), amount), EntryInput.credit(uuid4(), credit)]

        with pytest.raises(UnbalancedTransactionError) as exc_info:
            validate_entries(entries, "USD")

        assert exc_info.value.difference == amount - credit
        assert exc_info.value.short_side == ("credit" if credit < amount else "debit")


class TestRollupProperties:

    @given(tree=trees())
    @settings(max_examples=150, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_rollup_identity(self, tree):
        own, children_of = tree

        rolled = rollup_balances(own, children_of)

        assert set(rolled) == set(own)
        for node in own:
            expected = own[node] + sum(
                (rolled[child] for child in children_of.get(node, ())), Decimal("0")
            )
            assert rolled[node] == expected
        assert rolled[0] == sum(own.values(), Decimal("0"))


class TestVarianceProperties:

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        standard_price=st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=4),
        actual_price=st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=4),
        standard_quantity=st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=3),
        actual_quantity=st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=3),
    )
    def test_components_sum_to_total(
        self, standard_price, actual_price, standard_quantity, actual_quantity
    ):
        data = VarianceInput(standard_price, actual_price, standard_quantity, actual_quantity)

        components = StandardCostDecomposer().decompose(data)

        assert sum(components.values(), Decimal("0")) == data.total_variance
        assert data.total_variance == data.actual_cost - data.standard_cost
