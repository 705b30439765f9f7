"""
Variance decomposition -- pluggable split of a cost variance into components.

Responsibility:
    Given standard and actual price/quantity, compute the total variance and
    break it into named components.  The posting engine never sees the
    components; it only posts the total as a balanced entry pair.

Architecture position:
    Kernel > Domain -- pure calculation, zero I/O.  Decomposers are injected
    into VarianceService, so a tenant can swap the split without touching
    the ledger.

Invariants enforced:
    - Components always sum exactly to the total variance.
    - Positive variance = unfavorable (actual above standard).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Protocol

from ledger_kernel.db.types import round_money


@dataclass(frozen=True)
class VarianceInput:
    standard_price: Decimal
    actual_price: Decimal
    standard_quantity: Decimal
    actual_quantity: Decimal

    @property
    def standard_cost(self) -> Decimal:
        return self.standard_price * self.standard_quantity

    @property
    def actual_cost(self) -> Decimal:
        return self.actual_price * self.actual_quantity

    @property
    def total_variance(self) -> Decimal:
        return round_money(self.actual_cost - self.standard_cost)


class VarianceDecomposer(Protocol):
    """Splits a variance into named components summing to the total."""

    def decompose(self, data: VarianceInput) -> Mapping[str, Decimal]: ...


class SingleComponentDecomposer:
    """Books the whole variance under one component name."""

    def __init__(self, component: str = "total"):
        self.component = component

    def decompose(self, data: VarianceInput) -> Mapping[str, Decimal]:
        return {self.component: data.total_variance}


class StandardCostDecomposer:
    """
    Classic price/quantity split.

        price    = (actual price - standard price) x actual quantity
        quantity = (actual quantity - standard quantity) x standard price

    price + quantity == actual cost - standard cost, exactly.  Any rounding
    residue is folded into the quantity component.
    """

    def __init__(self, price_component: str = "price", quantity_component: str = "quantity"):
        self.price_component = price_component
        self.quantity_component = quantity_component

    def decompose(self, data: VarianceInput) -> Mapping[str, Decimal]:
        price = round_money((data.actual_price - data.standard_price) * data.actual_quantity)
        quantity = data.total_variance - price
        return {self.price_component: price, self.quantity_component: quantity}
