"""
Balance rules -- pure double-entry arithmetic.

Responsibility:
    Normal-balance sign rules, debit/credit totals, and the structural
    checks an entry set must pass before anything is persisted.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Used by
    LedgerService, BalanceAccumulator and LedgerSelector so the cached
    balance and the recomputed balance follow the exact same rule.

Invariants enforced:
    - Debits equal credits in base currency, compared as Decimal (never
      float equality).
    - At least two entries, at least one debit and one credit.
    - Amounts are finite, non-negative Decimals with at most
      MONEY_DECIMAL_PLACES places; exchange rates are finite, strictly
      positive, with at most RATE_DECIMAL_PLACES places.  Nothing is
      rounded before the balance check except the derived base amount.
    - UnbalancedTransactionError carries the signed difference
      (debits - credits).

Failure modes:
    - InvalidEntryError, InsufficientEntriesError,
      UnbalancedTransactionError, MissingEntrySideError.
"""

from decimal import Decimal
from typing import Iterable, Protocol, Sequence

from ledger_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    RATE_DECIMAL_PLACES,
    InvalidCurrencyError,
    decimal_places,
    validate_currency,
)
from ledger_kernel.domain.dtos import BalanceSummary, EntryInput
from ledger_kernel.exceptions import (
    InsufficientEntriesError,
    InvalidEntryError,
    MissingEntrySideError,
    UnbalancedTransactionError,
)
from ledger_kernel.models.account import NORMAL_BALANCE_BY_TYPE, AccountType, NormalBalance
from ledger_kernel.models.transaction import EntrySide

MIN_ENTRIES = 2

_ZERO = Decimal("0")


class _SidedAmount(Protocol):
    side: EntrySide

    @property
    def amount_in_base(self) -> Decimal: ...


def signed_delta(account_type: AccountType | str, side: EntrySide | str, amount: Decimal) -> Decimal:
    """
    Signed effect of one entry on an account balance.

    Asset/Expense: debit increases, credit decreases.
    Liability/Equity/Revenue: credit increases, debit decreases.
    """
    normal = NORMAL_BALANCE_BY_TYPE[AccountType(account_type)]
    entry_side = EntrySide(side)
    increases = (
        (normal == NormalBalance.DEBIT and entry_side == EntrySide.DEBIT)
        or (normal == NormalBalance.CREDIT and entry_side == EntrySide.CREDIT)
    )
    return amount if increases else -amount


def balance_summary(entries: Iterable[_SidedAmount]) -> BalanceSummary:
    total_debits = _ZERO
    total_credits = _ZERO
    for entry in entries:
        if EntrySide(entry.side) == EntrySide.DEBIT:
            total_debits += entry.amount_in_base
        else:
            total_credits += entry.amount_in_base
    return BalanceSummary(
        total_debits=total_debits,
        total_credits=total_credits,
        difference=total_debits - total_credits,
        is_balanced=total_debits == total_credits,
    )


def validate_balance(entries: Iterable[_SidedAmount]) -> bool:
    """True iff total debits equal total credits in base currency."""
    return balance_summary(entries).is_balanced


def validate_entry(index: int, entry: EntryInput, base_currency: str) -> None:
    """Per-line checks; raises InvalidEntryError."""
    if entry.side not in (EntrySide.DEBIT, EntrySide.CREDIT):
        raise InvalidEntryError(index, f"side must be debit or credit, got {entry.side!r}")
    for name, places in (("amount", MONEY_DECIMAL_PLACES), ("exchange_rate", RATE_DECIMAL_PLACES)):
        value = getattr(entry, name)
        if isinstance(value, float) or not isinstance(value, (Decimal, int)):
            raise InvalidEntryError(index, f"{name} must be a Decimal, got {type(value).__name__}")
        if not Decimal(value).is_finite():
            raise InvalidEntryError(index, f"{name} must be finite, got {value}")
        if decimal_places(Decimal(value)) > places:
            raise InvalidEntryError(
                index, f"{name} {value} has more than {places} decimal places"
            )
    if Decimal(entry.amount) < 0:
        raise InvalidEntryError(index, f"amount must be non-negative, got {entry.amount}")
    if Decimal(entry.exchange_rate) <= 0:
        raise InvalidEntryError(index, f"exchange rate must be positive, got {entry.exchange_rate}")
    try:
        validate_currency(entry.currency or base_currency)
    except InvalidCurrencyError as exc:
        raise InvalidEntryError(index, str(exc)) from exc


def validate_entries(entries: Sequence[EntryInput], base_currency: str) -> BalanceSummary:
    """
    Run every structural check on a proposed entry set.

    Order: per-line validity, entry count, balance, then debit/credit
    presence.  Returns the balance summary of a valid set.
    """
    for index, entry in enumerate(entries):
        validate_entry(index, entry, base_currency)

    if len(entries) < MIN_ENTRIES:
        raise InsufficientEntriesError(len(entries), MIN_ENTRIES)

    summary = balance_summary(entries)
    if not summary.is_balanced:
        raise UnbalancedTransactionError(summary.total_debits, summary.total_credits)

    sides = {EntrySide(e.side) for e in entries}
    if EntrySide.DEBIT not in sides:
        raise MissingEntrySideError(EntrySide.DEBIT.value)
    if EntrySide.CREDIT not in sides:
        raise MissingEntrySideError(EntrySide.CREDIT.value)

    return summary
