"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the posting engine must be able to tell an unbalanced entry set
from a missing account from a double void without parsing message strings.
Every exception therefore has:

  1. a TYPED class (catch by type, not by message),
  2. a CODE class attribute (machine-readable, API-safe),
  3. structured DATA attributes (totals, ids, reasons).

Example:

    try:
        ledger.create_transaction(data)
    except UnbalancedTransactionError as e:
        return {"error": e.code, "difference": str(e.difference)}

Inside the kernel these exceptions are raised and propagated.  At the
public boundary (``PostingOrchestrator``) they are caught and translated
into ``LedgerResult`` values so callers handle failures explicitly.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- UnbalancedTransactionError
    |   +-- InsufficientEntriesError
    |   +-- MissingEntrySideError
    |   +-- InvalidEntryError
    |   +-- AccountCodeRangeError
    |   +-- AccountTypeMismatchError
    |   +-- DuplicateAccountCodeError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- StateError
    |   +-- TransactionAlreadyVoidedError
    |   +-- TransactionNotPostedError
    |   +-- AccountNotPostableError
    |
    +-- ConfigurationError
    +-- ConcurrencyError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | UNBALANCED_TRANSACTION      | Debits != credits in base currency
                | INSUFFICIENT_ENTRIES        | Fewer than two entries
                | MISSING_ENTRY_SIDE          | No debit or no credit entry
                | INVALID_ENTRY               | Negative amount, bad rate or currency
                | ACCOUNT_CODE_OUT_OF_RANGE   | Code outside its type's range
                | ACCOUNT_TYPE_MISMATCH       | Child type differs from parent type
                | DUPLICATE_ACCOUNT_CODE      | Code already used in the tenant
----------------|-----------------------------|-----------------------------------------
Not found       | ACCOUNT_NOT_FOUND           | Account id/code unknown for the tenant
                | TRANSACTION_NOT_FOUND       | Transaction id unknown for the tenant
----------------|-----------------------------|-----------------------------------------
State           | TRANSACTION_ALREADY_VOIDED  | Void or post of a voided transaction
                | TRANSACTION_NOT_POSTED      | Void of a draft transaction
                | ACCOUNT_NOT_POSTABLE        | Inactive, parent, or system account
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Collaborator cannot resolve an account
Concurrency     | CONCURRENCY_CONFLICT        | Lock or uniqueness conflict persisted
Immutability    | IMMUTABILITY_VIOLATION      | Modifying posted/voided history

===============================================================================
"""

from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation exceptions


class ValidationError(LedgerKernelError):
    """Input failed structural validation; nothing was persisted."""

    code: str = "VALIDATION_ERROR"


class UnbalancedTransactionError(ValidationError):
    """
    Sum of debits does not equal sum of credits in base currency.

    ``difference`` is signed (debits - credits); ``short_side`` names the
    side that needs more to balance.
    """

    code: str = "UNBALANCED_TRANSACTION"

    def __init__(self, total_debits: Decimal, total_credits: Decimal):
        self.total_debits = total_debits
        self.total_credits = total_credits
        self.difference = total_debits - total_credits
        self.short_side = "credit" if self.difference > 0 else "debit"
        super().__init__(
            f"Transaction is not balanced: debits={total_debits}, "
            f"credits={total_credits}, difference={self.difference}"
        )


class InsufficientEntriesError(ValidationError):
    """A transaction needs at least two entries."""

    code: str = "INSUFFICIENT_ENTRIES"

    def __init__(self, entry_count: int, minimum: int = 2):
        self.entry_count = entry_count
        self.minimum = minimum
        super().__init__(
            f"Transaction must have at least {minimum} entries, got {entry_count}"
        )


class MissingEntrySideError(ValidationError):
    """A transaction needs at least one debit and one credit."""

    code: str = "MISSING_ENTRY_SIDE"

    def __init__(self, missing_side: str):
        self.missing_side = missing_side
        super().__init__(
            f"Transaction must have at least one debit and one credit entry "
            f"(no {missing_side} entry)"
        )


class InvalidEntryError(ValidationError):
    """A single ledger entry is malformed."""

    code: str = "INVALID_ENTRY"

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Invalid entry at position {index}: {reason}")


class AccountCodeRangeError(ValidationError):
    """Account code falls outside the numeric range reserved for its type."""

    code: str = "ACCOUNT_CODE_OUT_OF_RANGE"

    def __init__(self, account_code: str, account_type: str, low: int, high: int):
        self.account_code = account_code
        self.account_type = account_type
        self.low = low
        self.high = high
        super().__init__(
            f"Account code {account_code} is outside the {account_type} "
            f"range {low}-{high}"
        )


class AccountTypeMismatchError(ValidationError):
    """Child account type differs from its parent's type."""

    code: str = "ACCOUNT_TYPE_MISMATCH"

    def __init__(self, account_code: str, account_type: str, parent_type: str):
        self.account_code = account_code
        self.account_type = account_type
        self.parent_type = parent_type
        super().__init__(
            f"Account {account_code} of type {account_type} cannot be a child "
            f"of a {parent_type} account"
        )


class DuplicateAccountCodeError(ValidationError):
    """Account code already exists in the tenant's chart."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, tenant_id: str, account_code: str):
        self.tenant_id = tenant_id
        self.account_code = account_code
        super().__init__(
            f"Account code {account_code} already exists for tenant {tenant_id}"
        )


# Not-found exceptions


class NotFoundError(LedgerKernelError):
    """Referenced entity does not exist for the tenant."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account with the given id or code was not found for the tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str, tenant_id: str | None = None):
        self.account_ref = account_ref
        self.tenant_id = tenant_id
        super().__init__(f"Account not found: {account_ref}")


class TransactionNotFoundError(NotFoundError):
    """Transaction with the given id was not found for the tenant."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str, tenant_id: str | None = None):
        self.transaction_id = transaction_id
        self.tenant_id = tenant_id
        super().__init__(f"Transaction not found: {transaction_id}")


# State exceptions


class StateError(LedgerKernelError):
    """Operation is not allowed in the entity's current state."""

    code: str = "STATE_ERROR"


class TransactionAlreadyVoidedError(StateError):
    """Voided is terminal: no re-void, no re-post."""

    code: str = "TRANSACTION_ALREADY_VOIDED"

    def __init__(self, transaction_id: str, transaction_number: str | None = None):
        self.transaction_id = transaction_id
        self.transaction_number = transaction_number
        super().__init__(
            f"Transaction {transaction_number or transaction_id} is already voided"
        )


class TransactionNotPostedError(StateError):
    """Only posted transactions can be voided."""

    code: str = "TRANSACTION_NOT_POSTED"

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(
            f"Transaction {transaction_id} is {status}; only posted "
            f"transactions can be voided"
        )


class AccountNotPostableError(StateError):
    """Account cannot receive the posting (inactive, parent, system-controlled)."""

    code: str = "ACCOUNT_NOT_POSTABLE"

    def __init__(self, account_id: str, reasons: list[str]):
        self.account_id = account_id
        self.reasons = list(reasons)
        super().__init__(
            f"Cannot post to account {account_id}: {'; '.join(self.reasons)}"
        )


# Collaborator / infrastructure exceptions


class ConfigurationError(LedgerKernelError):
    """A collaborator could not resolve a required account mapping."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, setting: str | None = None):
        self.setting = setting
        super().__init__(message)


class ConcurrencyError(LedgerKernelError):
    """A lock or uniqueness conflict could not be resolved."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, resource: str, detail: str):
        self.resource = resource
        self.detail = detail
        super().__init__(f"Concurrent modification of {resource}: {detail}")


class ImmutabilityViolationError(LedgerKernelError):
    """Attempt to modify or delete posted or voided ledger history."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
