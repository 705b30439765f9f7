"""
ORM-level immutability enforcement for ledger history.

===============================================================================
WHY THIS EXISTS
===============================================================================

A posted transaction is a financial fact.  It is corrected by a new
reversing transaction, never by editing or deleting the original.  The
listeners in this module intercept UPDATE and DELETE before SQL reaches
the database and raise ImmutabilityViolationError, which aborts the flush.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() ---------/
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|-------------------------------------------------------------
Transaction     | DRAFT rows are editable.  POSTED rows may only move to
                | VOIDED (status, voided_at, voided_by_id).  VOIDED rows are
                | frozen.  POSTED and VOIDED rows cannot be deleted.
LedgerEntry     | Frozen once the parent transaction is POSTED or VOIDED.
Account         | Never deleted (deactivate instead).  account_type and code
                | are frozen once the account has ledger entries.

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must violate the rules on purpose can call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_VOID_FIELDS = frozenset({"status", "voided_at", "voided_by_id"})
ACCOUNT_STRUCTURAL_FIELDS = frozenset({"account_type", "code"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _previous_status(target):
    """Status as it was before this flush began."""
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return target.status


def _changed_fields(target) -> set[str]:
    insp = inspect(target)
    return {
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _AUDIT_FIELDS and insp.attrs[attr.key].history.has_changes()
    }


def _check_transaction_immutability(mapper, connection, target):
    from ledger_kernel.models.transaction import TransactionStatus

    previous = _previous_status(target)
    if previous == TransactionStatus.DRAFT:
        return

    changed = _changed_fields(target)
    if not changed:
        return

    if previous == TransactionStatus.VOIDED:
        _blocked(
            "Transaction", target.id, "UPDATE",
            "Voided transactions are immutable",
            fields=sorted(changed),
        )

    # previous == POSTED: the only permitted change is the void transition
    illegal = changed - _VOID_FIELDS
    if illegal or target.status != TransactionStatus.VOIDED:
        _blocked(
            "Transaction", target.id, "UPDATE",
            "Posted transactions may only transition to voided",
            fields=sorted(changed),
        )


def _check_transaction_delete(mapper, connection, target):
    from ledger_kernel.models.transaction import TransactionStatus

    if _previous_status(target) != TransactionStatus.DRAFT:
        _blocked(
            "Transaction", target.id, "DELETE",
            "Posted or voided transactions cannot be deleted",
        )


def _entry_parent_is_final(target) -> bool:
    from ledger_kernel.models.transaction import TransactionStatus

    parent = target.transaction
    if parent is None:
        return False
    return _previous_status(parent) != TransactionStatus.DRAFT


def _check_entry_immutability(mapper, connection, target):
    if _entry_parent_is_final(target):
        _blocked(
            "LedgerEntry", target.id, "UPDATE",
            "Ledger entries cannot be modified after the transaction is posted",
        )


def _check_entry_delete(mapper, connection, target):
    if _entry_parent_is_final(target):
        _blocked(
            "LedgerEntry", target.id, "DELETE",
            "Ledger entries cannot be deleted after the transaction is posted",
        )


def _check_account_structural_immutability(mapper, connection, target):
    from ledger_kernel.models.transaction import LedgerEntry

    changed = _changed_fields(target) & ACCOUNT_STRUCTURAL_FIELDS
    if not changed:
        return

    referenced = connection.execute(
        select(LedgerEntry.id).where(LedgerEntry.account_id == target.id).limit(1)
    ).first()
    if referenced is not None:
        _blocked(
            "Account", target.id, "UPDATE",
            f"Cannot change {', '.join(sorted(changed))} on an account with ledger entries",
            fields=sorted(changed),
        )


def _check_account_delete(mapper, connection, target):
    _blocked(
        "Account", target.id, "DELETE",
        "Accounts are never deleted; deactivate the account instead",
    )


_LISTENERS = (
    ("Transaction", "before_update", _check_transaction_immutability),
    ("Transaction", "before_delete", _check_transaction_delete),
    ("LedgerEntry", "before_update", _check_entry_immutability),
    ("LedgerEntry", "before_delete", _check_entry_delete),
    ("Account", "before_update", _check_account_structural_immutability),
    ("Account", "before_delete", _check_account_delete),
)


def _models():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.transaction import LedgerEntry, Transaction

    return {"Transaction": Transaction, "LedgerEntry": LedgerEntry, "Account": Account}


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
