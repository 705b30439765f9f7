"""Database layer - engine, base classes, types, and unit of work."""

from ledger_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import create_tables, get_engine, get_session
from ledger_kernel.db.types import MoneyType, RateType
from ledger_kernel.db.unit_of_work import UnitOfWork

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MoneyType",
    "RateType",
    "UnitOfWork",
]
