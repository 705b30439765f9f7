"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Gives every service the caller's UnitOfWork.  Services write through
    ``self.session`` with ``flush()`` only -- never ``commit()`` or
    ``rollback()``.  Multi-step operations open ``self.uow.atomic()`` so
    that a failure part-way leaves nothing behind, and so that a service
    called from another service joins the caller's scope instead of
    committing on its own.

Architecture position:
    Kernel > Services -- imperative shell.  Every service in
    ``ledger_kernel/services/`` that performs writes extends this class.
"""

from abc import ABC
from typing import Generic, TypeVar

from ledger_kernel.db.base import Base
from ledger_kernel.db.unit_of_work import UnitOfWork

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Abstract base class for all kernel services."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.session = uow.session
