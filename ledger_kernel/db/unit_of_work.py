"""
UnitOfWork -- the atomic scope every ledger operation runs in.

Responsibility:
    Wraps one SQLAlchemy ``Session`` and hands out nested atomic scopes.
    The outermost scope owns the real transaction (commit on success,
    rollback on failure); inner scopes are savepoints, so a nested caller
    (bill creation calling the posting engine, a void calling
    create_transaction) composes into the same unit instead of committing
    half of the work.

Architecture position:
    Kernel > DB.  Services receive a UnitOfWork and only ever flush through
    ``uow.session``; the PostingOrchestrator (or an external caller that
    brings its own session) decides whether the outermost scope commits.

Invariants enforced:
    - Header, entries, balance deltas and the sequence increment of one
      posting commit together or not at all.
    - A failure inside a nested scope rolls back only that scope's
      savepoint, leaving the session usable for the caller.

Failure modes:
    - Any exception raised inside ``atomic()`` propagates unchanged after
      the scope has been rolled back.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session, SessionTransaction

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")


class UnitOfWork:
    """
    Explicit atomic scope over a Session.

    Args:
        session: The session all work is flushed through.
        auto_commit: If True, leaving the outermost ``atomic()`` scope
            commits the session.  If False the caller owns commit/rollback
            of the enclosing transaction and the unit only guarantees that
            a failed scope leaves nothing behind.
    """

    def __init__(self, session: Session, *, auto_commit: bool = True):
        self.session = session
        self.auto_commit = auto_commit
        self._depth = 0

    @property
    def in_scope(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self) -> Iterator["UnitOfWork"]:
        outermost = self._depth == 0
        savepoint: SessionTransaction = self.session.begin_nested()
        self._depth += 1
        try:
            yield self
            self.session.flush()
        except Exception:
            if savepoint.is_active:
                savepoint.rollback()
            logger.debug(
                "unit_of_work_rolled_back",
                extra={"depth": self._depth, "outermost": outermost},
            )
            if outermost and self.auto_commit:
                self.session.rollback()
            raise
        finally:
            self._depth -= 1

        savepoint.commit()
        if outermost and self.auto_commit:
            try:
                self.session.commit()
            except Exception:
                self.session.rollback()
                logger.warning("unit_of_work_commit_failed", exc_info=True)
                raise
            logger.debug("unit_of_work_committed")
