"""
Module: ledger_kernel.selectors.account_selector
Responsibility: Read-only chart-of-accounts queries: lookup by id or code,
    search, and the hierarchy tree used for reporting.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every query is scoped to one tenant.
    - The hierarchy walk keeps a visited set, so a corrupted parent link
      can neither loop forever nor emit an account twice.
"""

from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.domain.dtos import AccountNode, AccountRecord
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.account")


class AccountSelector(BaseSelector[Account]):
    """Chart-of-accounts read path."""

    def get(self, tenant_id: UUID, account_id: UUID) -> AccountRecord | None:
        account = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.id == account_id)
        ).scalar_one_or_none()
        return AccountRecord.from_model(account) if account is not None else None

    def get_by_code(self, tenant_id: UUID, code: str) -> AccountRecord | None:
        account = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
        ).scalar_one_or_none()
        return AccountRecord.from_model(account) if account is not None else None

    def list_accounts(
        self,
        tenant_id: UUID,
        account_type: AccountType | None = None,
        include_inactive: bool = True,
    ) -> list[AccountRecord]:
        stmt = select(Account).where(Account.tenant_id == tenant_id)
        if account_type is not None:
            stmt = stmt.where(Account.account_type == AccountType(account_type).value)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        rows = self.session.execute(stmt.order_by(Account.code)).scalars().all()
        return [AccountRecord.from_model(a) for a in rows]

    def search(
        self,
        tenant_id: UUID,
        term: str | None = None,
        account_type: AccountType | None = None,
        currency: str | None = None,
        is_active: bool | None = None,
        allow_manual_posting: bool | None = None,
    ) -> list[AccountRecord]:
        """Case-insensitive match on code, name or description."""
        stmt = select(Account).where(Account.tenant_id == tenant_id)
        if term:
            pattern = f"%{term.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Account.code).like(pattern),
                    func.lower(Account.name).like(pattern),
                    func.lower(func.coalesce(Account.description, "")).like(pattern),
                )
            )
        if account_type is not None:
            stmt = stmt.where(Account.account_type == AccountType(account_type).value)
        if currency is not None:
            stmt = stmt.where(Account.currency == currency.upper())
        if is_active is not None:
            stmt = stmt.where(Account.is_active.is_(is_active))
        if allow_manual_posting is not None:
            stmt = stmt.where(Account.allow_manual_posting.is_(allow_manual_posting))
        rows = self.session.execute(stmt.order_by(Account.code)).scalars().all()
        return [AccountRecord.from_model(a) for a in rows]

    def hierarchy(
        self,
        tenant_id: UUID,
        account_type: AccountType | None = None,
        include_inactive: bool = False,
        max_depth: int | None = None,
    ) -> list[AccountNode]:
        """
        Tree view of the chart.

        Accounts whose parent is filtered out (by type or activity) are
        promoted to roots.  ``max_depth`` counts levels below each root:
        0 returns the roots alone.
        """
        records = self.list_accounts(tenant_id, account_type, include_inactive)
        by_id = {r.id: r for r in records}
        children_of: dict[UUID, list[UUID]] = {}
        roots: list[UUID] = []
        for record in records:
            if record.parent_id is not None and record.parent_id in by_id:
                children_of.setdefault(record.parent_id, []).append(record.id)
            else:
                roots.append(record.id)

        visited: set[UUID] = set()
        built: dict[UUID, AccountNode] = {}
        result = []

        for root_id in roots:
            if root_id in visited:
                continue
            visited.add(root_id)
            stack: list[tuple[UUID, int, list[UUID] | None]] = [(root_id, 0, None)]
            while stack:
                account_id, depth, kids = stack.pop()
                if kids is None:
                    kids = []
                    if max_depth is None or depth < max_depth:
                        for child_id in children_of.get(account_id, ()):
                            if child_id in visited:
                                logger.warning(
                                    "account_hierarchy_cycle_detected",
                                    extra={"parent_id": str(account_id), "child_id": str(child_id)},
                                )
                                continue
                            visited.add(child_id)
                            kids.append(child_id)
                    stack.append((account_id, depth, kids))
                    stack.extend((child_id, depth + 1, None) for child_id in reversed(kids))
                    continue
                built[account_id] = AccountNode(
                    account=by_id[account_id],
                    children=tuple(built.pop(child_id) for child_id in kids),
                )
            result.append(built.pop(root_id))
        return result
