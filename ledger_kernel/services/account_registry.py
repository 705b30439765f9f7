"""
AccountRegistry -- chart-of-accounts management and posting eligibility.

Responsibility:
    Creates accounts (single or from a chart template), enforces the
    structural rules of the chart, and answers "may this account receive a
    posting?" for the posting engine.

Architecture position:
    Kernel > Services -- imperative shell.  Writes go through the caller's
    UnitOfWork; reads are delegated to AccountSelector.

Invariants enforced:
    - (tenant, code) unique; code inside the range configured for its type.
    - A child account has the same account_type as its parent, level =
      parent.level + 1, full_path = parent.full_path + "/" + code.
    - Adding a child marks the parent has_children, which makes it
      non-postable from then on.
    - Postable = exists for the tenant, active, leaf, and (for manual
      entries) allow_manual_posting.

Failure modes:
    - AccountCodeRangeError, AccountTypeMismatchError,
      DuplicateAccountCodeError (ValidationError).
    - AccountNotFoundError for an unknown parent or account.
    - AccountNotPostableError from require_postable().
"""

import re
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import InvalidCurrencyError, validate_currency
from ledger_kernel.db.unit_of_work import UnitOfWork
from ledger_kernel.domain.dtos import (
    AccountNode,
    AccountRecord,
    AccountSpec,
    LedgerSettings,
    PostingValidation,
)
from ledger_kernel.exceptions import (
    AccountCodeRangeError,
    AccountNotFoundError,
    AccountNotPostableError,
    AccountTypeMismatchError,
    DuplicateAccountCodeError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_registry")

_LEADING_DIGITS = re.compile(r"\d+")


class AccountRegistry(BaseService[Account]):
    """
    Owns the chart of accounts of every tenant.

    Usage:
        registry = AccountRegistry(uow, settings)
        with uow.atomic():
            cash = registry.create_account(
                tenant_id, "1100", "Cash", AccountType.ASSET, actor_id
            )
    """

    def __init__(self, uow: UnitOfWork, settings: LedgerSettings | None = None):
        super().__init__(uow)
        self._settings = settings or LedgerSettings()
        self._selector = AccountSelector(self.session)

    # -------------------------------------------------------------------------
    # Code ranges
    # -------------------------------------------------------------------------

    @staticmethod
    def _code_number(code: str) -> int | None:
        match = _LEADING_DIGITS.match(code.strip())
        return int(match.group()) if match else None

    def account_type_for_code(self, code: str) -> AccountType | None:
        """Account type whose configured range contains ``code``, if any."""
        number = self._code_number(code)
        if number is None:
            return None
        for account_type, (low, high) in self._settings.account_code_ranges.items():
            if low <= number <= high:
                return AccountType(account_type)
        return None

    def validate_code_range(self, code: str, account_type: AccountType) -> None:
        account_type = AccountType(account_type)
        low, high = self._settings.account_code_ranges[account_type]
        number = self._code_number(code)
        if number is None or not low <= number <= high:
            raise AccountCodeRangeError(code, account_type.value, low, high)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _load(self, tenant_id: UUID, account_id: UUID) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.id == account_id)
        ).scalar_one_or_none()

    def _require(self, tenant_id: UUID, account_id: UUID) -> Account:
        account = self._load(tenant_id, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id), str(tenant_id))
        return account

    def get_account(self, tenant_id: UUID, account_id: UUID) -> AccountRecord:
        return AccountRecord.from_model(self._require(tenant_id, account_id))

    def get_account_by_code(self, tenant_id: UUID, code: str) -> AccountRecord:
        record = self._selector.get_by_code(tenant_id, code)
        if record is None:
            raise AccountNotFoundError(code, str(tenant_id))
        return record

    def search_accounts(self, tenant_id: UUID, term: str | None = None, **filters) -> list[AccountRecord]:
        """See AccountSelector.search for the accepted filters."""
        return self._selector.search(tenant_id, term, **filters)

    def get_hierarchy(
        self,
        tenant_id: UUID,
        account_type: AccountType | None = None,
        include_inactive: bool = False,
        max_depth: int | None = None,
    ) -> list[AccountNode]:
        return self._selector.hierarchy(tenant_id, account_type, include_inactive, max_depth)

    def find_postable_account(self, tenant_id: UUID, code_prefix: str) -> Account | None:
        """First active leaf account, by code, whose code starts with ``code_prefix``."""
        return self.session.execute(
            select(Account)
            .where(
                Account.tenant_id == tenant_id,
                Account.code.startswith(code_prefix),
                Account.is_active.is_(True),
                Account.has_children.is_(False),
            )
            .order_by(Account.code)
            .limit(1)
        ).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_account(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        parent_id: UUID | None = None,
        account_subtype: str | None = None,
        currency: str | None = None,
        description: str | None = None,
        allow_manual_posting: bool = True,
        is_system: bool = False,
        tags: Iterable[str] | None = None,
    ) -> Account:
        """
        Create one account in the tenant's chart.

        Raises:
            AccountCodeRangeError: Code outside the range of ``account_type``.
            DuplicateAccountCodeError: Code already used by the tenant.
            AccountNotFoundError: ``parent_id`` unknown for the tenant.
            AccountTypeMismatchError: Parent has a different type.
        """
        account_type = AccountType(account_type)
        try:
            currency = validate_currency(currency or self._settings.base_currency)
        except InvalidCurrencyError as exc:
            raise ValidationError(str(exc)) from exc
        self.validate_code_range(code, account_type)

        with self.uow.atomic():
            existing = self.session.execute(
                select(Account.id).where(Account.tenant_id == tenant_id, Account.code == code)
            ).scalar_one_or_none()
            if existing is not None:
                raise DuplicateAccountCodeError(str(tenant_id), code)

            level = 0
            full_path = code
            parent = None
            if parent_id is not None:
                parent = self._load(tenant_id, parent_id)
                if parent is None:
                    raise AccountNotFoundError(str(parent_id), str(tenant_id))
                parent_type = AccountType(parent.account_type)
                if parent_type != account_type:
                    raise AccountTypeMismatchError(code, account_type.value, parent_type.value)
                level = parent.level + 1
                full_path = f"{parent.full_path or parent.code}/{code}"

            account = Account(
                tenant_id=tenant_id,
                code=code,
                name=name,
                description=description,
                account_type=account_type.value,
                account_subtype=account_subtype,
                parent_id=parent_id,
                currency=currency,
                level=level,
                full_path=full_path,
                has_children=False,
                allow_manual_posting=allow_manual_posting,
                is_system=is_system,
                is_active=True,
                tags=list(tags) if tags else [],
                created_by_id=actor_id,
            )
            self.session.add(account)

            if parent is not None and not parent.has_children:
                parent.has_children = True
                parent.updated_by_id = actor_id

            self.session.flush()

        logger.info(
            "account_created",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "account_code": code,
                "account_type": account_type.value,
                "parent_id": str(parent_id) if parent_id else None,
                "level": level,
            },
        )
        return account

    def initialize_chart(
        self, tenant_id: UUID, specs: Sequence[AccountSpec], actor_id: UUID
    ) -> list[Account]:
        """
        Create a whole chart from template entries.

        Parents are created before their children regardless of template
        order.  Every account goes through create_account(), so every
        chart rule applies.  The chart is created atomically.

        Raises:
            AccountNotFoundError: A template entry names an unknown parent
                code (neither in the template nor already on file).
        """
        pending = list(specs)
        created: list[Account] = []
        ids_by_code: dict[str, UUID] = {}

        with self.uow.atomic():
            while pending:
                deferred = []
                for spec in pending:
                    parent_id = None
                    if spec.parent_code is not None:
                        parent_id = ids_by_code.get(spec.parent_code)
                        if parent_id is None:
                            deferred.append(spec)
                            continue
                    account = self.create_account(
                        tenant_id,
                        spec.code,
                        spec.name,
                        spec.account_type,
                        actor_id,
                        parent_id=parent_id,
                        account_subtype=spec.account_subtype,
                        description=spec.description,
                        allow_manual_posting=spec.allow_manual_posting,
                        is_system=spec.is_system,
                        tags=spec.tags,
                    )
                    ids_by_code[spec.code] = account.id
                    created.append(account)

                if len(deferred) == len(pending):
                    # No progress: the remaining parents are outside the template
                    for spec in deferred:
                        existing = self._selector.get_by_code(tenant_id, spec.parent_code)
                        if existing is None:
                            raise AccountNotFoundError(spec.parent_code, str(tenant_id))
                        ids_by_code[spec.parent_code] = existing.id
                pending = deferred

        logger.info(
            "chart_initialized",
            extra={"tenant_id": str(tenant_id), "accounts_created": len(created)},
        )
        return created

    # -------------------------------------------------------------------------
    # Activation
    # -------------------------------------------------------------------------

    def _set_active(self, tenant_id: UUID, account_id: UUID, actor_id: UUID, active: bool) -> Account:
        with self.uow.atomic():
            account = self._require(tenant_id, account_id)
            if account.is_active != active:
                account.is_active = active
                account.updated_by_id = actor_id
                self.session.flush()
        logger.info(
            "account_reactivated" if active else "account_deactivated",
            extra={"tenant_id": str(tenant_id), "account_id": str(account_id)},
        )
        return account

    def deactivate_account(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> Account:
        """Stop the account from receiving postings; its history stays."""
        return self._set_active(tenant_id, account_id, actor_id, False)

    def reactivate_account(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> Account:
        return self._set_active(tenant_id, account_id, actor_id, True)

    # -------------------------------------------------------------------------
    # Posting eligibility
    # -------------------------------------------------------------------------

    @staticmethod
    def _posting_reasons(account: Account, is_manual_entry: bool) -> list[str]:
        reasons = []
        if not account.is_active:
            reasons.append("Cannot post to inactive account")
        if is_manual_entry and not account.allow_manual_posting:
            reasons.append(
                f'Account "{account.name}" does not allow manual journal entries. '
                "It is system-controlled."
            )
        if account.has_children:
            reasons.append("Cannot post directly to parent accounts. Post to child accounts only.")
        return reasons

    def validate_posting(
        self, tenant_id: UUID, account_id: UUID, is_manual_entry: bool = False
    ) -> PostingValidation:
        """Whether the account may receive a posting, with every reason it may not."""
        account = self._load(tenant_id, account_id)
        if account is None:
            return PostingValidation.failure("Account not found")
        reasons = self._posting_reasons(account, is_manual_entry)
        if reasons:
            return PostingValidation.failure(*reasons)
        return PostingValidation.success()

    def require_postable(
        self, tenant_id: UUID, account_id: UUID, is_manual_entry: bool = False
    ) -> Account:
        """
        Return the account if it may receive a posting.

        Raises:
            AccountNotFoundError: Unknown account for the tenant.
            AccountNotPostableError: Inactive, parent, or system-controlled.
        """
        account = self._require(tenant_id, account_id)
        reasons = self._posting_reasons(account, is_manual_entry)
        if reasons:
            logger.warning(
                "account_not_postable",
                extra={
                    "tenant_id": str(tenant_id),
                    "account_id": str(account_id),
                    "reasons": reasons,
                },
            )
            raise AccountNotPostableError(str(account_id), reasons)
        return account
