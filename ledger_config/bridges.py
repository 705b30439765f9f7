"""
Config -> Kernel Bridges.

Functions that convert configuration artifacts into kernel inputs.  These
live in ledger_config (the producer) because the kernel must NEVER import
ledger_config.

Usage:
    from ledger_config.bridges import to_ledger_settings, to_account_specs

    config = get_active_config()
    settings = to_ledger_settings(config)
    specs = to_account_specs(load_chart_template("standard"))
"""

from __future__ import annotations

from ledger_config.schema import ChartTemplate, LedgerConfig
from ledger_kernel.domain.dtos import (
    DEFAULT_CODE_RANGES,
    DEFAULT_DOCUMENT_PREFIXES,
    AccountSpec,
    LedgerSettings,
    VarianceAccounts,
)
from ledger_kernel.models.account import AccountType


def to_ledger_settings(config: LedgerConfig) -> LedgerSettings:
    """
    Build kernel settings.  Configured prefixes and ranges override the
    kernel defaults key by key; unconfigured keys keep their default.
    """
    prefixes = dict(DEFAULT_DOCUMENT_PREFIXES)
    prefixes.update(dict(config.document_prefixes))

    ranges = dict(DEFAULT_CODE_RANGES)
    for account_type, low, high in config.account_code_ranges:
        ranges[AccountType(account_type)] = (low, high)

    return LedgerSettings(
        base_currency=config.base_currency,
        sequence_padding=config.sequence_padding,
        default_prefix=config.default_prefix,
        document_prefixes=prefixes,
        account_code_ranges=ranges,
    )


def to_variance_accounts(config: LedgerConfig) -> VarianceAccounts:
    variance = config.variance_accounts
    defaults = VarianceAccounts()
    by_reason = dict(defaults.by_reason_code)
    by_reason.update(dict(variance.by_reason_code))
    return VarianceAccounts(
        default_prefix=variance.default_prefix,
        inventory_prefix=variance.inventory_prefix,
        by_reason_code=by_reason,
    )


def to_account_specs(template: ChartTemplate) -> tuple[AccountSpec, ...]:
    return tuple(
        AccountSpec(
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            parent_code=account.parent_code,
            account_subtype=account.account_subtype,
            description=account.description,
            allow_manual_posting=account.allow_manual_posting,
            is_system=account.is_system,
            tags=account.tags,
        )
        for account in template.accounts
    )
