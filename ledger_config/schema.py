"""
Ledger configuration schema.

Defines the human-authored configuration artifact for the ledger kernel.
YAML documents are parsed into these types by the loader; bridges turn
them into kernel inputs (``LedgerSettings``, ``AccountSpec``,
``VarianceAccounts``).

Key distinction:
  LedgerConfig   = runtime settings (currency, numbering, ranges, database)
  ChartTemplate  = a reusable chart of accounts, applied per tenant
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Engine settings; ``url`` may be overridden by DATABASE_URL."""

    url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_pre_ping: bool = True
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class VarianceAccountConfig:
    """Account-code prefixes for cost variance postings."""

    default_prefix: str = "5400"
    inventory_prefix: str = "1300"
    by_reason_code: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class LedgerConfig:
    """The complete, validated ledger configuration."""

    config_id: str
    version: int
    base_currency: str
    sequence_padding: int
    default_prefix: str
    document_prefixes: tuple[tuple[str, str], ...]
    account_code_ranges: tuple[tuple[str, int, int], ...]  # (account_type, low, high)
    variance_accounts: VarianceAccountConfig = field(default_factory=VarianceAccountConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""


# ---------------------------------------------------------------------------
# Chart templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountTemplate:
    """One account of a chart template; the parent is referenced by code."""

    code: str
    name: str
    account_type: str
    parent_code: str | None = None
    account_subtype: str | None = None
    description: str | None = None
    allow_manual_posting: bool = True
    is_system: bool = False
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChartTemplate:
    name: str
    description: str
    accounts: tuple[AccountTemplate, ...]
