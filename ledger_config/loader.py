"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML documents and parses them into the frozen dataclasses of
``ledger_config.schema``.  The public entry points for runtime config are
``ledger_config.get_active_config()`` and
``ledger_config.load_chart_template()``; this module is their tooling.

Architecture position
---------------------
**Config layer**.  Depends on PyYAML and on kernel enums for validation
only.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` (bad values) or ``KeyError``
  (missing required keys) with descriptive messages.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    AccountTemplate,
    ChartTemplate,
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    VarianceAccountConfig,
)
from ledger_kernel.models.account import AccountType

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _account_type(value: Any) -> str:
    try:
        return AccountType(str(value).lower()).value
    except ValueError:
        raise ValueError(f"Unknown account type: {value!r}") from None


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=_positive_int(data.get("pool_size", defaults.pool_size), "database.pool_size"),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_pre_ping=bool(data.get("pool_pre_ping", defaults.pool_pre_ping)),
        pool_timeout=_positive_int(
            data.get("pool_timeout", defaults.pool_timeout), "database.pool_timeout"
        ),
        pool_recycle=int(data.get("pool_recycle", defaults.pool_recycle)),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", LoggingConfig().level)).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    return LoggingConfig(level=level)


def parse_variance_accounts(data: dict[str, Any]) -> VarianceAccountConfig:
    defaults = VarianceAccountConfig()
    by_reason = data.get("by_reason_code") or {}
    if not isinstance(by_reason, dict):
        raise ValueError("variance_accounts.by_reason_code must be a mapping")
    return VarianceAccountConfig(
        default_prefix=str(data.get("default_prefix", defaults.default_prefix)),
        inventory_prefix=str(data.get("inventory_prefix", defaults.inventory_prefix)),
        by_reason_code=tuple(sorted((str(k), str(v)) for k, v in by_reason.items())),
    )


def parse_code_ranges(data: dict[str, Any]) -> tuple[tuple[str, int, int], ...]:
    """``{asset: [1000, 1999], ...}`` -> ``(("asset", 1000, 1999), ...)``; bounds inclusive."""
    ranges = []
    for account_type, bounds in data.items():
        if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
            raise ValueError(f"Code range for {account_type!r} must be [low, high]")
        low, high = int(bounds[0]), int(bounds[1])
        if low > high:
            raise ValueError(f"Code range for {account_type!r} is empty: {low} > {high}")
        ranges.append((_account_type(account_type), low, high))
    return tuple(sorted(ranges, key=lambda r: r[1]))


def parse_ledger_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a ``LedgerConfig`` from a dict.

    Raises:
        KeyError: if ``config_id`` is missing.
        ValueError: if any value is malformed.
    """
    base_currency = str(data.get("base_currency", "USD")).upper()
    if len(base_currency) != 3 or not base_currency.isalpha():
        raise ValueError(f"base_currency must be a 3-letter ISO code, got {base_currency!r}")

    numbering = data.get("numbering") or {}
    prefixes = numbering.get("prefixes") or {}
    if not isinstance(prefixes, dict):
        raise ValueError("numbering.prefixes must be a mapping")

    return LedgerConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        base_currency=base_currency,
        sequence_padding=_positive_int(numbering.get("padding", 4), "numbering.padding"),
        default_prefix=str(numbering.get("default_prefix", "TXN")),
        document_prefixes=tuple(sorted((str(k), str(v)) for k, v in prefixes.items())),
        account_code_ranges=parse_code_ranges(data.get("account_code_ranges") or {}),
        variance_accounts=parse_variance_accounts(data.get("variance_accounts") or {}),
        database=parse_database(data.get("database") or {}),
        logging=parse_logging(data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def parse_account_template(data: dict[str, Any]) -> AccountTemplate:
    """
    Raises:
        KeyError: if ``code``, ``name`` or ``type`` is missing.
    """
    parent = data.get("parent")
    return AccountTemplate(
        code=str(data["code"]),
        name=data["name"],
        account_type=_account_type(data["type"]),
        parent_code=str(parent) if parent is not None else None,
        account_subtype=data.get("subtype"),
        description=data.get("description"),
        allow_manual_posting=bool(data.get("allow_manual_posting", True)),
        is_system=bool(data.get("is_system", False)),
        tags=tuple(data.get("tags") or ()),
    )


def _check_unique_codes(accounts: tuple[AccountTemplate, ...], what: str) -> None:
    codes = [a.code for a in accounts]
    duplicates = sorted({c for c in codes if codes.count(c) > 1})
    if duplicates:
        raise ValueError(f"{what} repeats account codes: {duplicates}")


def parse_chart_template(data: dict[str, Any]) -> ChartTemplate:
    accounts = tuple(parse_account_template(a) for a in data.get("accounts") or ())
    _check_unique_codes(accounts, "Chart template")
    return ChartTemplate(
        name=data["name"],
        description=data.get("description", ""),
        accounts=accounts,
    )


def merge_chart_templates(base: ChartTemplate, overlay: ChartTemplate) -> ChartTemplate:
    """
    Base chart followed by an industry overlay.

    Overlay accounts may name base accounts as parents.  An overlay may
    only add accounts; a code present in both raises ``ValueError``.
    """
    accounts = base.accounts + overlay.accounts
    _check_unique_codes(accounts, f"Industry overlay {overlay.name!r}")
    return ChartTemplate(
        name=f"{base.name}/{overlay.name}",
        description=overlay.description or base.description,
        accounts=accounts,
    )
