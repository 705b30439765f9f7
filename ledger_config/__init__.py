"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_config()`` and chart templates through
    ``load_chart_template()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML-driven.  This package sits above
    ``ledger_kernel``.  The kernel MUST NEVER import from
    ``ledger_config``; ``ledger_config.bridges`` translates configuration
    into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file or chart template
      does not exist.
    - ``ValueError`` -- malformed values.
    - ``KeyError`` -- missing required keys.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry containing the config_id, version
    and checksum, tying postings back to the configuration in force.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from ledger_config.bridges import to_account_specs, to_ledger_settings, to_variance_accounts
from ledger_config.loader import (
    load_yaml_file,
    merge_chart_templates,
    parse_chart_template,
    parse_ledger_config,
)
from ledger_config.schema import ChartTemplate, LedgerConfig

_logger = logging.getLogger("ledger_kernel.config")

_DEFAULTS_DIR = Path(__file__).parent / "defaults"
_DEFAULT_CONFIG_FILE = _DEFAULTS_DIR / "ledger.yaml"
_DEFAULT_CHARTS_DIR = _DEFAULTS_DIR / "charts"
_INDUSTRIES_SUBDIR = "industries"

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"
DATABASE_URL_ENV = "DATABASE_URL"
GENERAL_INDUSTRY = "general"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """
    Load the active ledger configuration.

    Resolution order for the file: ``path``, then ``$LEDGER_CONFIG_PATH``,
    then the packaged ``defaults/ledger.yaml``.  ``$DATABASE_URL``, when
    set, overrides ``database.url``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If a value is malformed.
    """
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_FILE)
    config = parse_ledger_config(load_yaml_file(config_path))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(config_path),
            "base_currency": config.base_currency,
        },
    )
    return config


def load_chart_template(
    name: str = "standard",
    charts_dir: Path | None = None,
    industry: str | None = None,
) -> ChartTemplate:
    """
    Load ``<charts_dir>/<name>.yaml`` (default: the packaged charts).

    With ``industry``, the overlay ``<charts_dir>/industries/<industry>.yaml``
    is appended to the base chart.  ``"general"`` means the base chart alone.

    Raises:
        FileNotFoundError: If no template or overlay of that name exists.
        ValueError: If the overlay reuses a base account code.
    """
    charts_dir = charts_dir or _DEFAULT_CHARTS_DIR
    template = parse_chart_template(load_yaml_file(charts_dir / f"{name}.yaml"))
    if industry is None or industry.lower() == GENERAL_INDUSTRY:
        return template
    overlay_path = charts_dir / _INDUSTRIES_SUBDIR / f"{industry.lower()}.yaml"
    return merge_chart_templates(template, parse_chart_template(load_yaml_file(overlay_path)))


def list_industries(charts_dir: Path | None = None) -> list[str]:
    """Industry overlays available under ``charts_dir``, sorted."""
    overlay_dir = (charts_dir or _DEFAULT_CHARTS_DIR) / _INDUSTRIES_SUBDIR
    return sorted(p.stem for p in overlay_dir.glob("*.yaml"))


def initialize_runtime(config: LedgerConfig) -> None:
    """
    Process-wide setup from configuration: logging, engine, ORM listeners.

    Call once at startup, before the first PostingOrchestrator is built.
    """
    from ledger_kernel.db.engine import init_engine_from_url
    from ledger_kernel.db.immutability import register_immutability_listeners
    from ledger_kernel.logging_config import configure_logging

    configure_logging(level=config.logging.level)
    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=db.pool_pre_ping,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    register_immutability_listeners()


__all__ = [
    "ChartTemplate",
    "LedgerConfig",
    "get_active_config",
    "initialize_runtime",
    "list_industries",
    "load_chart_template",
    "to_account_specs",
    "to_ledger_settings",
    "to_variance_accounts",
]
