"""
Tests for ledger configuration loading.

Covers:
- get_active_config() -- packaged defaults, file and URL overrides, trace log
- Loader -- YAML dict parsing and its error cases
- Bridges -- configuration to LedgerSettings / VarianceAccounts / AccountSpec
- Chart templates -- the packaged standard chart and malformed templates
- Industry overlays -- merged onto the base chart and initialized per industry
- initialize_runtime() -- engine setup from configuration
"""

from __future__ import annotations

import re

import pytest
import yaml

from ledger_config import (
    get_active_config,
    initialize_runtime,
    list_industries,
    load_chart_template,
    to_account_specs,
    to_ledger_settings,
    to_variance_accounts,
)
from ledger_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_chart_template,
    parse_ledger_config,
)
from ledger_kernel.db import engine as engine_module
from ledger_kernel.models.account import AccountType
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator


def _write(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture
def no_env(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("LEDGER_CONFIG_PATH", raising=False)


# =========================================================================
# get_active_config
# =========================================================================


class TestActiveConfig:

    def test_packaged_defaults(self, no_env):
        config = get_active_config()

        assert config.config_id == "ledger-default"
        assert config.version == 1
        assert config.base_currency == "USD"
        assert config.sequence_padding == 4
        assert config.default_prefix == "TXN"
        assert dict(config.document_prefixes)["inventory_adjustment"] == "INV-ADJ"
        assert config.database.url == "sqlite:///ledger.db"
        assert config.logging.level == "INFO"
        assert re.fullmatch(r"[0-9a-f]{64}", config.checksum)

    def test_emits_trace(self, no_env, captured_logs):
        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_id"] == "ledger-default"
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["logger"] == "ledger_kernel.config"

    def test_database_url_override(self, no_env, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://ledger@localhost/ledger")

        config = get_active_config()

        assert config.database.url == "postgresql://ledger@localhost/ledger"
        assert config.database.pool_size == 5

    def test_config_path_from_environment(self, no_env, monkeypatch, tmp_path):
        path = _write(
            tmp_path / "ledger.yaml",
            {"config_id": "eu-ledger", "base_currency": "eur", "numbering": {"padding": 6}},
        )
        monkeypatch.setenv("LEDGER_CONFIG_PATH", str(path))

        config = get_active_config()

        assert config.config_id == "eu-ledger"
        assert config.base_currency == "EUR"
        assert config.sequence_padding == 6

    def test_explicit_path_wins(self, no_env, monkeypatch, tmp_path):
        env_path = _write(tmp_path / "env.yaml", {"config_id": "from-env"})
        arg_path = _write(tmp_path / "arg.yaml", {"config_id": "from-arg"})
        monkeypatch.setenv("LEDGER_CONFIG_PATH", str(env_path))

        assert get_active_config(arg_path).config_id == "from-arg"

    def test_missing_file(self, no_env, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


# =========================================================================
# Loader
# =========================================================================


class TestParseLedgerConfig:

    def test_minimal_document_gets_defaults(self):
        config = parse_ledger_config({"config_id": "minimal"})

        assert config.base_currency == "USD"
        assert config.sequence_padding == 4
        assert config.document_prefixes == ()
        assert config.account_code_ranges == ()
        assert config.variance_accounts.default_prefix == "5400"
        assert config.database.pool_timeout == 30

    def test_missing_config_id(self):
        with pytest.raises(KeyError):
            parse_ledger_config({"base_currency": "USD"})

    @pytest.mark.parametrize(
        "data",
        [
            {"base_currency": "EURO"},
            {"base_currency": "U5D"},
            {"numbering": {"padding": 0}},
            {"numbering": {"padding": True}},
            {"numbering": {"prefixes": ["JE"]}},
            {"account_code_ranges": {"asset": [1999, 1000]}},
            {"account_code_ranges": {"asset": 1000}},
            {"account_code_ranges": {"income": [4000, 4999]}},
            {"variance_accounts": {"by_reason_code": ["X"]}},
            {"database": {"pool_size": -1}},
            {"logging": {"level": "LOUD"}},
        ],
    )
    def test_malformed_values(self, data):
        with pytest.raises(ValueError):
            parse_ledger_config({"config_id": "bad", **data})

    def test_code_ranges_are_sorted_by_lower_bound(self):
        config = parse_ledger_config(
            {
                "config_id": "ranges",
                "account_code_ranges": {"Revenue": [4000, 4999], "asset": [1000, 1999]},
            }
        )
        assert config.account_code_ranges == (("asset", 1000, 1999), ("revenue", 4000, 4999))

    def test_checksum_is_deterministic(self):
        data = {"config_id": "a", "numbering": {"padding": 5, "default_prefix": "X"}}
        reordered = {"numbering": {"default_prefix": "X", "padding": 5}, "config_id": "a"}

        assert compute_checksum(data) == compute_checksum(reordered)
        assert compute_checksum(data) != compute_checksum({**data, "version": 2})

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_empty_document(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}


# =========================================================================
# Bridges
# =========================================================================


class TestBridges:

    def test_overrides_merge_with_kernel_defaults(self):
        config = parse_ledger_config(
            {
                "config_id": "custom",
                "base_currency": "gbp",
                "numbering": {"padding": 6, "default_prefix": "DOC", "prefixes": {"journal_entry": "GJ"}},
                "account_code_ranges": {"expense": [5000, 5999]},
            }
        )

        settings = to_ledger_settings(config)

        assert settings.base_currency == "GBP"
        assert settings.sequence_padding == 6
        assert settings.prefix_for("journal_entry") == "GJ"
        assert settings.prefix_for("invoice") == "INV"
        assert settings.prefix_for("accrual") == "DOC"
        assert settings.account_code_ranges[AccountType.EXPENSE] == (5000, 5999)
        assert settings.account_code_ranges[AccountType.ASSET] == (1000, 1999)

    def test_variance_accounts(self):
        config = parse_ledger_config(
            {
                "config_id": "variance",
                "variance_accounts": {
                    "default_prefix": "5490",
                    "by_reason_code": {"SCRAP": "5430"},
                },
            }
        )

        accounts = to_variance_accounts(config)

        assert accounts.prefix_for(None) == "5490"
        assert accounts.prefix_for("SCRAP") == "5430"
        assert accounts.prefix_for("SUPPLIER_PRICE_HIKE") == "5410"
        assert accounts.prefix_for("UNKNOWN") == "5490"
        assert accounts.inventory_prefix == "1300"

    def test_packaged_config_matches_kernel_defaults(self, no_env):
        from ledger_kernel.domain.dtos import LedgerSettings, VarianceAccounts

        config = get_active_config()

        assert to_ledger_settings(config) == LedgerSettings()
        assert to_variance_accounts(config) == VarianceAccounts()


# =========================================================================
# Chart templates
# =========================================================================


class TestChartTemplates:

    def test_standard_chart(self):
        template = load_chart_template("standard")

        assert template.name == "standard"
        assert len(template.accounts) == 30
        by_code = {a.code: a for a in template.accounts}
        assert by_code["1100"].parent_code == "1000"
        assert by_code["1100"].is_system
        assert not by_code["1100"].allow_manual_posting
        assert by_code["1010"].tags == ("cash", "liquid")
        assert by_code["1000"].parent_code is None

    def test_specs_carry_kernel_types(self):
        specs = to_account_specs(load_chart_template("standard"))

        assert {s.account_type for s in specs} == set(AccountType)
        assert all(isinstance(s.account_type, AccountType) for s in specs)

    def test_unknown_template(self):
        with pytest.raises(FileNotFoundError):
            load_chart_template("no-such-chart")

    def test_template_from_directory(self, tmp_path):
        _write(
            tmp_path / "tiny.yaml",
            {
                "name": "tiny",
                "accounts": [
                    {"code": 1000, "name": "Cash", "type": "Asset"},
                    {"code": 3000, "name": "Equity", "type": "equity"},
                ],
            },
        )

        template = load_chart_template("tiny", tmp_path)

        assert [a.code for a in template.accounts] == ["1000", "3000"]
        assert template.accounts[0].account_type == "asset"
        assert template.description == ""

    def test_duplicate_codes(self):
        data = {
            "name": "dup",
            "accounts": [
                {"code": "1000", "name": "Cash", "type": "asset"},
                {"code": "1000", "name": "Bank", "type": "asset"},
            ],
        }
        with pytest.raises(ValueError, match="1000"):
            parse_chart_template(data)

    def test_account_without_type(self):
        with pytest.raises(KeyError):
            parse_chart_template({"name": "bad", "accounts": [{"code": "1000", "name": "Cash"}]})

    def test_unknown_account_type(self):
        with pytest.raises(ValueError, match="Unknown account type"):
            parse_chart_template(
                {"name": "bad", "accounts": [{"code": "1000", "name": "Cash", "type": "cash"}]}
            )


INDUSTRIES = [
    "construction",
    "healthcare",
    "hospitality",
    "manufacturing",
    "nonprofit",
    "real_estate",
    "retail",
    "services",
    "technology",
]


class TestIndustryCharts:

    def test_packaged_industries(self):
        assert list_industries() == INDUSTRIES

    @pytest.mark.parametrize("industry", [None, "general", "GENERAL"])
    def test_general_is_the_base_chart(self, industry):
        assert load_chart_template("standard", industry=industry) == load_chart_template("standard")

    def test_overlay_follows_base(self):
        base = load_chart_template("standard")
        template = load_chart_template("standard", industry="manufacturing")

        assert template.name == "standard/manufacturing"
        assert template.accounts[: len(base.accounts)] == base.accounts
        added = {a.code: a for a in template.accounts[len(base.accounts):]}
        assert added["1320"].name == "Work in Progress Inventory"
        assert added["1320"].parent_code == "1000"

    def test_industry_name_is_case_insensitive(self):
        assert load_chart_template(industry="REAL_ESTATE") == load_chart_template(industry="real_estate")

    def test_unknown_industry(self):
        with pytest.raises(FileNotFoundError):
            load_chart_template("standard", industry="mining")

    def test_overlay_may_not_reuse_base_codes(self, tmp_path):
        _write(tmp_path / "base.yaml", {"name": "base", "accounts": [{"code": "1000", "name": "Cash", "type": "asset"}]})
        (tmp_path / "industries").mkdir()
        _write(
            tmp_path / "industries" / "clash.yaml",
            {"name": "clash", "accounts": [{"code": "1000", "name": "Till", "type": "asset"}]},
        )

        assert list_industries(tmp_path) == ["clash"]
        with pytest.raises(ValueError, match="1000"):
            load_chart_template("base", tmp_path, industry="clash")

    @pytest.mark.parametrize("industry", INDUSTRIES)
    def test_industry_chart_initializes(self, industry, orchestrator, tenant_id, actor_id):
        template = load_chart_template("standard", industry=industry)

        result = orchestrator.initialize_chart(tenant_id, to_account_specs(template), actor_id)

        assert result.is_success, result.message
        assert result.value == len(template.accounts)
        accounts = {a.code: a for a in orchestrator.search_accounts(tenant_id).value}
        assert set(accounts) == {a.code for a in template.accounts}
        for spec in template.accounts:
            if spec.parent_code is not None:
                assert accounts[spec.code].level == accounts[spec.parent_code].level + 1
        assert orchestrator.reconcile_balances(tenant_id).value == []


# =========================================================================
# Runtime initialization
# =========================================================================


class TestInitializeRuntime:

    def test_engine_from_configuration(self, no_env, tmp_path, tenant_id, actor_id):
        path = _write(
            tmp_path / "ledger.yaml",
            {"config_id": "runtime", "database": {"url": f"sqlite:///{tmp_path / 'rt.db'}"}},
        )
        config = get_active_config(path)

        try:
            initialize_runtime(config)
            engine = engine_module.get_engine()
            assert engine.dialect.name == "sqlite"
            assert str(engine.url).endswith("rt.db")
            assert not engine_module.is_postgres()
            engine_module.create_tables()

            with engine_module.session_scope() as session:
                orchestrator = PostingOrchestrator(
                    session, settings=to_ledger_settings(config), auto_commit=False
                )
                specs = to_account_specs(load_chart_template("standard"))
                assert orchestrator.initialize_chart(tenant_id, specs, actor_id).value == 30

            factory = engine_module.get_session_factory()
            with factory() as session:
                accounts = PostingOrchestrator(session).search_accounts(tenant_id).value
                assert len(accounts) == 30
        finally:
            engine_module.reset_engine()

        with pytest.raises(RuntimeError):
            engine_module.get_engine()

    def test_session_scope_rolls_back_on_error(self, no_env, tmp_path, tenant_id, actor_id):
        path = _write(
            tmp_path / "ledger.yaml",
            {"config_id": "runtime", "database": {"url": f"sqlite:///{tmp_path / 'rb.db'}"}},
        )

        try:
            initialize_runtime(get_active_config(path))
            engine_module.create_tables()

            with pytest.raises(RuntimeError):
                with engine_module.session_scope() as session:
                    PostingOrchestrator(session, auto_commit=False).create_account(
                        tenant_id, "1000", "Cash", "asset", actor_id
                    )
                    raise RuntimeError("abort")

            with engine_module.session_scope() as session:
                assert PostingOrchestrator(session).search_accounts(tenant_id).value == []
        finally:
            engine_module.reset_engine()
