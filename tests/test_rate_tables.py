"""Tests for versioned bonus rate tables."""

from decimal import Decimal

import pytest

from bonus.rate_tables import (
    BonusConfigHelper, parse_generation_label, generation_label,
    DAILY, GENERATION, SAVINGS, INSTANT, DAILY_INCOME, DEFAULT_RATE_VERSIONS,
)


class TestGenerationLabels:

    @pytest.mark.parametrize("label,expected", [
        ("own", 0),
        ("gen1", 1),
        ("GEN10", 10),
        ("gen11", None),
        ("gen0", None),
        ("g3", None),
        ("", None),
        (3, None),
    ])
    def test_parse(self, label, expected):
        assert parse_generation_label(label) == expected

    def test_label(self):
        assert generation_label(0) == "own"
        assert generation_label(7) == "gen7"


class TestBonusConfigHelper:

    def test_default_collect_amounts(self):
        rates = BonusConfigHelper()

        assert rates.collect_amounts("gen1") == {
            DAILY: Decimal("30"),
            GENERATION: Decimal("20"),
            SAVINGS: Decimal("20"),
            INSTANT: Decimal("0.10"),
        }

    def test_unknown_label_is_zero(self):
        rates = BonusConfigHelper()

        assert rates.rate(DAILY, "gen42") == Decimal("0")
        assert rates.rate("no-such-kind", "gen1") == Decimal("0")
        assert rates.rate(INSTANT, "gen8") == Decimal("0")

    def test_version_switch_does_not_merge_tables(self):
        rates = BonusConfigHelper(versions={GENERATION: "v1"})

        assert rates.rate(GENERATION, "gen2") == Decimal("10")
        # v1 has no gen6 entry; no fallback to another version
        assert rates.rate(GENERATION, "gen6") == Decimal("0")
        assert rates.rate(DAILY, "gen2") == Decimal("25")

    def test_injected_tables(self):
        tables = {"custom": {DAILY: {"gen1": Decimal("7")}}}
        rates = BonusConfigHelper(tables=tables, versions={DAILY: "custom"})

        assert rates.rate(DAILY, "gen1") == Decimal("7")
        assert rates.rate(DAILY, "gen2") == Decimal("0")

    def test_app_defaults_follow_module_versions(self, app):
        rates = BonusConfigHelper.from_app()

        assert rates.versions == DEFAULT_RATE_VERSIONS

    def test_from_app_reads_config(self, app):
        app.config["BONUS_RATE_VERSIONS"] = {DAILY_INCOME: "v1", DAILY: "v2"}
        rates = BonusConfigHelper.from_app()

        assert rates.version_for(DAILY) == "v2"
        assert rates.rate(INSTANT, "gen1") == Decimal("0.10")
        assert rates.rate(DAILY_INCOME, "own") == Decimal("30")

    def test_summary_lists_active_versions(self):
        summary = BonusConfigHelper().get_bonus_distribution_summary()

        assert summary[DAILY]["version"] == "v3"
        assert summary[DAILY_INCOME]["rates"]["gen1"] == 15.0
