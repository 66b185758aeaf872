# bonus/rate_tables.py
from decimal import Decimal
from typing import Dict, Any, Optional
from flask import current_app, has_app_context


# Bonus kinds
DAILY = "daily"
GENERATION = "generation"
SAVINGS = "savings"
INSTANT = "instant"            # gold grams
DAILY_INCOME = "daily_income"  # self-inclusive chain distribution
SAVINGS_INCOME = "savings_income"

COLLECT_KINDS = (DAILY, GENERATION, SAVINGS, INSTANT)

MAX_GENERATION = 10


def _table(**rates) -> Dict[str, Decimal]:
    return {label: Decimal(str(amount)) for label, amount in rates.items()}


# ======================================================
# RATE TABLE VERSIONS
# ======================================================
# Labels: "own" is the member itself, "gen1" the direct sponsor, "genN" the N-th ancestor
# (or, seen from above, the N-th descendant layer). Versions are never merged.

RATE_TABLE_VERSIONS: Dict[str, Dict[str, Dict[str, Decimal]]] = {
    # sponsor-chain era
    "v1": {
        GENERATION: _table(own=0, gen1=20, gen2=10, gen3=5, gen4=5, gen5=5),
        DAILY_INCOME: _table(own=30, gen1=15, gen2=12, gen3=9, gen4=6, gen5=3),
        SAVINGS_INCOME: _table(own=20, gen1=10, gen2=8, gen3=6, gen4=4, gen5=2),
    },
    # collect-per-member era
    "v2": {
        DAILY: _table(own=0, gen1=30, gen2=25, gen3=20, gen4=15, gen5=10, gen6=5, gen7=3, gen8=2, gen9=1, gen10=0),
        GENERATION: _table(own=0, gen1=20, gen2=15, gen3=10, gen4=5, gen5=3, gen6=2, gen7=1, gen8=1, gen9=1, gen10=0),
        SAVINGS: _table(own=0, gen1=20, gen2=15, gen3=10, gen4=5, gen5=3, gen6=2, gen7=1, gen8=1, gen9=1, gen10=0),
    },
    # v2 plus the gold-denominated instant bonus
    "v3": {
        DAILY: _table(own=0, gen1=30, gen2=25, gen3=20, gen4=15, gen5=10, gen6=5, gen7=3, gen8=2, gen9=1, gen10=0),
        GENERATION: _table(own=0, gen1=20, gen2=15, gen3=10, gen4=5, gen5=3, gen6=2, gen7=1, gen8=1, gen9=1, gen10=0),
        SAVINGS: _table(own=0, gen1=20, gen2=15, gen3=10, gen4=5, gen5=3, gen6=2, gen7=1, gen8=1, gen9=1, gen10=0),
        INSTANT: _table(own=0, gen1="0.10", gen2="0.05", gen3="0.03", gen4="0.02", gen5="0.01"),
    },
}

DEFAULT_RATE_VERSIONS = {
    DAILY: "v3",
    GENERATION: "v3",
    SAVINGS: "v3",
    INSTANT: "v3",
    DAILY_INCOME: "v1",
    SAVINGS_INCOME: "v1",
}


def generation_label(level: int) -> str:
    return "own" if level == 0 else f"gen{level}"


def parse_generation_label(label) -> Optional[int]:
    """'gen3' -> 3, 'own' -> 0, anything else -> None"""
    if not isinstance(label, str):
        return None
    label = label.strip().lower()
    if label == "own":
        return 0
    if label.startswith("gen") and label[3:].isdigit():
        level = int(label[3:])
        if 1 <= level <= MAX_GENERATION:
            return level
    return None


class BonusConfigHelper:
    """
    Pure lookups against the active rate tables.
    The app config may swap versions per kind (BONUS_RATE_VERSIONS) or supply
    whole tables (BONUS_RATE_TABLES); resolver and ledger code never see the numbers.
    """

    def __init__(self, tables=None, versions=None):
        self.tables = tables or RATE_TABLE_VERSIONS
        self.versions = dict(DEFAULT_RATE_VERSIONS)
        if versions:
            self.versions.update(versions)

    @classmethod
    def from_app(cls) -> "BonusConfigHelper":
        if not has_app_context():
            return cls()
        tables = current_app.config.get("BONUS_RATE_TABLES")
        versions = current_app.config.get("BONUS_RATE_VERSIONS")
        return cls(tables=tables, versions=versions)

    def version_for(self, kind: str) -> Optional[str]:
        return self.versions.get(kind)

    def table(self, kind: str) -> Dict[str, Decimal]:
        version = self.versions.get(kind)
        return self.tables.get(version, {}).get(kind, {})

    def rate(self, kind: str, label: str) -> Decimal:
        """Amount for a bonus kind at a generation label; 0 for unknown combinations."""
        amount = self.table(kind).get(label)
        if amount is None:
            return Decimal("0")
        return Decimal(str(amount))

    def collect_amounts(self, label: str) -> Dict[str, Decimal]:
        """All kinds paid together by a bonus collection."""
        return {kind: self.rate(kind, label) for kind in COLLECT_KINDS}

    def get_bonus_distribution_summary(self) -> Dict[str, Any]:
        """Active versions and their tables, for display"""
        return {
            kind: {
                "version": version,
                "rates": {label: float(amount) for label, amount in self.table(kind).items()},
            }
            for kind, version in self.versions.items()
        }
