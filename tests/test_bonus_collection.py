"""Tests for per-member bonus collection and chain income distribution."""

from datetime import date
from decimal import Decimal

import pytest

from bonus.bonus_collection import BonusCollectionHelper
from bonus.chain_income import ChainIncomeHelper
from bonus.rate_tables import DAILY_INCOME, SAVINGS_INCOME
from exceptions import AlreadyCollected, ValidationError, NotFound
from models import User, BonusCollection, ChainIncomeRun
from wallet.ledger import AccountLedger


class TestCollect:

    def test_collect_credits_every_pool(self, app, make_chain):
        make_chain(1, 2)

        result = BonusCollectionHelper.collect(1, 2, "gen1")

        user = AccountLedger.fresh(User, 1)
        assert user.balance == Decimal("70")
        assert user.daily_income == Decimal("30")
        assert user.generation_bonus == Decimal("20")
        assert user.savings == Decimal("20")
        assert user.gold_balance == Decimal("0.1")
        assert user.total_savings_collected == Decimal("20")
        assert user.total_generation_bonus_collected == Decimal("20")
        assert user.member_count == 1
        assert result["currentBalance"] == 70.0

    def test_second_collect_fails_and_moves_nothing(self, app, make_chain):
        make_chain(1, 2)
        BonusCollectionHelper.collect(1, 2, "gen1")

        with pytest.raises(AlreadyCollected):
            BonusCollectionHelper.collect(1, 2, "gen1")

        assert AccountLedger.fresh(User, 1).balance == Decimal("70")
        assert BonusCollection.query.count() == 1

    def test_unique_key_rejects_collect_that_passed_the_lookup(self, app, make_chain, monkeypatch):
        # two requests that both saw no existing row: the insert decides
        make_chain(1, 2)
        monkeypatch.setattr(BonusCollectionHelper, "_already_collected", staticmethod(lambda *args: False))
        BonusCollectionHelper.collect(1, 2, "gen1")

        with pytest.raises(AlreadyCollected):
            BonusCollectionHelper.collect(1, 2, "gen1")

        user = AccountLedger.fresh(User, 1)
        assert user.balance == Decimal("70")
        assert user.gold_balance == Decimal("0.1")
        assert user.total_generation_bonus_collected == Decimal("20")
        assert BonusCollection.query.count() == 1

    def test_deeper_generation_uses_its_rate(self, app, make_chain):
        make_chain(1, 2, 3, 4)

        BonusCollectionHelper.collect(1, 4, "gen3")

        user = AccountLedger.fresh(User, 1)
        # daily 20 + generation 10 + savings 10
        assert user.balance == Decimal("40")
        assert user.gold_balance == Decimal("0.03")

    def test_wrong_generation_is_rejected(self, app, make_chain):
        make_chain(1, 2, 3)

        with pytest.raises(ValidationError):
            BonusCollectionHelper.collect(1, 3, "gen1")

        assert AccountLedger.fresh(User, 1).balance == Decimal("0")

    def test_invalid_label(self, app, make_chain):
        make_chain(1, 2)

        with pytest.raises(ValidationError):
            BonusCollectionHelper.collect(1, 2, "gen11")
        with pytest.raises(ValidationError):
            BonusCollectionHelper.collect(1, 2, "own")

    def test_unknown_users(self, app, make_user):
        make_user(1)

        with pytest.raises(NotFound):
            BonusCollectionHelper.collect(1, 99, "gen1")
        with pytest.raises(NotFound):
            BonusCollectionHelper.collect(99, 1, "gen1")

    def test_frozen_amounts_recorded(self, app, make_chain):
        make_chain(1, 2, 3)

        BonusCollectionHelper.collect(1, 3, "gen2")

        row = BonusCollection.query.filter_by(user_id=1, from_user_id=3).one()
        assert row.bonus_collect is True
        assert row.generation == "gen2"
        assert row.daily_bonus == Decimal("25")
        assert row.gen_bonus == Decimal("15")
        assert row.savings_bonus == Decimal("15")


class TestEntitlements:

    def test_lists_descendants_with_collected_flags(self, app, make_user):
        make_user(1)
        make_user(2, sponsor_id=1)
        make_user(3, sponsor_id=1)
        make_user(4, sponsor_id=2)
        BonusCollectionHelper.collect(1, 2, "gen1")

        rows = BonusCollectionHelper.entitlements(1)

        assert [(r["fromUserId"], r["generation"], r["bonusCollect"]) for r in rows] == [
            (2, "gen1", True),
            (3, "gen1", False),
            (4, "gen2", False),
        ]
        assert rows[2]["dailyBonus"] == 25.0

    def test_unknown_user(self, app):
        with pytest.raises(NotFound):
            BonusCollectionHelper.entitlements(77)


class TestChainIncome:

    def test_daily_income_goes_up_the_chain(self, app, make_chain):
        make_chain(1, 2, 3, 4)

        result = ChainIncomeHelper.distribute(4, DAILY_INCOME, run_date=date(2024, 1, 1))

        assert AccountLedger.fresh(User, 4).balance == Decimal("30")
        assert AccountLedger.fresh(User, 3).balance == Decimal("15")
        assert AccountLedger.fresh(User, 2).balance == Decimal("12")
        assert AccountLedger.fresh(User, 1).balance == Decimal("9")
        assert result["totalDistributed"] == 66.0

    def test_savings_income_rates(self, app, make_chain):
        make_chain(1, 2)

        ChainIncomeHelper.distribute(2, SAVINGS_INCOME, run_date=date(2024, 1, 1))

        assert AccountLedger.fresh(User, 2).balance == Decimal("20")
        assert AccountLedger.fresh(User, 1).balance == Decimal("10")

    def test_once_per_day(self, app, make_chain):
        make_chain(1, 2)
        ChainIncomeHelper.distribute(2, DAILY_INCOME, run_date=date(2024, 1, 1))

        with pytest.raises(AlreadyCollected):
            ChainIncomeHelper.distribute(2, DAILY_INCOME, run_date=date(2024, 1, 1))

        assert AccountLedger.fresh(User, 2).balance == Decimal("30")

        ChainIncomeHelper.distribute(2, DAILY_INCOME, run_date=date(2024, 1, 2))
        assert AccountLedger.fresh(User, 2).balance == Decimal("60")
        assert ChainIncomeRun.query.count() == 2

    def test_kinds_are_independent(self, app, make_user):
        make_user(1)

        ChainIncomeHelper.distribute(1, DAILY_INCOME, run_date=date(2024, 1, 1))
        ChainIncomeHelper.distribute(1, SAVINGS_INCOME, run_date=date(2024, 1, 1))

        assert AccountLedger.fresh(User, 1).balance == Decimal("50")

    def test_unknown_kind(self, app, make_user):
        make_user(1)

        with pytest.raises(ValidationError):
            ChainIncomeHelper.distribute(1, "weekly")
