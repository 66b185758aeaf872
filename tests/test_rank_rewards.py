"""Tests for tiered rank rewards."""

from decimal import Decimal

import pytest

from bonus.rank_rewards import RankRewardHelper, progress, reward_key
from exceptions import AlreadyCollected, ValidationError
from models import User, RankRewardClaim
from wallet.ledger import AccountLedger


def build_branches(make_user, root, sizes):
    """Give root one direct referral per size, each with a chain of that many descendants."""
    make_user(root)
    next_id = root + 1
    for size in sizes:
        branch_id = next_id
        make_user(branch_id, sponsor_id=root)
        next_id += 1
        parent = branch_id
        for _ in range(size):
            make_user(next_id, sponsor_id=parent)
            parent = next_id
            next_id += 1


class TestProgress:

    def test_partial_progress_is_floored(self):
        assert progress((3, 3, 3), (5, 2, 0)) == {"percent": 55, "complete": False}

    def test_complete(self):
        assert progress((3, 3, 3), (7, 3, 3)) == {"percent": 100, "complete": True}

    def test_missing_branches_count_as_zero(self):
        assert progress((3, 3, 3), (3,)) == {"percent": 33, "complete": False}

    def test_reward_key(self):
        assert reward_key("Gold Star") == "gold_star_all"


class TestRankRewards:

    def test_status_reports_each_tier(self, app, make_user):
        build_branches(make_user, 1, [5, 2, 0])

        status = RankRewardHelper.status(1)

        assert status["topBranches"] == [5, 2, 0]
        bronze = status["rewards"][0]
        assert bronze["rank"] == "Bronze"
        assert bronze["percent"] == 55
        assert bronze["complete"] is False
        assert bronze["collected"] is False

    def test_collect_credits_cash_and_gold_once(self, app, make_user):
        build_branches(make_user, 1, [3, 3, 4])

        result = RankRewardHelper.collect(1, "bronze")

        user = AccountLedger.fresh(User, 1)
        assert user.balance == Decimal("500")
        assert user.gold_balance == Decimal("0.5")
        assert user.rank_bonus == {"bronze_all": {"sar": 500.0, "gold": 0.5}}
        assert result["key"] == "bronze_all"

        with pytest.raises(AlreadyCollected):
            RankRewardHelper.collect(1, "Bronze")
        assert AccountLedger.fresh(User, 1).balance == Decimal("500")

        assert RankRewardHelper.status(1)["rewards"][0]["collected"] is True

    def test_duplicate_claim_is_refused_by_unique_key(self, app, make_user):
        # no lookup before the insert: the second claim fails on the unique (user, key) row
        build_branches(make_user, 1, [3, 3, 3])
        RankRewardHelper.collect(1, "Bronze")

        with pytest.raises(AlreadyCollected):
            RankRewardHelper.collect(1, "bronze")

        user = AccountLedger.fresh(User, 1)
        assert user.balance == Decimal("500")
        assert user.gold_balance == Decimal("0.5")
        assert RankRewardClaim.query.count() == 1

    def test_incomplete_tier_cannot_be_collected(self, app, make_user):
        build_branches(make_user, 1, [5, 2, 0])

        with pytest.raises(ValidationError):
            RankRewardHelper.collect(1, "Bronze")
        assert AccountLedger.fresh(User, 1).balance == Decimal("0")

    def test_unknown_rank(self, app, make_user):
        make_user(1)

        with pytest.raises(ValidationError):
            RankRewardHelper.collect(1, "Emperor")
