# bonus/rank_rewards.py
from decimal import Decimal
from fractions import Fraction
from math import floor
from typing import List, Dict, Any, Optional, Sequence
from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from extensions import db
from exceptions import ValidationError, NotFound, AlreadyCollected
from logger import ledger_logger
from models import User, RankRewardClaim
from utils import sanitize_key, to_float
from bonus.referral_tree import ReferralTreeHelper, ReferralIndex
from wallet.ledger import AccountLedger, settlement


# name, required sizes of the top three gen1 branches, SAR reward, gold grams
DEFAULT_RANK_TIERS = [
    {"rank": "Bronze", "required": (3, 3, 3), "sar": "500", "gold": "0.50"},
    {"rank": "Silver", "required": (10, 10, 10), "sar": "1500", "gold": "1.00"},
    {"rank": "Gold", "required": (25, 25, 25), "sar": "4000", "gold": "2.10"},
    {"rank": "Platinum", "required": (50, 50, 50), "sar": "10000", "gold": "5.00"},
    {"rank": "Diamond", "required": (100, 100, 100), "sar": "25000", "gold": "10.00"},
]


def rank_tiers() -> List[Dict[str, Any]]:
    tiers = None
    if has_app_context():
        tiers = current_app.config.get("RANK_TIERS")
    return tiers or DEFAULT_RANK_TIERS


def reward_key(rank: str) -> str:
    return f"{sanitize_key(rank)}_all"


def progress(required: Sequence[int], actual: Sequence[int]) -> Dict[str, Any]:
    """
    Percent complete is the floored average of min(actual / required, 1) over the
    required slots; the tier is complete only when every slot meets its requirement.
    Missing branches count as zero.
    """
    actual = list(actual) + [0] * max(0, len(required) - len(actual))
    ratios = []
    for slot, needed in enumerate(required):
        if needed <= 0:
            ratios.append(Fraction(1))
        else:
            ratios.append(min(Fraction(actual[slot], needed), Fraction(1)))
    percent = floor(sum(ratios) / len(ratios) * 100) if ratios else 100
    complete = all(actual[slot] >= needed for slot, needed in enumerate(required))
    return {"percent": percent, "complete": complete}


class RankRewardHelper:

    @staticmethod
    def top_branches(user_id: int, count: int = 3, index: Optional[ReferralIndex] = None) -> List[int]:
        branches = ReferralTreeHelper.gen1_branch_sizes(user_id, index=index)
        sizes = sorted((b["totalReferrals"] for b in branches), reverse=True)
        return sizes[:count]

    @staticmethod
    def _claimed_keys(user_id: int) -> set:
        return set(db.session.execute(
            select(RankRewardClaim.reward_key).where(RankRewardClaim.user_id == user_id)
        ).scalars().all())

    @staticmethod
    def status(user_id: int, index: Optional[ReferralIndex] = None) -> Dict[str, Any]:
        if not db.session.get(User, user_id):
            raise NotFound("User not found")

        tiers = rank_tiers()
        width = max((len(t["required"]) for t in tiers), default=3)
        sizes = RankRewardHelper.top_branches(user_id, width, index)
        claimed = RankRewardHelper._claimed_keys(user_id)

        rewards = []
        for tier in tiers:
            state = progress(tier["required"], sizes)
            key = reward_key(tier["rank"])
            rewards.append({
                "rank": tier["rank"],
                "key": key,
                "required": list(tier["required"]),
                "sar": to_float(tier["sar"]),
                "gold": to_float(tier["gold"]),
                "percent": state["percent"],
                "complete": state["complete"],
                "collected": key in claimed,
            })
        return {"userId": user_id, "topBranches": sizes, "rewards": rewards}

    @staticmethod
    def collect(user_id: int, rank: str) -> Dict[str, Any]:
        if not rank:
            raise ValidationError("Missing rank")
        tier = next((t for t in rank_tiers() if sanitize_key(t["rank"]) == sanitize_key(rank)), None)
        if tier is None:
            raise ValidationError(f"Unknown rank: {rank}")
        if not db.session.get(User, user_id):
            raise NotFound("User not found")

        key = reward_key(tier["rank"])
        sizes = RankRewardHelper.top_branches(user_id, len(tier["required"]))
        if not progress(tier["required"], sizes)["complete"]:
            ledger_logger.warning(f"[RANK] user={user_id} {key} not complete {sizes}")
            raise ValidationError(f"{tier['rank']} requirements not met")

        sar = Decimal(str(tier["sar"]))
        gold = Decimal(str(tier["gold"]))

        try:
            with settlement():
                db.session.add(RankRewardClaim(user_id=user_id, reward_key=key, sar_amount=sar, gold_amount=gold))
                db.session.flush()
                AccountLedger.credit(user_id, balance=sar, gold_balance=gold)

                claims = RankRewardClaim.query.filter_by(user_id=user_id).all()
                user = db.session.get(User, user_id)
                user.rank_bonus = {
                    c.reward_key: {"sar": to_float(c.sar_amount), "gold": to_float(c.gold_amount)}
                    for c in claims
                }
        except IntegrityError:
            ledger_logger.warning(f"[RANK] duplicate claim user={user_id} {key}")
            raise AlreadyCollected("Reward already collected")

        ledger_logger.info(f"[RANK] user={user_id} {key} sar={sar} gold={gold}")
        user = AccountLedger.fresh(User, user_id)
        return {
            "rank": tier["rank"],
            "key": key,
            "sar": to_float(sar),
            "gold": to_float(gold),
            "balance": to_float(user.balance),
            "goldBalance": to_float(user.gold_balance),
            "rankBonus": user.rank_bonus,
        }
