from typing import Dict, Any, List, Optional
import logging
from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from extensions import db
from exceptions import ValidationError, NotFound, AlreadyCollected
from logger import ledger_logger
from models import User, BonusCollection
from utils import to_float
from bonus.rate_tables import (
    BonusConfigHelper, parse_generation_label, generation_label,
    DAILY, GENERATION, SAVINGS, INSTANT,
)
from bonus.referral_tree import ReferralTreeHelper, ReferralIndex, _max_depth
from wallet.ledger import AccountLedger, settlement


logger = logging.getLogger(__name__)


class BonusCollectionHelper:
    """
    Per-(recipient, source member, generation) bonus collection.
    The unique key on bonus_collections is the only idempotency mechanism:
    the row is inserted first and the credit runs in the same transaction.
    """

    @staticmethod
    def _already_collected(recipient_id: int, source_id: int, label: str) -> bool:
        existing = db.session.execute(
            select(BonusCollection.bonus_collect).where(
                BonusCollection.user_id == recipient_id,
                BonusCollection.from_user_id == source_id,
                BonusCollection.generation == label,
            )
        ).scalar_one_or_none()
        return bool(existing)

    @staticmethod
    def collect(recipient_id: int, source_id: int, generation: str, rates: Optional[BonusConfigHelper] = None) -> Dict[str, Any]:
        level = parse_generation_label(generation)
        if level is None or level == 0:
            raise ValidationError("Invalid generation")
        label = generation_label(level)

        recipient = db.session.get(User, recipient_id)
        if not recipient:
            raise NotFound("User not found")
        if not db.session.get(User, source_id):
            raise NotFound("Source user not found")

        # the recipient must be the source's ancestor at exactly this generation
        if ReferralTreeHelper.ancestor_at(source_id, level) != recipient_id:
            raise ValidationError(f"User {source_id} is not in generation {label} of user {recipient_id}")

        if BonusCollectionHelper._already_collected(recipient_id, source_id, label):
            ledger_logger.warning(f"[COLLECT] duplicate user={recipient_id} from={source_id} {label}")
            raise AlreadyCollected()

        rates = rates or BonusConfigHelper.from_app()
        amounts = rates.collect_amounts(label)
        daily = amounts[DAILY]
        gen_bonus = amounts[GENERATION]
        savings = amounts[SAVINGS]
        gold = amounts[INSTANT]

        try:
            with settlement():
                db.session.add(BonusCollection(
                    user_id=recipient_id,
                    from_user_id=source_id,
                    generation=label,
                    bonus_collect=True,
                    daily_bonus=daily,
                    gen_bonus=gen_bonus,
                    savings_bonus=savings,
                    instant_gold=gold,
                ))
                db.session.flush()

                AccountLedger.credit(
                    recipient_id,
                    balance=daily + gen_bonus + savings,
                    daily_income=daily,
                    generation_bonus=gen_bonus,
                    savings=savings,
                    gold_balance=gold,
                    total_savings_collected=savings,
                    total_generation_bonus_collected=gen_bonus,
                )
                member_count = db.session.execute(
                    select(func.count()).select_from(User).where(User.sponsor_id == recipient_id)
                ).scalar_one()
                db.session.execute(
                    update(User)
                    .where(User.user_id == recipient_id)
                    .values(member_count=member_count)
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError:
            # a concurrent request inserted the same key first
            ledger_logger.warning(f"[COLLECT] lost race user={recipient_id} from={source_id} {label}")
            raise AlreadyCollected()

        recipient = AccountLedger.fresh(User, recipient_id)
        ledger_logger.info(
            f"[COLLECT] user={recipient_id} from={source_id} {label} "
            f"daily={daily} gen={gen_bonus} savings={savings} gold={gold}"
        )
        return {
            "dailyBonus": to_float(daily),
            "genBonus": to_float(gen_bonus),
            "savingsBonus": to_float(savings),
            "instantGold": to_float(gold),
            "memberCount": recipient.member_count,
            "totalSavingsCollected": to_float(recipient.total_savings_collected),
            "totalGenerationBonusCollected": to_float(recipient.total_generation_bonus_collected),
            "currentBalance": to_float(recipient.balance),
            "goldBalance": to_float(recipient.gold_balance),
        }

    @staticmethod
    def entitlements(recipient_id: int, max_depth: Optional[int] = None, rates: Optional[BonusConfigHelper] = None,
                     index: Optional[ReferralIndex] = None) -> List[Dict[str, Any]]:
        """Every descendant within max_depth with the amounts it pays and whether it was collected."""
        if not db.session.get(User, recipient_id):
            raise NotFound("User not found")

        max_depth = _max_depth(max_depth)
        rates = rates or BonusConfigHelper.from_app()
        index = index or ReferralIndex.load()

        collected = {
            (row.from_user_id, row.generation)
            for row in db.session.execute(
                select(BonusCollection.from_user_id, BonusCollection.generation).where(
                    BonusCollection.user_id == recipient_id,
                    BonusCollection.bonus_collect.is_(True),
                )
            ).all()
        }

        result = []
        for level, member_id in index.layers(recipient_id, max_depth):
            label = generation_label(level)
            amounts = rates.collect_amounts(label)
            member = index.members[member_id]
            result.append({
                "fromUserId": member_id,
                "name": member["name"],
                "phone": member["phone"],
                "generation": label,
                "dailyBonus": to_float(amounts[DAILY]),
                "genBonus": to_float(amounts[GENERATION]),
                "savingsBonus": to_float(amounts[SAVINGS]),
                "instantGold": to_float(amounts[INSTANT]),
                "bonusCollect": (member_id, label) in collected,
            })
        return result

    @staticmethod
    def history(recipient_id: int) -> List[Dict[str, Any]]:
        rows = BonusCollection.query.filter_by(user_id=recipient_id).order_by(
            BonusCollection.collected_at.desc(), BonusCollection.id.desc()
        ).all()
        return [row.to_dict() for row in rows]

    @staticmethod
    def totals(recipient_id: int) -> Dict[str, Any]:
        row = db.session.execute(
            select(
                func.coalesce(func.sum(BonusCollection.daily_bonus), 0),
                func.coalesce(func.sum(BonusCollection.gen_bonus), 0),
                func.coalesce(func.sum(BonusCollection.savings_bonus), 0),
                func.coalesce(func.sum(BonusCollection.instant_gold), 0),
                func.count(BonusCollection.id),
            ).where(BonusCollection.user_id == recipient_id)
        ).one()
        return {
            "dailyBonus": to_float(row[0]),
            "genBonus": to_float(row[1]),
            "savingsBonus": to_float(row[2]),
            "instantGold": to_float(row[3]),
            "collections": row[4],
        }
