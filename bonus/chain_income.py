from datetime import datetime, timezone, date
from decimal import Decimal
from typing import Dict, Any, Optional
from sqlalchemy.exc import IntegrityError
from extensions import db
from exceptions import NotFound, ValidationError, AlreadyCollected
from logger import ledger_logger
from models import User, ChainIncomeRun
from utils import to_float
from bonus.rate_tables import BonusConfigHelper, DAILY_INCOME, SAVINGS_INCOME, generation_label
from bonus.referral_tree import ReferralTreeHelper
from wallet.ledger import AccountLedger, settlement


CHAIN_INCOME_KINDS = (DAILY_INCOME, SAVINGS_INCOME)

# the member itself plus nine ancestors
CHAIN_LENGTH = 10


class ChainIncomeHelper:
    """
    Daily income / savings distribution up a member's own chain:
    the member earns the 'own' rate, the sponsor 'gen1', the sponsor's sponsor 'gen2'...
    Accepted once per member, kind and UTC day.
    """

    @staticmethod
    def plan(user_id: int, kind: str, rates: Optional[BonusConfigHelper] = None):
        """[(label, recipient id, amount)] with zero-amount levels left out."""
        rates = rates or BonusConfigHelper.from_app()
        chain = ReferralTreeHelper.resolve_ancestry(user_id, max_depth=CHAIN_LENGTH, include_self=True)
        planned = []
        for level, recipient_id in chain:
            # include_self numbering starts at 1 for the member
            label = generation_label(level - 1)
            amount = rates.rate(kind, label)
            if amount > 0:
                planned.append((label, recipient_id, amount))
        return planned

    @staticmethod
    def distribute(user_id: int, kind: str, run_date: Optional[date] = None,
                   rates: Optional[BonusConfigHelper] = None) -> Dict[str, Any]:
        if kind not in CHAIN_INCOME_KINDS:
            raise ValidationError(f"Unknown income kind: {kind}")
        if not db.session.get(User, user_id):
            raise NotFound("User not found")

        run_date = run_date or datetime.now(timezone.utc).date()
        planned = ChainIncomeHelper.plan(user_id, kind, rates)
        total = sum((amount for _, _, amount in planned), Decimal("0"))

        try:
            with settlement():
                db.session.add(ChainIncomeRun(
                    user_id=user_id,
                    kind=kind,
                    run_date=run_date,
                    total_distributed=total,
                ))
                db.session.flush()
                for _, recipient_id, amount in planned:
                    AccountLedger.credit(recipient_id, balance=amount)
        except IntegrityError:
            ledger_logger.warning(f"[CHAIN-INCOME] {kind} already distributed for user={user_id} on {run_date}")
            raise AlreadyCollected(f"{kind.replace('_', ' ').capitalize()} already distributed today")

        ledger_logger.info(f"[CHAIN-INCOME] {kind} user={user_id} recipients={len(planned)} total={total}")
        return {
            "userId": user_id,
            "kind": kind,
            "runDate": run_date.isoformat(),
            "distributedBonuses": [
                {"userId": recipient_id, "generation": label, "amount": to_float(amount)}
                for label, recipient_id, amount in planned
            ],
            "totalDistributed": to_float(total),
        }
