from decimal import Decimal
from datetime import datetime, timezone
from typing import Tuple, Optional, List
import logging
from flask import current_app, has_app_context
from sqlalchemy import select
from extensions import db
from exceptions import NotFound, Conflict, Unauthorized, ValidationError
from logger import ledger_logger
from models import User, WithdrawRequest, WithdrawStatus
from utils import percent_of
from wallet.ledger import AccountLedger, settlement


logger = logging.getLogger(__name__)

# ==========================================================
#                  CONFIGURATION
# ==========================================================
class WithdrawalConfig:
    PROCESSING_FEE_PERCENT = Decimal("5")
    AGENT_COMMISSION_PERCENT = Decimal("5")
    REFUND_INCLUDES_FEE = False

    @staticmethod
    def _get(key, default):
        if has_app_context():
            return current_app.config.get(key, default)
        return default

    @staticmethod
    def calculate_fee(amount: Decimal) -> Decimal:
        """Calculate processing fee"""
        percent = Decimal(str(WithdrawalConfig._get("WITHDRAW_FEE_PERCENT", WithdrawalConfig.PROCESSING_FEE_PERCENT)))
        return percent_of(amount, percent)

    @staticmethod
    def calculate_commission(amount: Decimal) -> Decimal:
        percent = Decimal(str(WithdrawalConfig._get("WITHDRAW_COMMISSION_PERCENT", WithdrawalConfig.AGENT_COMMISSION_PERCENT)))
        return percent_of(amount, percent)

    @staticmethod
    def refund_includes_fee() -> bool:
        return bool(WithdrawalConfig._get("WITHDRAW_REFUND_INCLUDES_FEE", WithdrawalConfig.REFUND_INCLUDES_FEE))

# ==========================================================
#                  LEGACY POOL DRAINING
# ==========================================================
def drain_pools(savings: Decimal, daily: Decimal, generation: Decimal, amount: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Drain savings, then daily income, then generation bonus until amount is covered.
    When the three pools together cannot cover amount, all three are zeroed.
    """
    if savings + daily + generation < amount:
        return Decimal("0"), Decimal("0"), Decimal("0")

    remaining = amount
    pools = []
    for pool in (savings, daily, generation):
        taken = min(pool, remaining)
        pools.append(pool - taken)
        remaining -= taken
    return pools[0], pools[1], pools[2]

# ==========================================================
#                  HELPERS
# ==========================================================
def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _get_agent(agent_id) -> User:
    if agent_id is None:
        raise ValidationError("Missing agentId")
    agent = db.session.get(User, agent_id)
    if not agent:
        raise NotFound("Agent not found")
    if not agent.is_agent:
        raise Unauthorized("User is not an agent")
    return agent


def _get_withdraw(withdraw_id: int) -> WithdrawRequest:
    withdraw = db.session.get(WithdrawRequest, withdraw_id)
    if not withdraw:
        raise NotFound("Withdraw request not found")
    return withdraw


def _verify_pin(user: User, pin):
    if not user.transaction_pin_hash:
        raise Unauthorized("Transaction PIN not set")
    if not user.check_pin(pin):
        raise Unauthorized("Invalid transaction PIN")

# ==========================================================
#                  MAIN WITHDRAWAL PROCESSOR
# ==========================================================
class WithdrawalProcessor:
    """
    Agent-settled cash withdrawals.
    Pending (amount + fee escrowed from balance) -> Processing (agent claimed)
    -> Success (agent paid amount + commission) or rejected (refund).
    """

    @staticmethod
    def create_request(user_id: int, amount: Decimal, pin, method: Optional[str] = None,
                       delivery_address: Optional[str] = None, account_number: Optional[str] = None) -> WithdrawRequest:
        user = _get_user(user_id)
        _verify_pin(user, pin)

        charge = WithdrawalConfig.calculate_fee(amount)
        total_deduction = amount + charge

        try:
            with settlement():
                AccountLedger.debit(user_id, "balance", total_deduction)
                withdraw = WithdrawRequest(
                    user_id=user_id,
                    method=method,
                    delivery_address=delivery_address,
                    account_number=account_number,
                    requested_amount=amount,
                    charge=charge,
                    final_amount=amount,
                    status=WithdrawStatus.PENDING.value,
                )
                db.session.add(withdraw)
        except Exception as e:
            ledger_logger.warning(f"[WITHDRAW] rejected user={user_id} amount={amount}: {e}")
            raise

        ledger_logger.info(f"[WITHDRAW] user={user_id} amount={amount} charge={charge} id={withdraw.id}")
        return withdraw

    @staticmethod
    def accept(withdraw_id: int, agent_id: int) -> WithdrawRequest:
        """Agent claims a pending request. No funds move."""
        _get_agent(agent_id)
        withdraw = _get_withdraw(withdraw_id)

        with settlement():
            moved = AccountLedger.transition(
                WithdrawRequest, withdraw_id,
                [WithdrawStatus.PENDING.value],
                status=WithdrawStatus.PROCESSING.value,
                agent_id=agent_id,
            )
            if not moved:
                raise Conflict(f"Withdraw request is {withdraw.status}, not Pending")

        ledger_logger.info(f"[WITHDRAW] id={withdraw_id} accepted by agent={agent_id}")
        return AccountLedger.fresh(WithdrawRequest, withdraw_id)

    @staticmethod
    def complete(withdraw_id: int, agent_id: int) -> WithdrawRequest:
        """Agent confirms payout and is credited final amount plus commission."""
        _get_agent(agent_id)
        withdraw = _get_withdraw(withdraw_id)
        if withdraw.agent_id is not None and withdraw.agent_id != agent_id:
            raise Conflict("Withdraw request was accepted by another agent")

        commission = WithdrawalConfig.calculate_commission(withdraw.final_amount)
        payout = withdraw.final_amount + commission

        with settlement():
            moved = AccountLedger.transition(
                WithdrawRequest, withdraw_id,
                [WithdrawStatus.PROCESSING.value],
                status=WithdrawStatus.SUCCESS.value,
                commission=commission,
                processed_at=datetime.now(timezone.utc),
            )
            if not moved:
                raise Conflict(f"Withdraw request is {withdraw.status}, not Processing")
            AccountLedger.credit(agent_id, agent_balance=payout)

        ledger_logger.info(f"[WITHDRAW] id={withdraw_id} completed by agent={agent_id} payout={payout}")
        return AccountLedger.fresh(WithdrawRequest, withdraw_id)

    @staticmethod
    def reject(withdraw_id: int) -> WithdrawRequest:
        """Admin rejection; refunds the requested amount (plus fee when configured)."""
        withdraw = _get_withdraw(withdraw_id)
        refund = withdraw.requested_amount
        if WithdrawalConfig.refund_includes_fee():
            refund += withdraw.charge

        with settlement():
            moved = AccountLedger.transition(
                WithdrawRequest, withdraw_id,
                [WithdrawStatus.PENDING.value, WithdrawStatus.PROCESSING.value],
                status=WithdrawStatus.REJECTED.value,
                refunded_amount=refund,
                processed_at=datetime.now(timezone.utc),
            )
            if not moved:
                raise Conflict(f"Withdraw request is already {withdraw.status}")
            AccountLedger.credit(withdraw.user_id, balance=refund)

        ledger_logger.info(f"[WITHDRAW] id={withdraw_id} rejected, refunded {refund} to user={withdraw.user_id}")
        return AccountLedger.fresh(WithdrawRequest, withdraw_id)

    @staticmethod
    def withdraw_from_pools(user_id: int, amount: Decimal, method: Optional[str] = None,
                            delivery_address: Optional[str] = None, account_number: Optional[str] = None) -> WithdrawRequest:
        """Legacy flow: debit balance and drain savings -> daily income -> generation bonus."""
        _get_user(user_id)

        try:
            with settlement():
                user = db.session.execute(
                    select(User)
                    .where(User.user_id == user_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()
                savings, daily, generation = drain_pools(
                    Decimal(user.savings or 0),
                    Decimal(user.daily_income or 0),
                    Decimal(user.generation_bonus or 0),
                    amount,
                )
                AccountLedger.debit(user_id, "balance", amount)
                user.savings = savings
                user.daily_income = daily
                user.generation_bonus = generation

                withdraw = WithdrawRequest(
                    user_id=user_id,
                    method=method or "pools",
                    delivery_address=delivery_address,
                    account_number=account_number,
                    requested_amount=amount,
                    charge=Decimal("0"),
                    final_amount=amount,
                    status=WithdrawStatus.PENDING.value,
                )
                db.session.add(withdraw)
        except Exception as e:
            ledger_logger.warning(f"[WITHDRAW-POOLS] rejected user={user_id} amount={amount}: {e}")
            raise

        ledger_logger.info(f"[WITHDRAW-POOLS] user={user_id} amount={amount} id={withdraw.id}")
        return withdraw

# ==========================================================
#                  QUERY HELPERS
# ==========================================================
class WithdrawalQueryHelper:
    @staticmethod
    def list_withdrawals(status: Optional[str] = None, user_id: Optional[int] = None) -> List[WithdrawRequest]:
        query = WithdrawRequest.query
        if status:
            query = query.filter(WithdrawRequest.status == status)
        if user_id:
            query = query.filter(WithdrawRequest.user_id == user_id)
        return query.order_by(WithdrawRequest.created_at.desc(), WithdrawRequest.id.desc()).all()
