from decimal import Decimal
from datetime import datetime, timezone
from typing import Optional, List
from flask import current_app, has_app_context
from extensions import db
from exceptions import NotFound, Conflict, Unauthorized, ValidationError
from logger import ledger_logger
from models import User, DepositRequest, DepositStatus
from utils import percent_of
from wallet.ledger import AccountLedger, settlement


def deposit_commission(amount: Decimal) -> Decimal:
    percent = Decimal("2")
    if has_app_context():
        percent = Decimal(str(current_app.config.get("DEPOSIT_COMMISSION_PERCENT", percent)))
    return percent_of(amount, percent)


class DepositProcessor:
    """
    pending -> accepted (agent commits, no funds) -> success
    (agent float debited by amount, user credited, agent re-credited commission).
    """

    @staticmethod
    def create_request(user_id: int, amount: Decimal, transaction_id: str, agent_number: str) -> DepositRequest:
        if not db.session.get(User, user_id):
            raise NotFound("User not found")

        with settlement():
            deposit = DepositRequest(
                user_id=user_id,
                amount=amount,
                transaction_id=transaction_id,
                agent_number=agent_number,
                status=DepositStatus.PENDING.value,
            )
            db.session.add(deposit)

        ledger_logger.info(f"[DEPOSIT] user={user_id} amount={amount} id={deposit.id}")
        return deposit

    @staticmethod
    def _agent(agent_id) -> User:
        if agent_id is None:
            raise ValidationError("Missing agentId")
        agent = db.session.get(User, agent_id)
        if not agent:
            raise NotFound("Agent not found")
        if not agent.is_agent:
            raise Unauthorized("User is not an agent")
        return agent

    @staticmethod
    def _deposit(deposit_id: int) -> DepositRequest:
        deposit = db.session.get(DepositRequest, deposit_id)
        if not deposit:
            raise NotFound("Deposit request not found")
        return deposit

    @staticmethod
    def accept(deposit_id: int, agent_id: int) -> DepositRequest:
        DepositProcessor._agent(agent_id)
        deposit = DepositProcessor._deposit(deposit_id)

        with settlement():
            moved = AccountLedger.transition(
                DepositRequest, deposit_id,
                [DepositStatus.PENDING.value],
                status=DepositStatus.ACCEPTED.value,
                accepted_by=agent_id,
            )
            if not moved:
                raise Conflict(f"Deposit request is {deposit.status}, not pending")

        ledger_logger.info(f"[DEPOSIT] id={deposit_id} accepted by agent={agent_id}")
        return AccountLedger.fresh(DepositRequest, deposit_id)

    @staticmethod
    def complete(deposit_id: int, agent_id: int) -> DepositRequest:
        """Settle an accepted deposit against the agent's float; the float is checked here, not at accept."""
        DepositProcessor._agent(agent_id)
        deposit = DepositProcessor._deposit(deposit_id)
        if deposit.accepted_by is not None and deposit.accepted_by != agent_id:
            raise Conflict("Deposit request was accepted by another agent")

        amount = Decimal(deposit.amount)
        commission = deposit_commission(amount)

        try:
            with settlement():
                moved = AccountLedger.transition(
                    DepositRequest, deposit_id,
                    [DepositStatus.ACCEPTED.value],
                    status=DepositStatus.SUCCESS.value,
                    commission=commission,
                    completed_at=datetime.now(timezone.utc),
                )
                if not moved:
                    raise Conflict(f"Deposit request is {deposit.status}, not accepted")
                AccountLedger.debit(agent_id, "agent_balance", amount, "Insufficient agent balance")
                AccountLedger.credit(deposit.user_id, balance=amount)
                AccountLedger.credit(agent_id, agent_balance=commission)
        except Exception as e:
            ledger_logger.warning(f"[DEPOSIT] id={deposit_id} settlement rejected: {e}")
            raise

        ledger_logger.info(f"[DEPOSIT] id={deposit_id} settled by agent={agent_id} amount={amount} commission={commission}")
        return AccountLedger.fresh(DepositRequest, deposit_id)

    @staticmethod
    def list_deposits(status: Optional[str] = None, user_id: Optional[int] = None) -> List[DepositRequest]:
        query = DepositRequest.query
        if status:
            query = query.filter(DepositRequest.status == status)
        if user_id:
            query = query.filter(DepositRequest.user_id == user_id)
        return query.order_by(DepositRequest.created_at.desc(), DepositRequest.id.desc()).all()
