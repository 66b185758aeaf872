from decimal import Decimal
from typing import Optional
from flask import current_app, has_app_context
from extensions import db
from exceptions import NotFound, AlreadyActive, Unauthorized
from logger import ledger_logger
from models import User, Activation, AccountStatus
from wallet.ledger import AccountLedger, settlement


def activation_fee() -> Decimal:
    fee = "599"
    if has_app_context():
        fee = current_app.config.get("ACTIVATION_FEE", fee)
    return Decimal(str(fee))


class ActivationHelper:

    @staticmethod
    def activate(user_id: int, payer_id: Optional[int] = None) -> Activation:
        """
        Self-funded when payer_id is None or equals user_id, otherwise paid by the sponsor.
        The status flip and the fee debit commit together.
        """
        user = db.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        payer_id = payer_id or user_id
        if payer_id != user_id:
            if not db.session.get(User, payer_id):
                raise NotFound("Sponsor not found")
            if user.sponsor_id != payer_id:
                raise Unauthorized("Only the sponsor can activate this account")
        if user.is_account_active:
            raise AlreadyActive()

        fee = activation_fee()
        try:
            with settlement():
                if not AccountLedger.activate(user_id, AccountStatus.INACTIVE.value, AccountStatus.ACTIVE.value):
                    raise AlreadyActive()
                AccountLedger.debit(payer_id, "balance", fee)
                activation = Activation(user_id=user_id, paid_by=payer_id, fee=fee)
                db.session.add(activation)
        except Exception as e:
            ledger_logger.warning(f"[ACTIVATE] user={user_id} payer={payer_id} rejected: {e}")
            raise

        ledger_logger.info(f"[ACTIVATE] user={user_id} paid_by={payer_id} fee={fee}")
        return activation
