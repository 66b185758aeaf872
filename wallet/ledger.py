from contextlib import contextmanager
from decimal import Decimal
from typing import Iterable
from sqlalchemy import update, func
from extensions import db
from exceptions import NotFound, InsufficientFunds
from models import User
import logging


logger = logging.getLogger(__name__)

BALANCE_FIELDS = (
    "balance",
    "gold_balance",
    "generation_bonus",
    "savings",
    "daily_income",
    "agent_balance",
    "total_savings_collected",
    "total_generation_bonus_collected",
)


@contextmanager
def settlement():
    """
    One database transaction per settlement: every debit, credit and audit row
    inside the block commits together or not at all.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


class AccountLedger:
    """
    Balance mutations expressed as single conditional UPDATE statements.
    Never read a balance and write it back: the WHERE clause carries the check.
    """

    @staticmethod
    def _column(field: str):
        if field not in BALANCE_FIELDS:
            raise ValueError(f"Unknown balance field: {field}")
        return getattr(User, field)

    @staticmethod
    def _quantize(column, amount) -> Decimal:
        return Decimal(str(amount)).quantize(Decimal(1).scaleb(-column.type.scale))

    @staticmethod
    def _ensure_user(user_id: int):
        if db.session.get(User, user_id) is None:
            raise NotFound("User not found")

    @staticmethod
    def debit(user_id: int, field: str, amount: Decimal, message: str = "Insufficient balance"):
        """Decrement field by amount only if the current value covers it."""
        column = AccountLedger._column(field)
        scale = column.type.scale
        amount = AccountLedger._quantize(column, amount)
        # sqlite keeps Numeric as REAL; compare and store at the column scale
        result = db.session.execute(
            update(User)
            .where(User.user_id == user_id, func.round(column, scale, type_=column.type) >= amount)
            .values(**{field: func.round(column - amount, scale, type_=column.type)})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            AccountLedger._ensure_user(user_id)
            raise InsufficientFunds(message)
        logger.debug(f"debit user={user_id} {field} -{amount}")

    @staticmethod
    def credit(user_id: int, **deltas: Decimal):
        """Increment one or more balance fields of a user in one statement."""
        values = {}
        for field, amount in deltas.items():
            column = AccountLedger._column(field)
            values[field] = func.round(
                column + AccountLedger._quantize(column, amount), column.type.scale, type_=column.type
            )
        if not values:
            return
        result = db.session.execute(
            update(User)
            .where(User.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFound("User not found")
        logger.debug(f"credit user={user_id} {deltas}")

    @staticmethod
    def transition(model, record_id: int, from_statuses: Iterable[str], **values) -> bool:
        """Move a request row to a new status only if it is still in one of from_statuses."""
        result = db.session.execute(
            update(model)
            .where(model.id == record_id, model.status.in_(list(from_statuses)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def activate(user_id: int, from_status: str, to_status: str) -> bool:
        result = db.session.execute(
            update(User)
            .where(User.user_id == user_id, User.status == from_status)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def fresh(model, record_id):
        """Reload a row after conditional updates bypassed the identity map."""
        return db.session.get(model, record_id, populate_existing=True)
