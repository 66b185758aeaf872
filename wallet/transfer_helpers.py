import uuid
from decimal import Decimal, ROUND_UP, ROUND_DOWN
from typing import Dict, Any
from flask import current_app, has_app_context
from extensions import db
from exceptions import NotFound, Unauthorized, ValidationError
from logger import ledger_logger
from models import User, TransferRecord, MoneyTransfer, GoldConversion
from utils import percent_of, to_float, CENTS, MILLIGRAMS
from wallet.ledger import AccountLedger, settlement


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def gold_price() -> Decimal:
    return Decimal(str(_config("GOLD_PRICE_PER_GRAM", "250")))


def grams_for_cash(amount: Decimal, price: Decimal) -> Decimal:
    """Gold needed to pay out amount in cash, rounded up so cash is always covered."""
    return (amount / price).quantize(MILLIGRAMS, rounding=ROUND_UP)


def cash_for_grams(grams: Decimal, price: Decimal) -> Decimal:
    return (grams * price).quantize(CENTS, rounding=ROUND_DOWN)


def _user(user_id: int, message: str = "User not found") -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound(message)
    return user


class TransferHelper:

    @staticmethod
    def agent_transfer(agent_id: int, user_id: int, amount: Decimal) -> TransferRecord:
        """Move agent float into a user's cash balance."""
        agent = _user(agent_id, "Agent not found")
        if not agent.is_agent:
            raise Unauthorized("User is not an agent")
        _user(user_id, "Recipient not found")

        try:
            with settlement():
                AccountLedger.debit(agent_id, "agent_balance", amount, "Insufficient agent balance")
                AccountLedger.credit(user_id, balance=amount)
                record = TransferRecord(from_user_id=agent_id, to_user_id=user_id, amount=amount)
                db.session.add(record)
        except Exception as e:
            ledger_logger.warning(f"[TRANSFER] agent={agent_id} -> user={user_id} amount={amount} rejected: {e}")
            raise

        ledger_logger.info(f"[TRANSFER] agent={agent_id} -> user={user_id} amount={amount}")
        return record

    @staticmethod
    def send_money(sender_id: int, receiver_id: int, amount: Decimal, pin) -> Dict[str, Any]:
        """Peer to peer; the sender pays the fee, the receiver gets the full amount."""
        if sender_id == receiver_id:
            raise ValidationError("Cannot send money to yourself")
        sender = _user(sender_id, "Sender not found")
        _user(receiver_id, "Receiver not found")
        if not sender.check_pin(pin):
            raise Unauthorized("Invalid transaction PIN")

        charge = percent_of(amount, Decimal(str(_config("SEND_MONEY_FEE_PERCENT", "1"))))
        total_deduction = amount + charge
        reference = uuid.uuid4().hex

        try:
            with settlement():
                AccountLedger.debit(sender_id, "balance", total_deduction)
                AccountLedger.credit(receiver_id, balance=amount)
                db.session.add_all([
                    MoneyTransfer(reference=reference, user_id=sender_id, counterparty_id=receiver_id,
                                  direction="send", amount=amount, charge=charge),
                    MoneyTransfer(reference=reference, user_id=receiver_id, counterparty_id=sender_id,
                                  direction="receive", amount=amount, charge=Decimal("0")),
                ])
        except Exception as e:
            ledger_logger.warning(f"[SEND-MONEY] {sender_id} -> {receiver_id} amount={amount} rejected: {e}")
            raise

        ledger_logger.info(f"[SEND-MONEY] {sender_id} -> {receiver_id} amount={amount} charge={charge} ref={reference}")
        sender = AccountLedger.fresh(User, sender_id)
        return {
            "reference": reference,
            "amount": to_float(amount),
            "charge": to_float(charge),
            "totalDeduction": to_float(total_deduction),
            "balance": to_float(sender.balance),
        }


class GoldHelper:

    @staticmethod
    def withdraw_sar(user_id: int, amount: Decimal) -> GoldConversion:
        """Cash out a SAR amount, paid for with the equivalent grams of gold."""
        _user(user_id)
        price = gold_price()
        grams = grams_for_cash(amount, price)

        try:
            with settlement():
                AccountLedger.debit(user_id, "gold_balance", grams, "Insufficient gold balance")
                AccountLedger.credit(user_id, balance=amount)
                conversion = GoldConversion(user_id=user_id, grams=grams, cash_amount=amount, price_per_gram=price)
                db.session.add(conversion)
        except Exception as e:
            ledger_logger.warning(f"[GOLD] user={user_id} withdraw-sar {amount} rejected: {e}")
            raise

        ledger_logger.info(f"[GOLD] user={user_id} sold {grams}g for {amount}")
        return conversion

    @staticmethod
    def withdraw_gold(user_id: int, grams: Decimal) -> GoldConversion:
        """Sell a number of grams at the configured price."""
        _user(user_id)
        price = gold_price()
        grams = Decimal(str(grams)).quantize(MILLIGRAMS, rounding=ROUND_DOWN)
        cash = cash_for_grams(grams, price)
        if cash <= 0:
            raise ValidationError("Gold amount is too small to sell")

        try:
            with settlement():
                AccountLedger.debit(user_id, "gold_balance", grams, "Insufficient gold balance")
                AccountLedger.credit(user_id, balance=cash)
                conversion = GoldConversion(user_id=user_id, grams=grams, cash_amount=cash, price_per_gram=price)
                db.session.add(conversion)
        except Exception as e:
            ledger_logger.warning(f"[GOLD] user={user_id} withdraw-gold {grams}g rejected: {e}")
            raise

        ledger_logger.info(f"[GOLD] user={user_id} sold {grams}g for {cash}")
        return conversion
