"""Tests for agent transfers, peer-to-peer send-money and gold conversion."""

from decimal import Decimal

import pytest

from exceptions import InsufficientFunds, Unauthorized, ValidationError
from models import User, MoneyTransfer, TransferRecord, GoldConversion, UserRole
from wallet.ledger import AccountLedger
from wallet.transfer_helpers import TransferHelper, GoldHelper, grams_for_cash, cash_for_grams


class TestSendMoney:

    def test_sender_pays_fee(self, app, make_user):
        make_user(1, balance="1000", pin="1234")
        make_user(2, balance="1000")

        result = TransferHelper.send_money(1, 2, Decimal("100"), "1234")

        assert AccountLedger.fresh(User, 1).balance == Decimal("899")
        assert AccountLedger.fresh(User, 2).balance == Decimal("1100")
        assert result["charge"] == 1.0

    def test_writes_send_and_receive_rows(self, app, make_user):
        make_user(1, balance="1000", pin="1234")
        make_user(2)

        result = TransferHelper.send_money(1, 2, Decimal("100"), "1234")

        rows = MoneyTransfer.query.filter_by(reference=result["reference"]).all()
        assert sorted(r.direction for r in rows) == ["receive", "send"]

    def test_insufficient_balance_no_mutation(self, app, make_user):
        make_user(1, balance="100", pin="1234")
        make_user(2, balance="0")

        with pytest.raises(InsufficientFunds):
            TransferHelper.send_money(1, 2, Decimal("100"), "1234")

        assert AccountLedger.fresh(User, 1).balance == Decimal("100")
        assert AccountLedger.fresh(User, 2).balance == Decimal("0")
        assert MoneyTransfer.query.count() == 0

    def test_wrong_pin(self, app, make_user):
        make_user(1, balance="1000", pin="1234")
        make_user(2)

        with pytest.raises(Unauthorized):
            TransferHelper.send_money(1, 2, Decimal("100"), "0000")
        assert AccountLedger.fresh(User, 1).balance == Decimal("1000")

    def test_cannot_send_to_self(self, app, make_user):
        make_user(1, balance="1000", pin="1234")

        with pytest.raises(ValidationError):
            TransferHelper.send_money(1, 1, Decimal("10"), "1234")


class TestAgentTransfer:

    def test_moves_agent_float_to_user_balance(self, app, make_user):
        make_user(50, role=UserRole.AGENT.value, agent_balance="300")
        make_user(1)

        TransferHelper.agent_transfer(50, 1, Decimal("120"))

        assert AccountLedger.fresh(User, 50).agent_balance == Decimal("180")
        assert AccountLedger.fresh(User, 1).balance == Decimal("120")
        assert TransferRecord.query.count() == 1

    def test_insufficient_float(self, app, make_user):
        make_user(50, role=UserRole.AGENT.value, agent_balance="100")
        make_user(1)

        with pytest.raises(InsufficientFunds):
            TransferHelper.agent_transfer(50, 1, Decimal("120"))

        assert AccountLedger.fresh(User, 1).balance == Decimal("0")
        assert TransferRecord.query.count() == 0

    def test_source_must_be_agent(self, app, make_user):
        make_user(2, agent_balance="500")
        make_user(1)

        with pytest.raises(Unauthorized):
            TransferHelper.agent_transfer(2, 1, Decimal("10"))


class TestGold:

    def test_price_conversions(self):
        assert grams_for_cash(Decimal("100"), Decimal("250")) == Decimal("0.4000")
        assert grams_for_cash(Decimal("1"), Decimal("3")) == Decimal("0.3334")
        assert cash_for_grams(Decimal("0.5"), Decimal("250")) == Decimal("125.00")

    def test_withdraw_sar_debits_gold(self, app, make_user):
        make_user(1, gold_balance="1")

        conversion = GoldHelper.withdraw_sar(1, Decimal("100"))

        user = AccountLedger.fresh(User, 1)
        assert user.gold_balance == Decimal("0.6")
        assert user.balance == Decimal("100")
        assert conversion.grams == Decimal("0.4")

    def test_withdraw_gold_credits_cash(self, app, make_user):
        make_user(1, gold_balance="2.5")

        GoldHelper.withdraw_gold(1, Decimal("2"))

        user = AccountLedger.fresh(User, 1)
        assert user.gold_balance == Decimal("0.5")
        assert user.balance == Decimal("500")

    def test_sale_worth_less_than_a_cent_is_refused(self, app, make_user):
        make_user(1, gold_balance="1")

        with pytest.raises(ValidationError):
            GoldHelper.withdraw_gold(1, Decimal("0.00001"))

        user = AccountLedger.fresh(User, 1)
        assert user.gold_balance == Decimal("1")
        assert user.balance == Decimal("0")
        assert GoldConversion.query.count() == 0

    def test_not_enough_gold(self, app, make_user):
        make_user(1, gold_balance="0.1")

        with pytest.raises(InsufficientFunds):
            GoldHelper.withdraw_sar(1, Decimal("100"))

        assert AccountLedger.fresh(User, 1).balance == Decimal("0")
        assert GoldConversion.query.count() == 0
