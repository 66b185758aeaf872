"""Tests for conditional balance updates and request parsing."""

from decimal import Decimal

import pytest

from exceptions import InsufficientFunds, ValidationError
from models import User
from utils import parse_user_id, parse_amount, parse_grams
from wallet.ledger import AccountLedger, settlement


class TestAccountLedger:

    def test_cent_debits_spend_the_exact_remainder(self, app, make_user):
        make_user(1, balance="0.7")

        with settlement():
            AccountLedger.debit(1, "balance", Decimal("0.40"))
        assert AccountLedger.fresh(User, 1).balance == Decimal("0.30")

        with settlement():
            AccountLedger.debit(1, "balance", Decimal("0.30"))
        assert AccountLedger.fresh(User, 1).balance == Decimal("0")

    def test_repeated_cent_credits_stay_exact(self, app, make_user):
        make_user(1)

        for _ in range(10):
            with settlement():
                AccountLedger.credit(1, balance=Decimal("0.10"))

        with settlement():
            AccountLedger.debit(1, "balance", Decimal("1.00"))
        assert AccountLedger.fresh(User, 1).balance == Decimal("0")

    def test_one_cent_over_is_refused(self, app, make_user):
        make_user(1, balance="0.3")

        with pytest.raises(InsufficientFunds):
            with settlement():
                AccountLedger.debit(1, "balance", Decimal("0.31"))
        assert AccountLedger.fresh(User, 1).balance == Decimal("0.30")

    def test_gold_keeps_four_places(self, app, make_user):
        make_user(1, gold_balance="0.3")

        with settlement():
            AccountLedger.debit(1, "gold_balance", Decimal("0.1001"))
            AccountLedger.debit(1, "gold_balance", Decimal("0.1999"))
        assert AccountLedger.fresh(User, 1).gold_balance == Decimal("0")


class TestParsing:

    def test_user_id_must_be_whole(self):
        assert parse_user_id(7.0) == 7
        assert parse_user_id("12") == 12
        with pytest.raises(ValidationError):
            parse_user_id(1.9)
        with pytest.raises(ValidationError):
            parse_user_id("1.9")

    def test_amount_rejects_sub_cent_values(self):
        assert parse_amount("10.25") == Decimal("10.25")
        with pytest.raises(ValidationError):
            parse_amount("0.005")
        with pytest.raises(ValidationError):
            parse_amount(0)

    def test_grams_allow_four_places(self):
        assert parse_grams("2.10g") == Decimal("2.10")
        assert parse_grams(0.0001) == Decimal("0.0001")
        with pytest.raises(ValidationError):
            parse_grams("0.00001")
