"""Tests for agent-settled deposits."""

from decimal import Decimal

import pytest

from extensions import db
from exceptions import InsufficientFunds, Conflict, Unauthorized
from models import User, DepositRequest, DepositStatus, UserRole
from wallet.deposit_helpers import DepositProcessor
from wallet.ledger import AccountLedger


class TestDepositLifecycle:

    @pytest.fixture
    def deposit(self, make_user):
        make_user(1, balance="0")
        make_user(50, role=UserRole.AGENT.value, agent_balance="1000")
        return DepositProcessor.create_request(1, Decimal("500"), "TX-1", "01711111111")

    def test_accept_moves_no_funds(self, app, deposit):
        accepted = DepositProcessor.accept(deposit.id, 50)

        assert accepted.status == DepositStatus.ACCEPTED.value
        assert accepted.accepted_by == 50
        assert AccountLedger.fresh(User, 50).agent_balance == Decimal("1000")
        assert AccountLedger.fresh(User, 1).balance == Decimal("0")

    def test_success_settles_with_commission(self, app, deposit):
        DepositProcessor.accept(deposit.id, 50)

        done = DepositProcessor.complete(deposit.id, 50)

        assert done.status == DepositStatus.SUCCESS.value
        assert done.commission == Decimal("10")
        assert AccountLedger.fresh(User, 1).balance == Decimal("500")
        # 1000 - 500 + 2% of 500
        assert AccountLedger.fresh(User, 50).agent_balance == Decimal("510")

    def test_agent_float_rechecked_at_success(self, app, deposit):
        DepositProcessor.accept(deposit.id, 50)
        AccountLedger.debit(50, "agent_balance", Decimal("600"))
        db.session.commit()

        with pytest.raises(InsufficientFunds):
            DepositProcessor.complete(deposit.id, 50)

        assert AccountLedger.fresh(DepositRequest, deposit.id).status == DepositStatus.ACCEPTED.value
        assert AccountLedger.fresh(User, 1).balance == Decimal("0")

    def test_success_requires_accept(self, app, deposit):
        with pytest.raises(Conflict):
            DepositProcessor.complete(deposit.id, 50)

    def test_success_only_once(self, app, deposit):
        DepositProcessor.accept(deposit.id, 50)
        DepositProcessor.complete(deposit.id, 50)

        with pytest.raises(Conflict):
            DepositProcessor.complete(deposit.id, 50)
        assert AccountLedger.fresh(User, 1).balance == Decimal("500")

    def test_non_agent_rejected(self, app, deposit):
        with pytest.raises(Unauthorized):
            DepositProcessor.accept(deposit.id, 1)
