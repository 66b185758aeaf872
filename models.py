# models.py - Flask-SQLAlchemy models for users, the sponsor forest and the ledger
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from flask_login import UserMixin
from sqlalchemy import UniqueConstraint, Index, text
from werkzeug.security import check_password_hash, generate_password_hash
from extensions import db
from utils import to_float, safe_isoformat

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class AccountStatus(Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


class UserRole(Enum):
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"


class WithdrawStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SUCCESS = "Success"
    REJECTED = "rejected"


class DepositStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    SUCCESS = "success"


def utcnow():
    return datetime.now(timezone.utc)


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

# ===========================================================
# USER MODEL
# ===========================================================

class User(UserMixin, db.Model, BaseMixin):
    """A member of the sponsor forest together with every balance the ledger touches."""
    __tablename__ = 'users'

    user_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    avatar_url = db.Column(db.String(500), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=UserRole.USER.value, index=True)
    status = db.Column(db.String(20), nullable=False, default=AccountStatus.INACTIVE.value)
    transaction_id = db.Column(db.String(120), nullable=True)

    # Upward edge of the sponsor forest, assigned once at creation
    sponsor_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=True, index=True)

    password_hash = db.Column(db.String(255), nullable=False)
    transaction_pin_hash = db.Column(db.String(255), nullable=True)

    balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"), server_default=text("0"))
    gold_balance = db.Column(db.Numeric(18, 4), nullable=False, default=Decimal("0"), server_default=text("0"))
    generation_bonus = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"), server_default=text("0"))
    savings = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"), server_default=text("0"))
    daily_income = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"), server_default=text("0"))
    agent_balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"), server_default=text("0"))
    total_savings_collected = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"), server_default=text("0"))
    total_generation_bonus_collected = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"), server_default=text("0"))

    member_count = db.Column(db.Integer, nullable=False, default=0)
    rank_bonus = db.Column(db.JSON, nullable=False, default=dict)

    sponsor = db.relationship('User', remote_side=[user_id], backref=db.backref('direct_referrals', lazy='dynamic'))

    def get_id(self):
        return str(self.user_id)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def set_pin(self, pin: str):
        self.transaction_pin_hash = generate_password_hash(str(pin))

    def check_pin(self, pin) -> bool:
        if not self.transaction_pin_hash or pin in (None, ""):
            return False
        return check_password_hash(self.transaction_pin_hash, str(pin))

    @property
    def is_account_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT.value

    def to_dict(self):
        """Serialize user for JSON responses. Secrets never leave the model."""
        return {
            "userId": self.user_id,
            "name": self.name,
            "phone": self.phone,
            "avatarUrl": self.avatar_url,
            "role": self.role,
            "status": self.status,
            "sponsorId": self.sponsor_id,
            "transactionId": self.transaction_id,
            "hasTransactionPin": self.transaction_pin_hash is not None,
            "balance": to_float(self.balance),
            "goldBalance": to_float(self.gold_balance),
            "generationBonus": to_float(self.generation_bonus),
            "savings": to_float(self.savings),
            "dailyIncome": to_float(self.daily_income),
            "agentBalance": to_float(self.agent_balance),
            "memberCount": self.member_count or 0,
            "rankBonus": self.rank_bonus or {},
            "totalSavingsCollected": to_float(self.total_savings_collected),
            "totalGenerationBonusCollected": to_float(self.total_generation_bonus_collected),
            "createdAt": safe_isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.user_id} {self.name}>'


class GenerationSnapshot(db.Model, BaseMixin):
    """
    Ancestor chain frozen at signup (g2..g10 copied from the sponsor's own snapshot).
    Never recomputed; bonus logic always resolves the chain live.
    """
    __tablename__ = 'generations'

    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id', ondelete='CASCADE'), primary_key=True, autoincrement=False)
    sponsor_id = db.Column(db.Integer, nullable=False)
    g2 = db.Column(db.Integer, nullable=True)
    g3 = db.Column(db.Integer, nullable=True)
    g4 = db.Column(db.Integer, nullable=True)
    g5 = db.Column(db.Integer, nullable=True)
    g6 = db.Column(db.Integer, nullable=True)
    g7 = db.Column(db.Integer, nullable=True)
    g8 = db.Column(db.Integer, nullable=True)
    g9 = db.Column(db.Integer, nullable=True)
    g10 = db.Column(db.Integer, nullable=True)

    def to_dict(self):
        result = {"userId": self.user_id, "sponsorId": self.sponsor_id}
        for level in range(2, 11):
            result[f"g{level}"] = getattr(self, f"g{level}")
        return result

# ===========================================================
# BONUS LEDGERS
# ===========================================================

class BonusCollection(db.Model):
    """One row per (recipient, source member, generation); existence means collected."""
    __tablename__ = 'bonus_collections'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    from_user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    generation = db.Column(db.String(10), nullable=False)
    bonus_collect = db.Column(db.Boolean, nullable=False, default=True)
    collected_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    # rates frozen at collection time
    daily_bonus = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))
    gen_bonus = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))
    savings_bonus = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))
    instant_gold = db.Column(db.Numeric(18, 4), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint('user_id', 'from_user_id', 'generation', name='uq_bonus_collection_key'),
    )

    def to_dict(self):
        return {
            "userId": self.user_id,
            "fromUserId": self.from_user_id,
            "generation": self.generation,
            "bonusCollect": self.bonus_collect,
            "collectedAt": safe_isoformat(self.collected_at),
            "dailyBonus": to_float(self.daily_bonus),
            "genBonus": to_float(self.gen_bonus),
            "savingsBonus": to_float(self.savings_bonus),
            "instantGold": to_float(self.instant_gold),
        }


class ChainIncomeRun(db.Model, BaseMixin):
    """Marks a daily-income or savings distribution as done for a user and day."""
    __tablename__ = 'chain_income_runs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    kind = db.Column(db.String(30), nullable=False)
    run_date = db.Column(db.Date, nullable=False)
    total_distributed = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint('user_id', 'kind', 'run_date', name='uq_chain_income_daily'),
    )


class RankRewardClaim(db.Model, BaseMixin):
    __tablename__ = 'rank_reward_claims'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    reward_key = db.Column(db.String(80), nullable=False)
    sar_amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))
    gold_amount = db.Column(db.Numeric(18, 4), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint('user_id', 'reward_key', name='uq_rank_reward_claim'),
    )

# ===========================================================
# WITHDRAWALS, DEPOSITS & TRANSFERS
# ===========================================================

class WithdrawRequest(db.Model, BaseMixin):
    __tablename__ = 'withdraws'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    method = db.Column(db.String(50), nullable=True)
    delivery_address = db.Column(db.String(255), nullable=True)
    account_number = db.Column(db.String(120), nullable=True)
    requested_amount = db.Column(db.Numeric(18, 2), nullable=False)
    charge = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))
    final_amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=WithdrawStatus.PENDING.value, index=True)
    agent_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=True, index=True)
    commission = db.Column(db.Numeric(18, 2), nullable=True)
    refunded_amount = db.Column(db.Numeric(18, 2), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "method": self.method,
            "deliveryAddress": self.delivery_address,
            "accountNumber": self.account_number,
            "requestedAmount": to_float(self.requested_amount),
            "charge": to_float(self.charge),
            "finalAmount": to_float(self.final_amount),
            "status": self.status,
            "agentId": self.agent_id,
            "commission": to_float(self.commission) if self.commission is not None else None,
            "refundedAmount": to_float(self.refunded_amount) if self.refunded_amount is not None else None,
            "createdAt": safe_isoformat(self.created_at),
            "processedAt": safe_isoformat(self.processed_at),
        }


class DepositRequest(db.Model, BaseMixin):
    __tablename__ = 'deposits'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    transaction_id = db.Column(db.String(120), nullable=False)
    agent_number = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=DepositStatus.PENDING.value, index=True)
    accepted_by = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=True)
    commission = db.Column(db.Numeric(18, 2), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "amount": to_float(self.amount),
            "transactionId": self.transaction_id,
            "agentNumber": self.agent_number,
            "status": self.status,
            "acceptedBy": self.accepted_by,
            "commission": to_float(self.commission) if self.commission is not None else None,
            "createdAt": safe_isoformat(self.created_at),
            "completedAt": safe_isoformat(self.completed_at),
        }


class TransferRecord(db.Model, BaseMixin):
    """Append-only log of agent balance -> user balance moves."""
    __tablename__ = 'transfers'

    id = db.Column(db.Integer, primary_key=True)
    from_user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    to_user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "fromUserId": self.from_user_id,
            "toUserId": self.to_user_id,
            "amount": to_float(self.amount),
            "createdAt": safe_isoformat(self.created_at),
        }


class MoneyTransfer(db.Model, BaseMixin):
    """Peer-to-peer send-money log; every send writes a 'send' and a 'receive' row."""
    __tablename__ = 'money_transfers'

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(64), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    counterparty_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False)
    direction = db.Column(db.String(10), nullable=False)  # send, receive
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    charge = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        Index('idx_money_transfer_user_direction', 'user_id', 'direction'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "reference": self.reference,
            "userId": self.user_id,
            "counterpartyId": self.counterparty_id,
            "direction": self.direction,
            "amount": to_float(self.amount),
            "charge": to_float(self.charge),
            "createdAt": safe_isoformat(self.created_at),
        }


class GoldConversion(db.Model, BaseMixin):
    __tablename__ = 'gold_conversions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, index=True)
    grams = db.Column(db.Numeric(18, 4), nullable=False)
    cash_amount = db.Column(db.Numeric(18, 2), nullable=False)
    price_per_gram = db.Column(db.Numeric(18, 2), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "grams": to_float(self.grams),
            "cashAmount": to_float(self.cash_amount),
            "pricePerGram": to_float(self.price_per_gram),
            "createdAt": safe_isoformat(self.created_at),
        }


class Activation(db.Model, BaseMixin):
    __tablename__ = 'activations'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False, unique=True)
    paid_by = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False)
    fee = db.Column(db.Numeric(18, 2), nullable=False)
