# ==========================================================================================================
# -------------- Configuration file for the Fulus Flask application ----------------------------------------
# ==========================================================================================================
import os
from decimal import Decimal
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _decimal_env(name, default):
    return Decimal(os.getenv(name, default))


class Config:

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        raise ValueError("SECRET_KEY must be set in production")

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")
    LOG_DIR = os.getenv("LOG_DIR", "logs")

    _database_url = os.getenv("DATABASE_URL")
    if not _database_url:
        _database_url = f"sqlite:///{os.path.join(basedir, 'instance', 'fulus.db')}"

    if _database_url.startswith("postgres://"):
        _database_url = _database_url.replace("postgres://", "postgresql+pg8000://", 1)

    SQLALCHEMY_DATABASE_URI = _database_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    if not _database_url.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS.update({"pool_size": 10, "max_overflow": 20})

    # ------------------------------------------------------------------------------------------
    # Referral tree
    # ------------------------------------------------------------------------------------------
    MAX_GENERATION_DEPTH = int(os.getenv("MAX_GENERATION_DEPTH", "10"))

    # per-kind overrides of DEFAULT_RATE_VERSIONS in bonus/rate_tables.py, e.g. {"daily": "v2"}
    BONUS_RATE_VERSIONS = None
    BONUS_RATE_TABLES = None
    RANK_TIERS = None

    # ------------------------------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------------------------------
    WITHDRAW_FEE_PERCENT = _decimal_env("WITHDRAW_FEE_PERCENT", "5")
    WITHDRAW_COMMISSION_PERCENT = _decimal_env("WITHDRAW_COMMISSION_PERCENT", "5")
    WITHDRAW_REFUND_INCLUDES_FEE = os.getenv("WITHDRAW_REFUND_INCLUDES_FEE", "False").lower() in ("true", "1", "t")
    DEPOSIT_COMMISSION_PERCENT = _decimal_env("DEPOSIT_COMMISSION_PERCENT", "2")
    SEND_MONEY_FEE_PERCENT = _decimal_env("SEND_MONEY_FEE_PERCENT", "1")
    ACTIVATION_FEE = _decimal_env("ACTIVATION_FEE", "599")
    GOLD_PRICE_PER_GRAM = _decimal_env("GOLD_PRICE_PER_GRAM", "250")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_DIR = os.getenv("LOG_DIR", os.path.join(basedir, "logs"))
