from flask import Blueprint, jsonify, request
from extensions import db
from exceptions import NotFound, ValidationError
from models import User
from utils import parse_user_id, to_float
from bonus.rate_tables import BonusConfigHelper, GENERATION, DAILY_INCOME, SAVINGS_INCOME, generation_label
from bonus.referral_tree import ReferralTreeHelper
from bonus.bonus_collection import BonusCollectionHelper
from bonus.chain_income import ChainIncomeHelper
import logging


logger = logging.getLogger(__name__)

bp = Blueprint("bonus", __name__, url_prefix="/api/bonus")


# ----------------------------------------------------------------------------------
# RATE TABLES & SPONSOR CHAIN
# ----------------------------------------------------------------------------------
@bp.route("/rates", methods=["GET"])
def get_rates():
    return jsonify({"success": True, "rates": BonusConfigHelper.from_app().get_bonus_distribution_summary()}), 200


@bp.route("/<int:user_id>", methods=["GET"])
def get_bonus_chain(user_id):
    """Ancestors of user_id with the generation bonus each one earns from this member."""
    if not db.session.get(User, user_id):
        raise NotFound("User not found")

    rates = BonusConfigHelper.from_app()
    chain = []
    for level, ancestor_id in ReferralTreeHelper.resolve_ancestry(user_id):
        label = generation_label(level)
        chain.append({
            "generation": label,
            "userId": ancestor_id,
            "bonus": to_float(rates.rate(GENERATION, label)),
        })
    return jsonify({"success": True, "userId": user_id, "bonuses": chain}), 200

# ----------------------------------------------------------------------------------
# PER-MEMBER COLLECTION
# ----------------------------------------------------------------------------------
@bp.route("/by-generation/<int:user_id>", methods=["GET"])
def bonus_by_generation(user_id):
    entitlements = BonusCollectionHelper.entitlements(user_id)
    by_generation = {}
    for row in entitlements:
        by_generation.setdefault(row["generation"], []).append(row)
    return jsonify({
        "success": True,
        "userId": user_id,
        "totalMembers": len(entitlements),
        "generations": by_generation,
        "totals": BonusCollectionHelper.totals(user_id),
    }), 200


@bp.route("/collect", methods=["POST"])
def collect_bonus():
    data = request.get_json(silent=True) or {}
    if data.get("userId") in (None, "") or data.get("fromUserId") in (None, "") or not data.get("generation"):
        raise ValidationError("Missing userId, fromUserId or generation")

    result = BonusCollectionHelper.collect(
        parse_user_id(data.get("userId")),
        parse_user_id(data.get("fromUserId"), "fromUserId"),
        data.get("generation"),
    )
    return jsonify({"success": True, "message": "Bonus collected successfully", **result}), 200


@bp.route("/history/<int:user_id>", methods=["GET"])
def collection_history(user_id):
    return jsonify({"success": True, "userId": user_id, "collections": BonusCollectionHelper.history(user_id)}), 200

# ----------------------------------------------------------------------------------
# CHAIN INCOME
# ----------------------------------------------------------------------------------
@bp.route("/daily-income/<int:user_id>", methods=["POST"])
def distribute_daily_income(user_id):
    result = ChainIncomeHelper.distribute(user_id, DAILY_INCOME)
    return jsonify({"success": True, **result}), 200


@bp.route("/savings/<int:user_id>", methods=["POST"])
def distribute_savings(user_id):
    result = ChainIncomeHelper.distribute(user_id, SAVINGS_INCOME)
    return jsonify({"success": True, **result}), 200
