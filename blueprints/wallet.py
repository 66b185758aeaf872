from datetime import datetime
from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from blueprints.auth import agent_required
from extensions import db
from exceptions import NotFound, ValidationError, Unauthorized
from models import User, DepositRequest, WithdrawRequest
from utils import parse_user_id, parse_amount, parse_grams, to_float
from wallet.transfer_helpers import TransferHelper, GoldHelper
from wallet.activation import ActivationHelper
from wallet.ledger import AccountLedger


bp = Blueprint("wallet", __name__, url_prefix="/api")


# ----------------------------------------------------------------------------------
# TRANSFERS
# ----------------------------------------------------------------------------------
@bp.route("/transfer", methods=["POST"])
@agent_required
def agent_transfer():
    """Moves the logged-in agent's float. Expected JSON: {"toUserId": 1001, "amount": 100}"""
    data = request.get_json(silent=True) or {}
    record = TransferHelper.agent_transfer(
        current_user.user_id,
        parse_user_id(data.get("toUserId"), "toUserId"),
        parse_amount(data.get("amount")),
    )
    return jsonify({"success": True, "message": "Transfer successful", "transfer": record.to_dict()}), 200


@bp.route("/send-money", methods=["POST"])
def send_money():
    """Expected JSON: {"senderId": 1001, "receiverId": 1002, "amount": 100, "pin": "1234"}"""
    data = request.get_json(silent=True) or {}
    pin = data.get("pin", data.get("transactionPin"))
    if pin in (None, ""):
        raise ValidationError("Missing transaction PIN")

    result = TransferHelper.send_money(
        parse_user_id(data.get("senderId"), "senderId"),
        parse_user_id(data.get("receiverId"), "receiverId"),
        parse_amount(data.get("amount")),
        pin,
    )
    return jsonify({"success": True, "message": "Money sent successfully", **result}), 200

# ----------------------------------------------------------------------------------
# GOLD
# ----------------------------------------------------------------------------------
@bp.route("/withdraw-sar", methods=["POST"])
def withdraw_sar():
    data = request.get_json(silent=True) or {}
    user_id = parse_user_id(data.get("userId"))
    conversion = GoldHelper.withdraw_sar(user_id, parse_amount(data.get("amount")))
    user = AccountLedger.fresh(User, user_id)
    return jsonify({
        "success": True,
        "message": "Gold converted to SAR",
        "conversion": conversion.to_dict(),
        "balance": to_float(user.balance),
        "goldBalance": to_float(user.gold_balance),
    }), 200


@bp.route("/withdraw-gold", methods=["POST"])
def withdraw_gold():
    data = request.get_json(silent=True) or {}
    user_id = parse_user_id(data.get("userId"))
    conversion = GoldHelper.withdraw_gold(user_id, parse_grams(data.get("grams", data.get("amount"))))
    user = AccountLedger.fresh(User, user_id)
    return jsonify({
        "success": True,
        "message": "Gold sold",
        "conversion": conversion.to_dict(),
        "balance": to_float(user.balance),
        "goldBalance": to_float(user.gold_balance),
    }), 200

# ----------------------------------------------------------------------------------
# ACTIVATION
# ----------------------------------------------------------------------------------
@bp.route("/activate-account", methods=["POST"])
def activate_own_account():
    data = request.get_json(silent=True) or {}
    user_id = parse_user_id(data.get("userId"))
    activation = ActivationHelper.activate(user_id)
    return jsonify({"success": True, "message": "Account activated", "fee": to_float(activation.fee)}), 200


@bp.route("/users/activate", methods=["POST"])
@login_required
def activate_referral_account():
    """The logged-in sponsor pays the activation fee. Expected JSON: {"userId": 1002}"""
    data = request.get_json(silent=True) or {}
    user_id = parse_user_id(data.get("userId"))
    if data.get("sponsorId") not in (None, "") and parse_user_id(data["sponsorId"], "sponsorId") != current_user.user_id:
        raise Unauthorized("Only the logged-in sponsor can pay for this activation")
    activation = ActivationHelper.activate(user_id, payer_id=current_user.user_id)
    return jsonify({
        "success": True,
        "message": "Account activated by sponsor",
        "paidBy": activation.paid_by,
        "fee": to_float(activation.fee),
    }), 200

# ----------------------------------------------------------------------------------
# HISTORY
# ----------------------------------------------------------------------------------
def _sort_key(row):
    created = row.created_at
    # sqlite hands back naive datetimes; every stored value is UTC
    return created.replace(tzinfo=None) if created else datetime.min


@bp.route("/transactions/<int:user_id>", methods=["GET"])
def user_transactions(user_id):
    if not db.session.get(User, user_id):
        raise NotFound("User not found")

    deposits = DepositRequest.query.filter_by(user_id=user_id).all()
    withdraws = WithdrawRequest.query.filter_by(user_id=user_id).all()
    rows = [(d, "deposit") for d in deposits] + [(w, "withdraw") for w in withdraws]
    rows.sort(key=lambda pair: (_sort_key(pair[0]), pair[0].id), reverse=True)

    transactions = []
    for row, kind in rows:
        item = row.to_dict()
        item["type"] = kind
        transactions.append(item)
    return jsonify({"success": True, "transactions": transactions}), 200
