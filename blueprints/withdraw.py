from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user
from blueprints.auth import agent_required, admin_required
from exceptions import ValidationError
from utils import parse_user_id, parse_amount
from wallet.withdraw_helpers import WithdrawalProcessor, WithdrawalQueryHelper
import logging


logger = logging.getLogger(__name__)

bp = Blueprint("withdraw", __name__, url_prefix="/api/withdraw")


# ----------------------------------------------------------------------------------
# USER REQUESTS
# ----------------------------------------------------------------------------------
@bp.route("", methods=["POST"])
def create_withdraw():
    """
    Expected JSON:
    {"userId": 1001, "amount": 100, "pin": "1234", "method": "bkash",
     "deliveryAddress": "", "accountNumber": ""}
    """
    data = request.get_json(silent=True) or {}
    user_id = parse_user_id(data.get("userId"))
    amount = parse_amount(data.get("amount"))
    pin = data.get("pin", data.get("transactionPin"))
    if pin in (None, ""):
        raise ValidationError("Missing transaction PIN")

    withdraw = WithdrawalProcessor.create_request(
        user_id, amount, pin,
        method=data.get("method"),
        delivery_address=data.get("deliveryAddress"),
        account_number=data.get("accountNumber"),
    )
    return jsonify({"success": True, "message": "Withdraw request submitted", "withdraw": withdraw.to_dict()}), 201


@bp.route("/pools", methods=["POST"])
def create_pool_withdraw():
    data = request.get_json(silent=True) or {}
    withdraw = WithdrawalProcessor.withdraw_from_pools(
        parse_user_id(data.get("userId")),
        parse_amount(data.get("amount")),
        method=data.get("method"),
        delivery_address=data.get("deliveryAddress"),
        account_number=data.get("accountNumber"),
    )
    return jsonify({"success": True, "message": "Withdraw request submitted", "withdraw": withdraw.to_dict()}), 201


@bp.route("", methods=["GET"])
def list_withdraws():
    user_id = request.args.get("userId")
    withdraws = WithdrawalQueryHelper.list_withdrawals(
        status=request.args.get("status"),
        user_id=parse_user_id(user_id) if user_id else None,
    )
    return jsonify({"success": True, "withdraws": [w.to_dict() for w in withdraws]}), 200

# ----------------------------------------------------------------------------------
# AGENT & ADMIN LIFECYCLE
# ----------------------------------------------------------------------------------
@bp.route("/accept/<int:withdraw_id>", methods=["PUT"])
@agent_required
def accept_withdraw(withdraw_id):
    withdraw = WithdrawalProcessor.accept(withdraw_id, current_user.user_id)
    return jsonify({"success": True, "message": "Withdraw accepted", "withdraw": withdraw.to_dict()}), 200


@bp.route("/success/<int:withdraw_id>", methods=["PUT"])
@agent_required
def complete_withdraw(withdraw_id):
    withdraw = WithdrawalProcessor.complete(withdraw_id, current_user.user_id)
    return jsonify({"success": True, "message": "Withdraw completed", "withdraw": withdraw.to_dict()}), 200


@bp.route("/reject/<int:withdraw_id>", methods=["PUT"])
@admin_required
def reject_withdraw(withdraw_id):
    withdraw = WithdrawalProcessor.reject(withdraw_id)
    current_app.logger.info(f"Withdraw {withdraw_id} rejected by admin {current_user.user_id}")
    return jsonify({"success": True, "message": "Withdraw rejected and refunded", "withdraw": withdraw.to_dict()}), 200
