from flask import Blueprint, jsonify, request
from flask_login import current_user
from blueprints.auth import agent_required
from utils import parse_user_id, parse_amount, require_fields
from wallet.deposit_helpers import DepositProcessor


bp = Blueprint("deposit", __name__, url_prefix="/api/deposit")


@bp.route("", methods=["POST"])
def create_deposit():
    """Expected JSON: {"userId": 1001, "amount": 500, "transactionId": "", "agentNumber": ""}"""
    data = request.get_json(silent=True) or {}
    require_fields(data, "userId", "amount", "transactionId", "agentNumber")
    deposit = DepositProcessor.create_request(
        parse_user_id(data.get("userId")),
        parse_amount(data.get("amount")),
        str(data["transactionId"]).strip(),
        str(data["agentNumber"]).strip(),
    )
    return jsonify({"success": True, "message": "Deposit request submitted", "deposit": deposit.to_dict()}), 201


@bp.route("", methods=["GET"])
def list_deposits():
    user_id = request.args.get("userId")
    deposits = DepositProcessor.list_deposits(
        status=request.args.get("status"),
        user_id=parse_user_id(user_id) if user_id else None,
    )
    return jsonify({"success": True, "deposits": [d.to_dict() for d in deposits]}), 200


@bp.route("/update/<int:deposit_id>", methods=["PUT"])
@agent_required
def accept_deposit(deposit_id):
    deposit = DepositProcessor.accept(deposit_id, current_user.user_id)
    return jsonify({"success": True, "message": "Deposit accepted", "deposit": deposit.to_dict()}), 200


@bp.route("/success/<int:deposit_id>", methods=["PUT"])
@agent_required
def complete_deposit(deposit_id):
    deposit = DepositProcessor.complete(deposit_id, current_user.user_id)
    return jsonify({"success": True, "message": "Deposit completed", "deposit": deposit.to_dict()}), 200
