from flask import Blueprint, jsonify, request
from exceptions import ValidationError
from utils import parse_user_id
from bonus.rank_rewards import RankRewardHelper


bp = Blueprint("rank", __name__, url_prefix="")


@bp.route("/api/users/<int:user_id>/rank-rewards", methods=["GET"])
def rank_rewards(user_id):
    return jsonify({"success": True, **RankRewardHelper.status(user_id)}), 200


@bp.route("/api/users/collect-reward", methods=["POST"])
def collect_reward():
    """
    Expected JSON: {"userId": 1001, "rank": "Bronze"}
    The reward amount always comes from the tier table, never from the client.
    """
    data = request.get_json(silent=True) or {}
    if data.get("userId") in (None, "") or not data.get("rank"):
        raise ValidationError("Missing required fields.")

    result = RankRewardHelper.collect(parse_user_id(data.get("userId")), str(data["rank"]))
    return jsonify({"success": True, "message": "Reward collected successfully.", **result}), 200
