from flask import request, jsonify, Blueprint, current_app
from sqlalchemy.exc import IntegrityError
from extensions import db
from exceptions import Conflict, NotFound, ValidationError, Unauthorized
from models import User, GenerationSnapshot
from utils import parse_user_id, require_fields
from bonus.referral_tree import ReferralTreeHelper, ReferralIndex
import logging


logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__, url_prefix="")


def _get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _snapshot_for(user_id: int, sponsor_id: int) -> GenerationSnapshot:
    """Freeze the ancestor chain: g2 is the sponsor's sponsor, g3 the sponsor's g2, and so on."""
    snapshot = GenerationSnapshot(user_id=user_id, sponsor_id=sponsor_id)
    sponsor_snapshot = db.session.get(GenerationSnapshot, sponsor_id)
    if sponsor_snapshot:
        snapshot.g2 = sponsor_snapshot.sponsor_id
        for level in range(3, 11):
            setattr(snapshot, f"g{level}", getattr(sponsor_snapshot, f"g{level - 1}"))
    return snapshot


#===========================================================================
#      USER REGISTRATION
#==============================================================================
@bp.route("/api/users", methods=["POST"])
def create_user():
    """
    Expected JSON:
    {
        "userId": 1001, "name": "", "phone": "", "password": "", "avatarUrl": "",
        "sponsorId": 1000 (optional), "transactionPin": "" (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    require_fields(data, "name", "phone", "password", "avatarUrl", "userId")
    user_id = parse_user_id(data.get("userId"))

    sponsor_id = None
    if data.get("sponsorId") not in (None, ""):
        sponsor_id = parse_user_id(data.get("sponsorId"), "sponsorId")
        if sponsor_id == user_id or not db.session.get(User, sponsor_id):
            raise ValidationError("Sponsor does not exist")

    if db.session.get(User, user_id):
        raise Conflict("User already exists")

    user = User(
        user_id=user_id,
        name=str(data["name"]).strip(),
        phone=str(data["phone"]).strip(),
        avatar_url=str(data["avatarUrl"]).strip(),
        transaction_id=data.get("transactionId"),
        sponsor_id=sponsor_id,
    )
    user.set_password(data["password"])
    if data.get("transactionPin") not in (None, ""):
        user.set_pin(data["transactionPin"])

    try:
        db.session.add(user)
        if sponsor_id is not None:
            db.session.add(_snapshot_for(user_id, sponsor_id))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("User already exists")

    current_app.logger.info(f"User {user_id} created under sponsor {sponsor_id}")
    return jsonify({"success": True, "message": "User created", "user": user.to_dict()}), 201


@bp.route("/api/users", methods=["GET"])
def list_users():
    users = User.query.order_by(User.user_id).all()
    return jsonify({"success": True, "users": [u.to_dict() for u in users]}), 200


@bp.route("/api/users/<int:user_id>", methods=["GET"])
def get_user(user_id):
    user = _get_user_or_404(user_id)
    return jsonify({"success": True, "user": user.to_dict()}), 200


@bp.route("/api/users/<int:user_id>", methods=["DELETE"])
def delete_user(user_id):
    user = _get_user_or_404(user_id)
    if user.direct_referrals.count():
        raise Conflict("User still sponsors other members")

    try:
        snapshot = db.session.get(GenerationSnapshot, user_id)
        if snapshot:
            db.session.delete(snapshot)
        db.session.delete(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("User has ledger history and cannot be deleted")

    current_app.logger.info(f"User {user_id} deleted")
    return jsonify({"success": True, "message": "User deleted"}), 200


@bp.route("/api/users/pin", methods=["POST"])
def set_transaction_pin():
    data = request.get_json(silent=True) or {}
    require_fields(data, "userId", "password", "pin")
    user = _get_user_or_404(parse_user_id(data.get("userId")))
    if not user.check_password(data["password"]):
        raise Unauthorized("Invalid credentials")

    pin = str(data["pin"]).strip()
    if not pin.isdigit() or not 4 <= len(pin) <= 6:
        raise ValidationError("PIN must be 4 to 6 digits")

    user.set_pin(pin)
    db.session.commit()
    current_app.logger.info(f"Transaction PIN updated for user {user.user_id}")
    return jsonify({"success": True, "message": "Transaction PIN saved"}), 200

#=======================================================================================
#      GENERATIONS & REFERRAL TREE
#=======================================================================================

@bp.route("/api/generations/<int:user_id>", methods=["GET"])
def get_generations(user_id):
    _get_user_or_404(user_id)
    snapshot = db.session.get(GenerationSnapshot, user_id)
    return jsonify({
        "success": True,
        "userId": user_id,
        "generations": ReferralTreeHelper.generations(user_id),
        "snapshot": snapshot.to_dict() if snapshot else None,
    }), 200


@bp.route("/api/users/<int:user_id>/referrals", methods=["GET"])
def get_referrals(user_id):
    result = ReferralTreeHelper.build_referral_tree(user_id)
    return jsonify({
        "success": True,
        "userId": user_id,
        "totalReferrals": result["totalCount"],
        "referrals": result["tree"],
    }), 200


@bp.route("/api/users/<int:user_id>/gen1-ref-totals", methods=["GET"])
def gen1_ref_totals(user_id):
    return jsonify({
        "success": True,
        "userId": user_id,
        "gen1Data": ReferralTreeHelper.gen1_branch_sizes(user_id),
    }), 200


@bp.route("/api/users/<int:user_id>/gen1-ref-count", methods=["GET"])
def gen1_ref_count(user_id):
    details = ReferralTreeHelper.gen1_direct_counts(user_id)
    return jsonify({
        "success": True,
        "userId": user_id,
        "totalGen1": len(details),
        "gen1Details": details,
    }), 200

#=======================================================================================
#      REPORTS & RANKING
#=======================================================================================

@bp.route("/api/admin/referral-report", methods=["GET"])
def referral_report():
    index = ReferralIndex.load()
    totals = {row["userId"]: row["totalReferrals"] for row in ReferralTreeHelper.rank_all(index=index)}
    users = []
    for user in User.query.order_by(User.user_id).all():
        row = user.to_dict()
        row["totalReferrals"] = totals.get(user.user_id, 0)
        users.append(row)
    return jsonify({"success": True, "users": users}), 200


@bp.route("/api/admin/users-with-rank", methods=["GET"])
def users_with_rank():
    return jsonify({"success": True, "users": ReferralTreeHelper.rank_all()}), 200


@bp.route("/api/users/<int:user_id>/rank", methods=["GET"])
def user_rank(user_id):
    ranked = ReferralTreeHelper.rank_all()
    row = next((r for r in ranked if r["userId"] == user_id), None)
    if row is None:
        raise NotFound("User not found")
    return jsonify({
        "success": True,
        "userId": user_id,
        "rank": row["rank"],
        "totalReferrals": row["totalReferrals"],
    }), 200
