from functools import wraps
from flask import request, jsonify, Blueprint, current_app, abort
from flask_login import login_user, logout_user, login_required, current_user
from extensions import db
from exceptions import Unauthorized, ValidationError
from models import User, UserRole
from utils import parse_user_id
import logging


logger = logging.getLogger(__name__)
#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="")


def role_required(role):
    """
    Restrict a route to logged-in users holding `role`.
    - No session: Flask-Login answers 401.
    - Wrong role: 403.
    """
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if current_user.role != role:
                current_app.logger.warning(
                    f"User {current_user.user_id} ({current_user.role}) denied {role} route {request.path}"
                )
                abort(403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


agent_required = role_required(UserRole.AGENT.value)
admin_required = role_required(UserRole.ADMIN.value)


#===========================================================================
#      LOGIN ROUTE
#==============================================================================
@bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate a user.
    Expected JSON:
    {
        "userId": 1001,
        "password": ""
    }
    """
    data = request.get_json(silent=True) or {}
    password = data.get("password")
    if data.get("userId") in (None, "") or not password:
        raise ValidationError("userId and password are required")
    user_id = parse_user_id(data.get("userId"))

    user = db.session.get(User, user_id)
    if not user or not user.check_password(password):
        current_app.logger.warning(f"Failed login for user {user_id}")
        raise Unauthorized("Invalid credentials")

    login_user(user)
    current_app.logger.info(f"User {user_id} logged in")

    return jsonify({
        "success": True,
        "message": "Login successful",
        "user": user.to_dict(),
    }), 200


@bp.route("/api/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"success": True, "message": "Logged out"}), 200
