import os
from flask import Flask, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from config import Config
from extensions import db, login_manager, init_extensions
from exceptions import FulusError, Unavailable
from logger import configure_app_logging
from models import User


# readiness gate does not apply to these
UNGATED_PATHS = {"/", "/healthz"}


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.debug and not app.testing:
        app.config.update(
            SESSION_COOKIE_SECURE=True,
            SESSION_COOKIE_HTTPONLY=True,
            REMEMBER_COOKIE_SECURE=True,
            REMEMBER_COOKIE_HTTPONLY=True,
        )

    # ------------------------------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------------------------------
    configure_app_logging(app)

    # ------------------------------------------------------------------------------------------
    # SQLite file store lives under instance/
    # ------------------------------------------------------------------------------------------
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///"):
        os.makedirs(os.path.dirname(database_uri.replace("sqlite:///", "", 1)) or ".", exist_ok=True)

    # --------------------------------------------------------------------------------------------------------------------------
    # Initialize extensions
    # ----------------------------------------------------------------------------------------------------------------------------
    init_extensions(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    register_blueprints(app)
    register_error_handlers(app)

    # ----------------------
    # Readiness gate
    # ----------------------
    @app.before_request
    def require_store():
        if request.path in UNGATED_PATHS:
            return None
        if not app.extensions["store_health"].is_ready():
            raise Unavailable("DB not connected")
        return None

    # ----------------------
    # Basic routes
    # ----------------------
    @app.route("/")
    def home():
        return jsonify({"success": True, "message": "Fulus API is running"}), 200

    @app.route("/healthz")
    def healthz():
        if app.extensions["store_health"].is_ready():
            return jsonify({"status": "ok"}), 200
        return jsonify({"status": "unavailable", "message": "DB not connected"}), 503

    return app


def register_blueprints(app):
    from blueprints.auth import bp as auth_bp
    from blueprints.users import bp as users_bp
    from blueprints.bonus import bp as bonus_bp
    from blueprints.rank import bp as rank_bp
    from blueprints.withdraw import bp as withdraw_bp
    from blueprints.deposit import bp as deposit_bp
    from blueprints.wallet import bp as wallet_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(bonus_bp)
    app.register_blueprint(rank_bp)
    app.register_blueprint(withdraw_bp)
    app.register_blueprint(deposit_bp)
    app.register_blueprint(wallet_bp)


def register_error_handlers(app):

    @app.errorhandler(FulusError)
    def handle_fulus_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        app.logger.error(f"Database error on {request.path}: {error}")
        return jsonify({"success": False, "message": "Server error"}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"success": False, "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        app.logger.exception(f"Unhandled error on {request.path}: {error}")
        return jsonify({"success": False, "message": "Server error"}), 500


# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    debug_mode = app.config.get("DEBUG", False)
    app.run(debug=debug_mode, host="0.0.0.0", port=port)
