from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging


db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()

logger = logging.getLogger(__name__)


class StoreHealth:
    """
    Connectivity check for the backing store.
    Registered on app.extensions["store_health"] and consulted by the readiness gate.
    """

    def __init__(self, database):
        self.database = database

    def is_ready(self) -> bool:
        try:
            self.database.session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Store health check failed: {e}")
            self.database.session.rollback()
            return False


def init_extensions(app):
    """Initialize Flask extensions"""
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    app.extensions["store_health"] = StoreHealth(db)

    return app
