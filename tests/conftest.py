"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
import tempfile
from decimal import Decimal
from pathlib import Path

# Minimal environment for config.py; must be set before the app modules are imported
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")
os.environ.setdefault("FLASK_ENV", "testing")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "fulus-test-logs"))

# Add the project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from app import create_app
from config import TestConfig
from extensions import db
from models import User, UserRole


@pytest.fixture
def app():
    """Application with a fresh in-memory database per test."""
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Factory creating committed users: make_user(1001, sponsor_id=1000, balance="500")."""

    def _make_user(user_id, sponsor_id=None, balance="0", pin=None, role=UserRole.USER.value,
                   password="secret123", **balances):
        user = User(
            user_id=user_id,
            name=f"Member {user_id}",
            phone=f"0170000{user_id:04d}",
            avatar_url=f"https://example.com/avatars/{user_id}.png",
            sponsor_id=sponsor_id,
            role=role,
            balance=Decimal(str(balance)),
        )
        for field, value in balances.items():
            setattr(user, field, Decimal(str(value)))
        user.set_password(password)
        if pin is not None:
            user.set_pin(pin)
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_chain(make_user):
    """Linear sponsor chain: make_chain(1, 2, 3) makes 1 the root and 3 the deepest member."""

    def _make_chain(*user_ids, **kwargs):
        users = []
        sponsor_id = None
        for user_id in user_ids:
            users.append(make_user(user_id, sponsor_id=sponsor_id, **kwargs))
            sponsor_id = user_id
        return users

    return _make_chain



@pytest.fixture
def login_as(client):
    """Open a Flask-Login session on the test client for an existing user."""

    def _login_as(user_id, password="secret123"):
        response = client.post("/login", json={"userId": user_id, "password": password})
        assert response.status_code == 200
        return response

    return _login_as
