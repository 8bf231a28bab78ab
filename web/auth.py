"""Authentication for the admin API.

A single admin account configured through ``ADMIN_USERNAME`` and
``ADMIN_PASSWORD``. The password may be given in plain text or as a
werkzeug hash; plain text is hashed once at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import jsonify
from flask_login import LoginManager, UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from core import get_logger
from database.models import isoformat, utcnow

logger = get_logger(__name__)


@dataclass
class AdminCredentials:
    username: str
    password_hash: str


login_manager = LoginManager()


class AdminUser(UserMixin):
    """Represents an authenticated admin user."""
    def __init__(self, username: str) -> None:
        self.id = username
        self.username = username


def init_login_manager(app, credentials: AdminCredentials) -> AdminCredentials:
    """Attach Flask-Login to ``app`` and store the hashed credentials in its config."""
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> Optional[AdminUser]:
        if user_id == credentials.username:
            return AdminUser(username=user_id)
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({
            "success": False,
            "error": "Authentication required",
            "timestamp": isoformat(utcnow()),
        }), 401

    if not credentials.password_hash.startswith(("pbkdf2:", "scrypt:")):
        credentials.password_hash = generate_password_hash(credentials.password_hash)
        logger.info(f"Password hashed for admin user '{credentials.username}'")

    app.config["ADMIN_CREDENTIALS"] = credentials
    return credentials


def validate_credentials(credentials: AdminCredentials, username: str, password: str) -> bool:
    if not username or username.lower() != credentials.username.lower():
        return False
    return check_password_hash(credentials.password_hash, password or "")
