"""
User identity via Flask-Login.

Authentication happens upstream at the identity gateway, which forwards
the provider's user id in a request header. The first request carrying an
unknown id provisions the local user row and an empty progress ledger.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app, jsonify
from flask_login import LoginManager, UserMixin

from database import get_db, write_transaction

logger = logging.getLogger(__name__)

login_manager = LoginManager()

MAX_USER_ID_LENGTH = 128


class User(UserMixin):
    """Wraps a DB user row for Flask-Login."""

    def __init__(self, id: str, email: str = "", display_name: str = "",
                 grade_level: str = "", is_guest: bool = False, role: str = "student"):
        self.id = id
        self.email = email
        self.display_name = display_name
        self.grade_level = grade_level
        self.is_guest = is_guest
        self.role = role

    @property
    def is_admin(self):
        return self.role == "admin"

    @classmethod
    def from_row(cls, row) -> "User":
        return cls(row["id"], row["email"], row["display_name"], row["grade_level"],
                   bool(row["is_guest"]), row["role"])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "grade_level": self.grade_level,
            "is_guest": self.is_guest,
            "role": self.role,
        }

    @staticmethod
    def get(user_id: str):
        row = get_db().execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_row(row) if row else None

    @staticmethod
    def provision(user_id: str, email: str = "", is_guest: bool = False,
                  role: str = "student") -> "User":
        """Create the user and its progress ledger row if they do not exist yet."""
        now = datetime.now().isoformat()
        with write_transaction() as db:
            cur = db.execute(
                "INSERT OR IGNORE INTO users (id, email, is_guest, role, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (user_id, email, 1 if is_guest else 0, role, now),
            )
            db.execute(
                "INSERT OR IGNORE INTO user_progress (user_id, updated_at) VALUES (?, ?)",
                (user_id, now),
            )
        if cur.rowcount:
            logger.info("Provisioned user %s (guest=%s, role=%s)", user_id, is_guest, role)
        return User.get(user_id)


@login_manager.request_loader
def load_user_from_request(request):
    cfg = current_app.config
    user_id = (request.headers.get(cfg.get("IDENTITY_HEADER", "X-User-Id")) or "").strip()
    if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
        return None
    user = User.get(user_id)
    if user is not None:
        return user
    is_guest = (request.headers.get(cfg.get("GUEST_HEADER", "X-User-Guest")) or "").lower() in ("1", "true", "yes")
    email = request.headers.get(cfg.get("EMAIL_HEADER", "X-User-Email"), "")
    role = "admin" if user_id in cfg.get("ADMIN_USER_IDS", []) else "student"
    return User.provision(user_id, email=email, is_guest=is_guest, role=role)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Authentication required"}), 401
