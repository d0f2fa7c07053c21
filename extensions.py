"""
Shared Flask extensions.
"""

from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import current_user


def rate_limit_key() -> str:
    """Limit per identified user, falling back to the client address."""
    if current_user and current_user.is_authenticated:
        return f"user:{current_user.id}"
    return get_remote_address()


limiter = Limiter(key_func=rate_limit_key, default_limits=["600 per hour"])
