"""
api/limiter.py -- The one slowapi Limiter for the process.

api/main.py publishes it as app.state.limiter for SlowAPIMiddleware, and
api/routes/v1/auth.py decorates login with it. Counters live in this
instance's memory:// storage, keyed by client address, so a second Limiter
would keep separate counts.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for POST /auth/login, read from settings at request time."""
    return get_settings().login_rate_limit
