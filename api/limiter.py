"""
api/limiter.py -- The one slowapi Limiter shared by the app and its routes.

api/main.py mounts it (SlowAPIMiddleware reads app.state.limiter); route
modules decorate credential endpoints with @limiter.limit(login_limit).
Counters live in this instance's memory storage, so a second Limiter would
count separately and never trip.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    """Limit string for credential-guessing endpoints (login, refresh, 2FA codes).

    Resolved per request so LOGIN_RATE_LIMIT takes effect without re-importing routes.
    """
    return get_settings().login_rate_limit
