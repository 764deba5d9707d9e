"""
Acting-user middleware.

Authentication is handled upstream (reverse proxy / SSO); by the time a
request reaches the API the caller's identity arrives in a header:

    X-User-Email: jane.doe@example.com     (preferred)
    X-User-Id:    u_jd

This hook resolves that identity to a ``User`` row and stores it on
``g.current_user``. It never rejects a request by itself: endpoints that
mutate state use ``require_user()`` to demand an identity.
"""

import functools
import logging

from flask import g, request

from workplan.models.auth import User
from workplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that never need an acting user
_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_current_user(app):
    """Register the acting-user resolver as a before_request hook."""

    @app.before_request
    def _resolve_current_user():
        g.current_user = None
        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in _SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        email = (request.headers.get("X-User-Email") or "").strip()
        user_id = (request.headers.get("X-User-Id") or "").strip()
        user = None
        if email:
            user = User.find_by_email(email)
        elif user_id:
            user = User.query.filter_by(id=user_id).first()

        if (email or user_id) and user is None:
            logger.warning("Unknown acting user header email=%r id=%r", email, user_id)
        g.current_user = user
        return None


def require_user(f):
    """Decorator: reject the request with 401 when no acting user was resolved."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "current_user", None) is None:
            return api_error(E.UNAUTHENTICATED, "Acting user is required (X-User-Email header)")
        return f(*args, **kwargs)

    return decorated
