"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in workplan/__init__.py with no default limits; this module
applies granular limits per route category.

Usage:
    from workplan.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Blueprint name -> limit string
WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"
ADMIN_LIMIT = "30/minute"

_WRITE_BLUEPRINTS = ("initiatives", "notifications")
_READ_BLUEPRINTS = ("audit", "metrics")
_ADMIN_BLUEPRINTS = ("admin",)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Initiative / task / comment mutations: 120/minute
        - Change log and metrics reads:          300/minute
        - Admin panel:                           30/minute
        - Health check:                          exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for names, limit in (
        (_WRITE_BLUEPRINTS, WRITE_LIMIT),
        (_READ_BLUEPRINTS, READ_LIMIT),
        (_ADMIN_BLUEPRINTS, ADMIN_LIMIT),
    ):
        for bp_name in names:
            bp = app.blueprints.get(bp_name)
            if bp:
                limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — write: %s, read: %s, admin: %s",
        WRITE_LIMIT, READ_LIMIT, ADMIN_LIMIT,
    )
