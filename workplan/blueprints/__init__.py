"""
Work Plan Tracker
Blueprint registry and shared blueprint helpers.
"""

import logging

from flask import current_app, request
from sqlalchemy.orm.exc import StaleDataError

from workplan.core.exceptions import ConflictError, NotFoundError, PermissionDenied, ValidationError
from workplan.models import db
from workplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """``(items, total)`` for ``?limit=&offset=``; bad values fall back to the defaults."""
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def current_engine():
    """MutationEngine bound to the persisted AppConfig and the app's change log."""
    from workplan.services import config_service
    from workplan.services.mutation_engine import MutationEngine

    return MutationEngine(
        config_service.load_config(),
        current_app.extensions["change_log"],
        root_email=current_app.config.get("SUPER_ADMIN_EMAIL"),
        outbox=current_app.extensions.get("sync_outbox"),
    )


def current_resolver():
    from workplan.services import config_service
    from workplan.services.permission_service import PermissionResolver

    return PermissionResolver(config_service.load_config(), current_app.config.get("SUPER_ADMIN_EMAIL"))


# ── Error handlers ───────────────────────────────────────────────────────────

def register_error_handlers(app):
    """Map core exceptions to JSON error responses for every blueprint."""

    @app.errorhandler(PermissionDenied)
    def _permission_denied(exc):
        db.session.rollback()
        logger.info("Permission denied: %s", exc.action)
        code = E.FORBIDDEN_OWNERSHIP if exc.is_ownership_failure else E.FORBIDDEN
        return api_error(code, exc.message, details={
            "action": exc.action,
            "required_scope": exc.required_scope,
            "granted_scope": exc.granted_scope,
        })

    @app.errorhandler(ValidationError)
    def _validation_error(exc):
        db.session.rollback()
        return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(exc), details={"field": exc.field})

    @app.errorhandler(StaleDataError)
    def _stale_write(exc):
        # Another request bumped version_id between our read and the flush
        db.session.rollback()
        logger.warning("Stale write rejected at flush: %s", exc)
        return api_error(
            E.CONFLICT_STALE,
            "This item was changed by someone else. Reload and try again.",
        )

    @app.errorhandler(404)
    def _route_not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def _rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500
