"""Error codes and the JSON error envelope shared by every blueprint.

Usage
-----
    from workplan.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Initiative not found")
    return api_error(E.FORBIDDEN, "You can only edit tasks you own",
                     details={"action": "edit_task", "scope": "own"})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes. Clients switch on these, never on the message text."""

    # Bad payload (400) or a rule the edit breaks (422)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    NOT_FOUND = "ERR_NOT_FOUND"

    # Duplicate e-mail, or a stale initiative version
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STALE = "ERR_CONFLICT_STALE"

    # No acting user, or the matrix denies the action
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"
    FORBIDDEN_OWNERSHIP = "ERR_FORBIDDEN_OWNERSHIP"

    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STALE: 409,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.FORBIDDEN_OWNERSHIP: 403,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """JSON error body ``{"error", "code", "details"?}`` with the code's HTTP status.

    ``status`` overrides the mapping; unmapped codes fall back to 400.
    Permission failures put the attempted action and the granted scope in
    ``details`` so the UI can tell "not yours" apart from "not allowed".
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)
