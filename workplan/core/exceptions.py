"""
Domain exceptions raised by the work plan services.

Services raise these types; blueprints register one handler per type
(see ``workplan.blueprints.register_error_handlers``) and get consistent
HTTP status codes everywhere.

Mutation policy:
  - NotFound on a mutation is a silent no-op (the engine returns None),
    because concurrent deletes are expected. NotFoundError is raised only
    by read operations that must find their entity.
  - PermissionDenied and ValidationError always propagate and are never
    folded into a generic exception.
  - Duplicate creates are absorbed by the services that detect them.
    ConflictError covers renaming onto a value another row already holds;
    commit-time clashes come back through ``db_commit_or_error``.

Usage:
    from workplan.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Initiative", resource_id="abc")
    raise ValidationError("ETA is required", details={"eta": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Initiative", "User").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        label = resource if resource_id is None else f"{resource} {resource_id!r}"
        super().__init__(f"{label} not found")


class ValidationError(Exception):
    """Raised when input violates a business rule or the status state machine.

    The mutation is blocked entirely; nothing is partially applied.
    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write collides with a unique value or a newer version.

    Surfaces as HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} conflicts with existing data")


class PermissionDenied(Exception):
    """Raised when the acting user's role does not allow an action.

    Carries the attempted action and the scope the role actually has so the
    caller can show "you can only edit tasks you own" instead of a generic
    refusal. Maps to HTTP 403.

    Args:
        action: Attempted action, e.g. "edit_task", "delete_initiative".
        required_scope: The scope the action needed ("yes", "own", "edit", ...).
        granted_scope: The scope the role resolved to.
        message: User-facing explanation.
    """

    def __init__(
        self,
        action: str,
        *,
        required_scope: str | None = None,
        granted_scope: str | None = None,
        message: str | None = None,
    ) -> None:
        self.action = action
        self.required_scope = required_scope
        self.granted_scope = granted_scope
        self.message = message or f"You do not have permission to {action.replace('_', ' ')}"
        super().__init__(self.message)

    @property
    def is_ownership_failure(self) -> bool:
        """True when the role had 'own' scope but the item belongs to someone else."""
        return self.granted_scope == "own"
