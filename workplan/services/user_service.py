"""
User Service — admin CRUD for work-plan participants.

Duplicate e-mails are benign: ``create_user`` logs and returns the existing
user without writing. Deleting the acting user is refused. Capacity entries
in the AppConfig follow the user list (seeded on create, pruned on delete).
"""

import logging

from email_validator import EmailNotValidError, validate_email

from workplan.core.exceptions import ConflictError, NotFoundError, ValidationError
from workplan.models import db
from workplan.models.auth import Role, User, normalize_role
from workplan.services import config_service
from workplan.utils.helpers import new_id

logger = logging.getLogger(__name__)

DEFAULT_OWNER_CAPACITY = 40


def _validated_email(email) -> str:
    try:
        valid = validate_email(str(email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from None
    return valid.normalized


def _validated_role(role) -> str:
    role_enum = normalize_role(role)
    if role_enum is None:
        allowed = ", ".join(r.value for r in Role)
        raise ValidationError(f"Unknown role: {role!r}", details={"role": f"must be one of: {allowed}"})
    return role_enum.value


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(*, email, name, role=Role.TEAM_LEAD.value, avatar="", team=None, user_id=None,
                updated_by="system") -> tuple[User, bool]:
    """Create a user. Returns (user, created); created is False for a duplicate e-mail."""
    email = _validated_email(email)
    existing = User.find_by_email(email)
    if existing is not None:
        logger.info("User with email %s already exists; nothing created", email)
        return existing, False

    name = str(name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    user = User(
        id=str(user_id or new_id()),
        email=email,
        name=name,
        role=_validated_role(role),
        avatar=avatar or "",
        team=team,
    )
    db.session.add(user)
    db.session.flush()

    if user.can_be_owner:
        config = config_service.load_config()
        if user.id not in config.team_capacities:
            config_service.save_config(
                config.with_capacity(user.id, capacity=DEFAULT_OWNER_CAPACITY), updated_by=updated_by
            )
    logger.info("User created: %s (%s)", user.email, user.role, extra={"actor": updated_by})
    return user, True


def get_user(user_id) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def list_users():
    return User.query.order_by(User.name.asc()).all()


def update_user(user_id, **kwargs) -> User:
    user = get_user(user_id)

    if "email" in kwargs:
        email = _validated_email(kwargs["email"])
        other = User.find_by_email(email)
        if other is not None and other.id != user.id:
            raise ConflictError("User", "email", email)
        user.email = email
    if "role" in kwargs:
        user.role = _validated_role(kwargs["role"])
    if "name" in kwargs:
        name = str(kwargs["name"] or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        user.name = name
    for key in ("avatar", "team"):
        if key in kwargs:
            setattr(user, key, kwargs[key])

    db.session.flush()
    return user


def delete_user(user_id, *, acting_user_id, updated_by="system") -> User:
    """Delete a user. Deleting yourself is refused."""
    user = get_user(user_id)
    if str(user.id) == str(acting_user_id):
        raise ValidationError("You cannot delete your own account", details={"user_id": "self"})

    db.session.delete(user)
    db.session.flush()

    remaining = [u.id for u in User.query.all()]
    config = config_service.load_config()
    config_service.save_config(config.sync_capacities_with_users(remaining), updated_by=updated_by)
    logger.info("User deleted: %s", user.email, extra={"actor": updated_by})
    return user


def import_users(rows, *, updated_by="system") -> dict:
    """Create users from pre-validated import rows; duplicates are skipped."""
    created, skipped = [], []
    for index, row in enumerate(rows or []):
        if not row.get("is_valid", row.get("isValid", False)):
            skipped.append({"row": index, "error": row.get("error") or "invalid row"})
            continue
        data = row.get("data") or row
        try:
            user, was_created = create_user(
                email=data.get("email"), name=data.get("name"),
                role=data.get("role") or Role.TEAM_LEAD.value,
                avatar=data.get("avatar") or "", team=data.get("team"),
                user_id=data.get("id"), updated_by=updated_by,
            )
        except ValidationError as exc:
            skipped.append({"row": index, "error": str(exc)})
            continue
        if was_created:
            created.append(user.id)
        else:
            skipped.append({"row": index, "error": "duplicate email"})
    return {"created": created, "skipped": skipped}
