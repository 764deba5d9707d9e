"""
Work Plan Tracker
Identity model.

Models:
    - User: a person who can own initiatives and act on the work plan.

Role is the actor category that drives every permission lookup.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import func

from workplan.models import db


class Role(str, Enum):
    ADMIN = "Admin"
    SVP = "SVP"
    VP = "VP"
    DIRECTOR_DEPARTMENT = "Director (Department Management)"
    DIRECTOR_GROUP = "Director (Group Lead)"
    TEAM_LEAD = "Team Lead"
    PORTFOLIO_OPS = "Portfolio Operations"


# Roles that may be assigned as initiative owners
OWNER_ROLES = {Role.TEAM_LEAD, Role.ADMIN, Role.DIRECTOR_GROUP, Role.DIRECTOR_DEPARTMENT}


def normalize_role(value) -> Role | None:
    """Map a stored/API role string onto ``Role``; None when unrecognised.

    Matching is exact first, then case-insensitive on the value or the
    member name ("team lead", "TEAM_LEAD" and "Team Lead" all match).
    """
    if isinstance(value, Role):
        return value
    if value is None:
        return None
    text = str(value).strip()
    try:
        return Role(text)
    except ValueError:
        pass
    lowered = text.lower()
    for role in Role:
        if role.value.lower() == lowered or role.name.lower() == lowered:
            return role
    return None


class User(db.Model):
    """A work-plan participant.

    ``email`` is unique (case-insensitive); it is used for ownership matching
    and for the root-identity admin check.
    """

    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    role = db.Column(db.String(60), nullable=False, default=Role.TEAM_LEAD.value)
    avatar = db.Column(db.String(500), default="")
    team = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def role_enum(self) -> Role | None:
        return normalize_role(self.role)

    @property
    def can_be_owner(self) -> bool:
        return self.role_enum in OWNER_ROLES

    @classmethod
    def find_by_email(cls, email: str):
        if not email:
            return None
        return cls.query.filter(func.lower(cls.email) == email.strip().lower()).first()

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "avatar": self.avatar,
            "team": self.team,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
