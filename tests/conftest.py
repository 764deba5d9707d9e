"""
Fixtures for the Work Plan Tracker suite.

One app and one in-memory SQLite database per session; every test starts
from empty tables (autouse ``session``).

    - app / client: Flask app and test client
    - change_log / outbox: the app-wide ChangeLog and SyncOutbox
    - users: one user per role of interest
    - engine: MutationEngine on the default matrix with a fixed Thursday clock
"""

from datetime import date, datetime, timezone

import pytest

from workplan import create_app
from workplan.models import db as _db
from workplan.models.auth import Role, User
from workplan.services.app_config import AppConfig
from workplan.services.audit_log import ChangeLog
from workplan.services.mutation_engine import MutationEngine
from workplan.services.sync_outbox import SyncOutbox

ROOT_EMAIL = "root@example.com"

# Thursday; counts as the weekly update day
TODAY = date(2026, 3, 12)
NOW = datetime(2026, 3, 12, 9, 30, tzinfo=timezone.utc)


# ── Application and database ─────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """The testing app, built once."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Schema for the whole session."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Run each test in an app context and leave empty tables behind it."""
    with app.app_context():
        app.extensions["sync_outbox"].clear()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Test client; each request runs in its own app context."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


def make_user(user_id, role, email=None, name=None):
    user = User(
        id=user_id,
        email=email or f"{user_id}@example.com",
        name=name or user_id.replace("_", " ").title(),
        role=role.value if isinstance(role, Role) else role,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


@pytest.fixture()
def users():
    """Admin, VP, two team leads, a portfolio-ops user and the root identity."""
    result = {
        "admin": make_user("admin", Role.ADMIN),
        "vp": make_user("vp", Role.VP),
        "lead": make_user("lead", Role.TEAM_LEAD, email="jane.doe@example.com", name="Jane Doe"),
        "other_lead": make_user("other_lead", Role.TEAM_LEAD, email="sam.lee@example.com", name="Sam Lee"),
        "ops": make_user("ops", Role.PORTFOLIO_OPS),
        # Root identity with the least privileged role
        "root": make_user("root", Role.TEAM_LEAD, email=ROOT_EMAIL, name="Root"),
    }
    _db.session.commit()
    return result


def headers_for(user):
    return {"X-User-Email": user.email}


@pytest.fixture()
def change_log():
    return ChangeLog()


@pytest.fixture()
def outbox():
    return SyncOutbox()


@pytest.fixture()
def engine(change_log, outbox):
    return MutationEngine(
        AppConfig.default(), change_log,
        root_email=ROOT_EMAIL, outbox=outbox, clock=lambda: TODAY, now=lambda: NOW,
    )


@pytest.fixture()
def initiative(engine, users):
    """A Team Lead owned initiative, 10 weeks estimated, due in the future."""
    return engine.create_initiative(
        {"title": "Consolidate ledgers", "owner_id": "lead", "estimated_effort": 10,
         "eta": "2026-06-30", "priority": "P1"},
        actor=users["lead"],
    )
