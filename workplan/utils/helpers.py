"""Small helpers shared by services and blueprints: ids, dates, commits."""
import logging
import uuid
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from workplan.models import db
from workplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Accepted date spellings, tried in order after the ISO forms
_DATE_FORMATS = ("%d.%m.%Y", "%d/%m/%Y")


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_date(value):
    """Lenient date coercion: ``date``, ISO date/datetime or DD.MM.YYYY; ``None`` otherwise."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for parse in (date.fromisoformat, lambda s: datetime.fromisoformat(s).date()):
        try:
            return parse(text)
        except ValueError:
            continue
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_date_input(value):
    """Strict variant for user input. Empty clears the date; garbage raises ValueError."""
    if value is None or value == "":
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Not a date: {value!r} (expected YYYY-MM-DD)")
    return parsed


# ── Commit ───────────────────────────────────────────────────────────────────

def db_commit_or_error():
    """Commit; on failure roll back and hand back an ``api_error`` tuple.

        err = db_commit_or_error()
        if err:
            return err

    A lost optimistic-lock race (``StaleDataError``) is a 409 the client
    resolves by reloading; constraint violations are 409 too, anything
    else is a 500.
    """
    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Commit rejected by constraint: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except StaleDataError:
        db.session.rollback()
        logger.warning("Stale write rejected: initiative was modified concurrently")
        return api_error(
            E.CONFLICT_STALE,
            "This item was changed by someone else. Reload and try again.",
        )
    except OperationalError:
        db.session.rollback()
        logger.exception("Database unavailable during commit")
        return api_error(E.DATABASE, "Database error")
    except Exception:
        db.session.rollback()
        logger.exception("Commit failed")
        return api_error(E.DATABASE, "Database error")
