"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db init       # first time only (creates migrations/)
    flask db migrate -m "description"
    flask db upgrade
    flask sweep-overdue
    flask backup
"""

from workplan import create_app

app = create_app()
