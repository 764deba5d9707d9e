"""
Initiative state store.

Thin query layer over the ``initiatives`` table. Writes go through the
session like everywhere else (add + flush, caller commits). Task lists are
replaced, never mutated in place: ``replace_task`` builds a new list with a
new dict for the changed task.
"""

import logging

from workplan.models import db
from workplan.models.initiative import Initiative

logger = logging.getLogger(__name__)


def get(initiative_id, include_deleted=True):
    if not initiative_id:
        return None
    initiative = db.session.get(Initiative, initiative_id)
    if initiative is None:
        return None
    if not include_deleted and initiative.is_deleted:
        return None
    return initiative


def list_active(owner_ids=None):
    q = Initiative.query_active()
    if owner_ids:
        q = q.filter(Initiative.owner_id.in_(list(owner_ids)))
    return q.order_by(Initiative.created_at.asc(), Initiative.id.asc())


def list_deleted():
    return Initiative.query_deleted().order_by(Initiative.deleted_at.desc())


def add(initiative):
    db.session.add(initiative)
    db.session.flush()
    return initiative


def remove(initiative):
    """Physically delete an initiative. Change records are kept."""
    db.session.delete(initiative)
    db.session.flush()


def replace_task(initiative, task_id, changes: dict):
    """Store a copy of the task with ``changes`` applied; returns (old, new) task dicts."""
    old_task = None
    new_tasks = []
    new_task = None
    for task in initiative.tasks or []:
        if task.get("id") == task_id:
            old_task = task
            new_task = {**task, **changes}
            new_tasks.append(new_task)
        else:
            new_tasks.append(task)
    if old_task is None:
        return None, None
    initiative.tasks = new_tasks
    return old_task, new_task


def append_task(initiative, task: dict):
    initiative.tasks = [*(initiative.tasks or []), task]
    return task


def append_comment(initiative, comment: dict):
    initiative.comments = [*(initiative.comments or []), comment]
    return comment
