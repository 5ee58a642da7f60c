"""Append-only audit log of graph mutations."""

from datetime import datetime
from uuid import uuid4

from nexbuilder.core.graph import evolve
from nexbuilder.db.models import ActivityLogEntry, LogStatus, Project, Task

DETAILS_LIMIT = 300


def truncate_details(text: str, limit: int = DETAILS_LIMIT) -> str:
    """Keep the first ``limit`` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def new_entry(
    task: Task,
    status: LogStatus,
    details: str | None = None,
    now: datetime | None = None,
) -> ActivityLogEntry:
    """Create a log entry, snapshotting the task title as it is right now."""
    return ActivityLogEntry(
        id=uuid4().hex,
        task_id=task.id,
        task_title=task.title,
        timestamp=now or datetime.now(),
        status=status,
        details=details,
    )


def append_entry(project: Project, entry: ActivityLogEntry) -> Project:
    return evolve(project, activity_log=project.activity_log + (entry,))


def record(
    project: Project,
    task: Task,
    status: LogStatus,
    details: str | None = None,
) -> Project:
    """Shortcut for ``append_entry(project, new_entry(...))``."""
    return append_entry(project, new_entry(task, status, details))


def entries_for_task(project: Project, task_id: str) -> list[ActivityLogEntry]:
    return [e for e in project.activity_log if e.task_id == task_id]
