"""Startup recovery: normalize a freshly loaded graph."""

import logging
from dataclasses import replace

from nexbuilder.core.graph import evolve
from nexbuilder.db.models import Project, TaskStatus

logger = logging.getLogger(__name__)


def recover_project(project: Project) -> tuple[Project, list[str]]:
    """Reset tasks stuck in progress back to pending.

    No execution survives a restart, so an in-progress marker on load is
    stale. Nothing else is touched. Returns the (possibly unchanged)
    snapshot and the IDs that were reset.
    """
    reset_ids = [t.id for t in project.tasks if t.status == TaskStatus.IN_PROGRESS]
    if not reset_ids:
        return project, []

    tasks = tuple(
        replace(t, status=TaskStatus.PENDING) if t.status == TaskStatus.IN_PROGRESS else t
        for t in project.tasks
    )
    logger.info("Recovered %d interrupted task(s): %s", len(reset_ids), ", ".join(reset_ids))
    return evolve(project, tasks=tasks), reset_ids
