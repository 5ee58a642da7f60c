"""Turn a generated plan into the first project snapshot."""

import logging
from datetime import datetime
from uuid import uuid4

from nexbuilder.core.graph import refresh_blocked, unique_task_id, validate_acyclic
from nexbuilder.db.models import AgentRole, Plan, Project, Task, TaskStatus
from nexbuilder.errors import EmptyPlanError, ParseError

logger = logging.getLogger(__name__)


def normalize_packages(packages: list) -> tuple[str, ...]:
    """Strip, drop empties and deduplicate, keeping first occurrence order."""
    seen: list[str] = []
    for raw in packages or []:
        name = str(raw).strip()
        if name and name not in seen:
            seen.append(name)
    return tuple(seen)


def _as_id_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ParseError(f"Task dependencies must be a list, got {type(value).__name__}")
    return [str(v) for v in value]


def build_project(plan: Plan, prompt: str) -> Project:
    """Validate a plan and build a project whose tasks are all pending.

    Tasks pointing at IDs the plan never defines are marked blocked, since
    those dependencies can never complete.
    """
    if not plan.tasks:
        raise EmptyPlanError("Plan generation returned no tasks")

    taken: set[str] = set()
    tasks: list[Task] = []
    for i, raw in enumerate(plan.tasks):
        if not isinstance(raw, dict):
            raise ParseError(f"Plan task #{i + 1} is not an object")
        title = str(raw.get("title") or "").strip()
        if not title:
            raise ParseError(f"Plan task #{i + 1} has no title")

        task_id = str(raw.get("id") or "").strip()
        if not task_id:
            task_id = unique_task_id(taken, title)
        elif task_id in taken:
            raise ParseError(f"Plan defines task ID '{task_id}' more than once")
        taken.add(task_id)

        deps: list[str] = []
        for dep_id in _as_id_list(raw.get("dependencies")):
            if dep_id not in deps:
                deps.append(dep_id)

        tasks.append(
            Task(
                id=task_id,
                title=title,
                description=str(raw.get("description") or ""),
                agent_role=AgentRole.parse(raw.get("agentRole") or raw.get("agent_role")),
                status=TaskStatus.PENDING,
                dependencies=tuple(deps),
            )
        )

    validate_acyclic(tasks)

    project = Project(
        id=uuid4().hex,
        name=(plan.name or "").strip() or "New Project",
        description=prompt,
        tasks=tuple(tasks),
        packages=normalize_packages(plan.packages),
        created_at=datetime.now(),
    )
    project = refresh_blocked(project)
    blocked = [t.id for t in project.tasks if t.status == TaskStatus.BLOCKED]
    if blocked:
        logger.warning("Plan tasks with unknown dependencies marked blocked: %s", blocked)
    return project
