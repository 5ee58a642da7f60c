"""Task graph operations and the readiness evaluator.

Every function here is pure: it takes a ``Project`` snapshot and returns a
new one (or a derived value) without touching the input.
"""

import graphlib
import re
from collections.abc import Iterable
from dataclasses import replace

from nexbuilder.db.models import Project, Task, TaskStatus
from nexbuilder.errors import (
    CycleError,
    InvalidDependencyError,
    TaskNotEditableError,
    TaskNotFoundError,
)

# Title and description may only change before a task has run.
EDITABLE_STATUSES = {
    TaskStatus.PENDING: True,
    TaskStatus.IN_PROGRESS: False,
    TaskStatus.COMPLETED: False,
    TaskStatus.FAILED: False,
    TaskStatus.BLOCKED: False,
}

# Statuses whose dependency edges may be rewritten (split, dependency edits).
REWIRABLE_STATUSES = {
    TaskStatus.PENDING: True,
    TaskStatus.IN_PROGRESS: False,
    TaskStatus.COMPLETED: False,
    TaskStatus.FAILED: False,
    TaskStatus.BLOCKED: True,
}


# ── Identity ─────────────────────────────────────────────────────────────────


def slugify(title: str) -> str:
    """Convert a title to a URL-friendly slug."""
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60] or "task"


def taken_task_ids(project: Project) -> set[str]:
    """IDs that may never be handed out again: live tasks plus retired ones."""
    return {t.id for t in project.tasks} | set(project.retired_task_ids)


def unique_task_id(taken: Iterable[str], title: str) -> str:
    """Generate a task ID from a title, appending a number if needed."""
    taken = set(taken)
    base_slug = slugify(title)
    if base_slug not in taken:
        return base_slug

    i = 2
    while True:
        candidate = f"{base_slug}-{i}"
        if candidate not in taken:
            return candidate
        i += 1


# ── Lookup ───────────────────────────────────────────────────────────────────


def evolve(project: Project, **changes) -> Project:
    """Return a new snapshot with ``changes`` applied and the version bumped."""
    return replace(project, version=project.version + 1, **changes)


def find_task(project: Project, task_id: str) -> Task | None:
    for task in project.tasks:
        if task.id == task_id:
            return task
    return None


def require_task(project: Project, task_id: str) -> Task:
    task = find_task(project, task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


def replace_task(project: Project, task: Task) -> Project:
    """Swap in a new version of a task, keeping its list position."""
    require_task(project, task.id)
    tasks = tuple(task if t.id == task.id else t for t in project.tasks)
    return evolve(project, tasks=tasks)


# ── Readiness ────────────────────────────────────────────────────────────────


def is_ready(task: Task, index: dict[str, Task]) -> bool:
    """A task is ready when it is pending and every dependency is completed.

    Dependency IDs missing from ``index`` count as unsatisfied.
    """
    if task.status != TaskStatus.PENDING:
        return False
    for dep_id in task.dependencies:
        dep = index.get(dep_id)
        if dep is None or dep.status != TaskStatus.COMPLETED:
            return False
    return True


def get_ready_tasks(project: Project) -> list[Task]:
    """Get tasks that can run now, in task list order."""
    index = {t.id: t for t in project.tasks}
    return [t for t in project.tasks if is_ready(t, index)]


def summarize(project: Project) -> dict:
    """Count tasks per status and compute overall progress."""
    counts = {status.value: 0 for status in TaskStatus}
    for task in project.tasks:
        counts[task.status.value] += 1
    total = len(project.tasks)
    done = counts[TaskStatus.COMPLETED.value]
    progress = (done / total * 100) if total > 0 else 0
    return {
        "counts": counts,
        "total": total,
        "ready": len(get_ready_tasks(project)),
        "files": len(project.files),
        "progress_pct": round(progress, 1),
    }


# ── Structural checks ────────────────────────────────────────────────────────


def validate_acyclic(tasks: Iterable[Task]) -> None:
    """Raise CycleError if the dependency edges contain a cycle."""
    graph: dict[str, set[str]] = {}
    for task in tasks:
        if task.id in task.dependencies:
            raise CycleError([task.id, task.id])
        graph[task.id] = set(task.dependencies)
    try:
        graphlib.TopologicalSorter(graph).prepare()
    except graphlib.CycleError as e:
        raise CycleError([str(node) for node in e.args[1]]) from e


def _unreachable_ids(tasks: tuple[Task, ...]) -> set[str]:
    """IDs of tasks whose dependency chain can never fully complete.

    A chain is broken when it reaches an ID that no longer exists. Completed
    tasks are never unreachable, whatever their own edges say.
    """
    index = {t.id: t for t in tasks}
    memo: dict[str, bool] = {}

    def broken(task_id: str, visiting: frozenset[str]) -> bool:
        if task_id in memo:
            return memo[task_id]
        task = index.get(task_id)
        if task is None or task_id in visiting:
            return True
        if task.status == TaskStatus.COMPLETED:
            result = False
        else:
            result = any(
                broken(dep_id, visiting | {task_id}) for dep_id in task.dependencies
            )
        memo[task_id] = result
        return result

    return {t.id for t in tasks if any(broken(d, frozenset({t.id})) for d in t.dependencies)}


def refresh_blocked(project: Project) -> Project:
    """Move pending tasks with a broken dependency chain to blocked, and back.

    Returns the same snapshot object when nothing changes.
    """
    unreachable = _unreachable_ids(project.tasks)
    changed = False
    tasks = []
    for task in project.tasks:
        if task.status == TaskStatus.PENDING and task.id in unreachable:
            task = replace(task, status=TaskStatus.BLOCKED)
            changed = True
        elif task.status == TaskStatus.BLOCKED and task.id not in unreachable:
            task = replace(task, status=TaskStatus.PENDING)
            changed = True
        tasks.append(task)
    if not changed:
        return project
    return evolve(project, tasks=tuple(tasks))


# ── Edits ────────────────────────────────────────────────────────────────────


def edit_task(project: Project, task_id: str, title: str, description: str) -> Project:
    """Change a pending task's title and description."""
    task = require_task(project, task_id)
    if not EDITABLE_STATUSES[task.status]:
        raise TaskNotEditableError(
            f"Task '{task_id}' is {task.status.value}; only pending tasks can be edited"
        )
    title = title.strip()
    if not title:
        raise TaskNotEditableError("Task title cannot be empty")
    return replace_task(project, replace(task, title=title, description=description))


def add_dependency(project: Project, task_id: str, depends_on_id: str) -> Project:
    """Add a dependency edge, keeping the graph acyclic."""
    task = require_task(project, task_id)
    if depends_on_id == task_id:
        raise InvalidDependencyError(f"Task '{task_id}' cannot depend on itself")
    if find_task(project, depends_on_id) is None:
        raise InvalidDependencyError(f"Dependency task not found: {depends_on_id}")
    if not REWIRABLE_STATUSES[task.status]:
        raise TaskNotEditableError(
            f"Task '{task_id}' is {task.status.value}; its dependencies are fixed"
        )
    if depends_on_id in task.dependencies:
        return project

    updated = replace(task, dependencies=task.dependencies + (depends_on_id,))
    tasks = tuple(updated if t.id == task_id else t for t in project.tasks)
    validate_acyclic(tasks)
    return refresh_blocked(evolve(project, tasks=tasks))


def remove_dependency(project: Project, task_id: str, depends_on_id: str) -> Project:
    """Remove a dependency edge."""
    task = require_task(project, task_id)
    if depends_on_id not in task.dependencies:
        return project
    if not REWIRABLE_STATUSES[task.status]:
        raise TaskNotEditableError(
            f"Task '{task_id}' is {task.status.value}; its dependencies are fixed"
        )
    deps = tuple(d for d in task.dependencies if d != depends_on_id)
    return refresh_blocked(replace_task(project, replace(task, dependencies=deps)))


def add_package(project: Project, name: str) -> Project:
    """Add a required external package (deduplicated, order-preserving)."""
    name = name.strip()
    if not name:
        raise ValueError("Package name cannot be empty")
    if name in project.packages:
        return project
    return evolve(project, packages=project.packages + (name,))


def remove_package(project: Project, name: str) -> Project:
    name = name.strip()
    if name not in project.packages:
        return project
    return evolve(project, packages=tuple(p for p in project.packages if p != name))
