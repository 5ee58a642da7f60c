"""Split/rewire engine: replace one task with a linear chain of subtasks."""

from dataclasses import replace

from nexbuilder.core.graph import (
    REWIRABLE_STATUSES,
    evolve,
    refresh_blocked,
    require_task,
    taken_task_ids,
    unique_task_id,
)
from nexbuilder.db.models import Project, SubtaskSpec, Task, TaskStatus
from nexbuilder.errors import EmptyDecompositionError, TaskNotEditableError


def check_splittable(project: Project, task_id: str) -> Task:
    """Return the task if it may be split, raise otherwise."""
    task = require_task(project, task_id)
    if not REWIRABLE_STATUSES[task.status]:
        raise TaskNotEditableError(
            f"Task '{task_id}' is {task.status.value}; only pending or blocked tasks can be split"
        )
    return task


def split_task(
    project: Project,
    task_id: str,
    subtasks: list[SubtaskSpec],
) -> tuple[Project, list[Task]]:
    """Replace ``task_id`` with ``subtasks`` wired as a strict pipeline.

    The first subtask inherits the original dependencies, each later one
    depends only on its predecessor, and every edge that pointed at the
    original task is repointed at the last subtask. The original ID is
    retired so it is never handed out again.
    """
    if not subtasks:
        raise EmptyDecompositionError(f"Decomposition of '{task_id}' returned no subtasks")
    original = check_splittable(project, task_id)

    taken = taken_task_ids(project)
    chain: list[Task] = []
    for spec in subtasks:
        new_id = unique_task_id(taken, spec.title)
        taken.add(new_id)
        deps = original.dependencies if not chain else (chain[-1].id,)
        chain.append(
            Task(
                id=new_id,
                title=spec.title,
                description=spec.description,
                agent_role=spec.agent_role,
                status=TaskStatus.PENDING,
                dependencies=deps,
            )
        )

    last_id = chain[-1].id
    remaining = []
    for task in project.tasks:
        if task.id == task_id:
            continue
        if task_id in task.dependencies:
            task = replace(task, dependencies=_repoint(task.dependencies, task_id, last_id))
        remaining.append(task)

    rewired = evolve(
        project,
        tasks=tuple(remaining) + tuple(chain),
        retired_task_ids=project.retired_task_ids + (task_id,),
    )
    rewired = refresh_blocked(rewired)
    index = {t.id: t for t in rewired.tasks}
    return rewired, [index[t.id] for t in chain]


def _repoint(deps: tuple[str, ...], old_id: str, new_id: str) -> tuple[str, ...]:
    result: list[str] = []
    for dep_id in deps:
        dep_id = new_id if dep_id == old_id else dep_id
        if dep_id not in result:
            result.append(dep_id)
    return tuple(result)
