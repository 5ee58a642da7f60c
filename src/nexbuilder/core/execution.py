"""Execution pipeline steps for a single task.

The orchestrator calls these around the executor collaborator:
``start_execution`` before the call, then ``complete_execution`` or
``fail_execution`` with whatever came back.
"""

from dataclasses import replace

from nexbuilder.core.activity import record, truncate_details
from nexbuilder.core.artifacts import file_listing, merge_files
from nexbuilder.core.graph import find_task, is_ready, replace_task, require_task
from nexbuilder.db.models import LogStatus, Project, ProjectFile, Task, TaskStatus
from nexbuilder.errors import StaleExecutionError, TaskNotReadyError


def build_context(project: Project, task: Task) -> str:
    """Assemble dependency outputs plus the current file listing."""
    blocks = []
    for dep_id in task.dependencies:
        dep = find_task(project, dep_id)
        if dep is None:
            continue
        blocks.append(f'Task "{dep.title}":\n{dep.output or ""}')
    context = "\n\n".join(blocks)

    listing = file_listing(project.files)
    if listing:
        context = f"{context}\n{listing}"
    return context


def start_execution(project: Project, task_id: str) -> Project:
    """Mark a ready task in progress and log that it started."""
    task = require_task(project, task_id)
    index = {t.id: t for t in project.tasks}
    if not is_ready(task, index):
        raise TaskNotReadyError(
            f"Task '{task_id}' is not ready (status: {task.status.value})"
        )
    running = replace(task, status=TaskStatus.IN_PROGRESS)
    project = replace_task(project, running)
    return record(project, running, LogStatus.STARTED)


def completion_details(output: str) -> str:
    return truncate_details(output)


def _require_running(project: Project, task_id: str) -> Task:
    task = require_task(project, task_id)
    if task.status != TaskStatus.IN_PROGRESS:
        raise StaleExecutionError(
            f"Task '{task_id}' is {task.status.value}, not in progress; discarding its result"
        )
    return task


def complete_execution(
    project: Project,
    task_id: str,
    output: str,
    files: list[ProjectFile],
) -> Project:
    """Merge produced files and mark the task completed with its output."""
    task = _require_running(project, task_id)
    done = replace(task, status=TaskStatus.COMPLETED, output=output)
    project = replace_task(project, done)
    project = replace(project, files=merge_files(project.files, files))
    return record(project, done, LogStatus.COMPLETED, completion_details(output))


def reset_failed(project: Project, task_id: str) -> Project:
    """Put a failed task back to pending so it can be retried by hand."""
    task = require_task(project, task_id)
    if task.status != TaskStatus.FAILED:
        raise TaskNotReadyError(
            f"Task '{task_id}' is {task.status.value}; only failed tasks can be retried"
        )
    return replace_task(project, replace(task, status=TaskStatus.PENDING))


def fail_execution(project: Project, task_id: str, error: BaseException) -> Project:
    """Mark the task failed and log the error message."""
    task = _require_running(project, task_id)
    failed = replace(task, status=TaskStatus.FAILED, output=None)
    project = replace_task(project, failed)
    return record(project, failed, LogStatus.FAILED, str(error) or type(error).__name__)
