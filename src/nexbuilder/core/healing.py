"""Self-healing: turn a runtime fault reported by the preview into a fix task."""

from nexbuilder.core.activity import record
from nexbuilder.core.graph import evolve, taken_task_ids, unique_task_id
from nexbuilder.db.models import AgentRole, LogStatus, Project, Task, TaskStatus

TITLE_PREFIX_LENGTH = 30

FIX_INSTRUCTIONS = (
    "Locate the code responsible for this error in the existing files, "
    "identify the root cause and patch it. Output the FULL corrected content "
    "of every file you change."
)


def fix_task_title(message: str) -> str:
    prefix = message.strip().splitlines()[0] if message.strip() else "runtime error"
    if len(prefix) > TITLE_PREFIX_LENGTH:
        prefix = prefix[:TITLE_PREFIX_LENGTH] + "..."
    return f"Fix: {prefix}"


def fix_task_description(message: str, stack: str | None) -> str:
    parts = [
        "The live preview reported a runtime error.",
        f"\nError message:\n{message}",
        f"\nStack trace:\n{stack or '(no stack trace available)'}",
        f"\n{FIX_INSTRUCTIONS}",
    ]
    return "\n".join(parts)


def last_completed_task(project: Project) -> Task | None:
    for task in reversed(project.tasks):
        if task.status == TaskStatus.COMPLETED:
            return task
    return None


def inject_fix_task(
    project: Project,
    message: str,
    stack: str | None = None,
) -> tuple[Project, Task]:
    """Append a pending fix task depending on the latest completed task."""
    title = fix_task_title(message)
    anchor = last_completed_task(project)
    task = Task(
        id=unique_task_id(taken_task_ids(project), title),
        title=title,
        description=fix_task_description(message, stack),
        agent_role=AgentRole.DEVELOPER,
        status=TaskStatus.PENDING,
        dependencies=(anchor.id,) if anchor else (),
    )
    project = evolve(project, tasks=project.tasks + (task,))
    project = record(project, task, LogStatus.SPLIT, "Self-healing task created from runtime error")
    return project, task
