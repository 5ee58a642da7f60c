"""MCP server exposing the builder's project and task operations."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import Context, FastMCP

from nexbuilder.config import Config, get_config
from nexbuilder.core import graph
from nexbuilder.core.activity import entries_for_task
from nexbuilder.core.artifacts import get_file
from nexbuilder.core.orchestrator import Orchestrator
from nexbuilder.core.serialization import entry_to_dict, file_to_dict, task_to_dict
from nexbuilder.errors import NexBuilderError
from nexbuilder.integrations import slack as slack_mod
from nexbuilder.runtime import open_orchestrator


@dataclass
class AppContext:
    orchestrator: Orchestrator
    config: Config


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Open the database and build the orchestrator on startup, close on shutdown."""
    config = get_config()
    with open_orchestrator(config) as orch:
        orch.load()
        yield AppContext(orchestrator=orch, config=config)


mcp = FastMCP("nexbuilder", lifespan=app_lifespan)


def _orch(ctx: Context) -> Orchestrator:
    return ctx.request_context.lifespan_context.orchestrator


def _project_summary(project) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "packages": list(project.packages),
        "summary": graph.summarize(project),
        "tasks": [_task_brief(t) for t in project.tasks],
    }


def _task_brief(task) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status.value,
        "agentRole": task.agent_role.value,
        "dependencies": list(task.dependencies),
    }


# ── Project Tools ─────────────────────────────────────────────────────────────


@mcp.tool()
def create_project(ctx: Context, idea: str) -> dict:
    """Generate a task graph for an app idea. Replaces the current project."""
    try:
        project = _orch(ctx).create_project(idea)
    except (NexBuilderError, ValueError) as e:
        return {"error": str(e)}
    return _project_summary(project)


@mcp.tool()
def get_project(ctx: Context) -> dict:
    """Get the current project with its tasks and progress."""
    project = _orch(ctx).project
    if project is None:
        return {"error": "No project yet. Use create_project first."}
    return _project_summary(project)


@mcp.tool()
def get_activity(ctx: Context, task_id: str | None = None, limit: int = 20) -> list[dict]:
    """Recent activity log entries, optionally for a single task."""
    project = _orch(ctx).project
    if project is None:
        return []
    entries = entries_for_task(project, task_id) if task_id else list(project.activity_log)
    return [entry_to_dict(e) for e in entries[-limit:]]


# ── Task Tools ────────────────────────────────────────────────────────────────


@mcp.tool()
def get_ready_tasks(ctx: Context) -> list[dict]:
    """Tasks that are pending with every dependency completed."""
    return [_task_brief(t) for t in _orch(ctx).ready_tasks()]


@mcp.tool()
def get_task(ctx: Context, task_id: str) -> dict:
    """Get full details of a task including its output."""
    try:
        return task_to_dict(_orch(ctx).get_task(task_id))
    except NexBuilderError as e:
        return {"error": str(e)}


@mcp.tool()
def execute_task(ctx: Context, task_id: str, retry: bool = False) -> dict:
    """Execute one ready task. With retry=True a failed task is run again."""
    try:
        task = _orch(ctx).execute_task(task_id, retry=retry)
    except Exception as e:
        return {"error": str(e), "task_id": task_id}
    return task_to_dict(task)


@mcp.tool()
def run_ready_tasks(ctx: Context, limit: int | None = None) -> dict:
    """Execute ready tasks one after another until none remain or one fails."""
    try:
        finished = _orch(ctx).run_ready(limit=limit)
    except Exception as e:
        return {"error": str(e)}
    return {"executed": [_task_brief(t) for t in finished]}


@mcp.tool()
def split_task(ctx: Context, task_id: str) -> dict:
    """Decompose a pending or blocked task into a sequential chain of subtasks."""
    try:
        chain = _orch(ctx).split_task(task_id)
    except NexBuilderError as e:
        return {"error": str(e)}
    return {"replaced": task_id, "subtasks": [_task_brief(t) for t in chain]}


@mcp.tool()
def edit_task(
    ctx: Context,
    task_id: str,
    title: str | None = None,
    description: str | None = None,
) -> dict:
    """Edit a pending task's title and/or description."""
    orch = _orch(ctx)
    try:
        current = orch.get_task(task_id)
        task = orch.edit_task(
            task_id,
            title if title is not None else current.title,
            description if description is not None else current.description,
        )
    except (NexBuilderError, ValueError) as e:
        return {"error": str(e)}
    return task_to_dict(task)


@mcp.tool()
def add_dependency(ctx: Context, task_id: str, depends_on_id: str) -> dict:
    """Make a task wait for another. Rejected if it would create a cycle."""
    try:
        return task_to_dict(_orch(ctx).add_dependency(task_id, depends_on_id))
    except NexBuilderError as e:
        return {"error": str(e)}


@mcp.tool()
def remove_dependency(ctx: Context, task_id: str, depends_on_id: str) -> dict:
    """Remove a dependency edge."""
    try:
        return task_to_dict(_orch(ctx).remove_dependency(task_id, depends_on_id))
    except NexBuilderError as e:
        return {"error": str(e)}


@mcp.tool()
def report_runtime_error(ctx: Context, message: str, stack: str | None = None) -> dict:
    """Queue a developer task to fix an error seen while running the generated app."""
    try:
        return task_to_dict(_orch(ctx).report_runtime_error(message, stack))
    except NexBuilderError as e:
        return {"error": str(e)}


# ── Package & File Tools ──────────────────────────────────────────────────────


@mcp.tool()
def add_package(ctx: Context, name: str) -> dict:
    """Add a package to the project's package list."""
    try:
        project = _orch(ctx).add_package(name)
    except (NexBuilderError, ValueError) as e:
        return {"error": str(e)}
    return {"packages": list(project.packages)}


@mcp.tool()
def remove_package(ctx: Context, name: str) -> dict:
    """Remove a package from the project's package list."""
    try:
        project = _orch(ctx).remove_package(name)
    except NexBuilderError as e:
        return {"error": str(e)}
    return {"packages": list(project.packages)}


@mcp.tool()
def list_files(ctx: Context) -> list[dict]:
    """List generated files."""
    project = _orch(ctx).project
    if project is None:
        return []
    return [{"path": f.path, "language": f.language, "size": len(f.content)} for f in project.files]


@mcp.tool()
def read_file(ctx: Context, path: str) -> dict:
    """Read a generated file."""
    project = _orch(ctx).project
    f = get_file(project, path) if project else None
    if f is None:
        return {"error": f"File not found: {path}"}
    return file_to_dict(f)


# ── Slack Tools ───────────────────────────────────────────────────────────────


@mcp.tool()
def post_status_to_slack(ctx: Context, channel: str | None = None) -> dict:
    """Post the project progress summary to Slack (defaults to NB_SLACK_CHANNEL)."""
    config = ctx.request_context.lifespan_context.config
    project = _orch(ctx).project
    if project is None:
        return {"error": "No project yet. Use create_project first."}
    channel = channel or config.slack_channel
    if not channel:
        return {"error": "No Slack channel given and NB_SLACK_CHANNEL not set"}
    try:
        result = slack_mod.send_message(
            config.slack_bot_token,
            channel,
            f"Project status: {project.name}",
            blocks=slack_mod.format_status_update(project),
        )
    except slack_mod.SlackError as e:
        return {"error": str(e)}
    return {"channel": result.channel, "ts": result.ts}
