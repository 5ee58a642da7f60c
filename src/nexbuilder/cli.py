"""CLI entry point for nexbuilder."""

import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path

import click

from nexbuilder.config import get_config, resolve_ai_config
from nexbuilder.core import graph
from nexbuilder.core.activity import entries_for_task
from nexbuilder.core.artifacts import archive_name, export_zip, get_file, write_files
from nexbuilder.core.serialization import project_from_dict, project_to_dict, task_to_dict
from nexbuilder.db.models import AIConfig, Provider
from nexbuilder.errors import NexBuilderError
from nexbuilder.runtime import open_orchestrator

STATUS_ICONS = {
    "pending": "○",
    "in_progress": "●",
    "completed": "✓",
    "failed": "✗",
    "blocked": "⊘",
}


@contextmanager
def _orchestrator():
    """Yield an orchestrator, turning domain errors into a clean exit."""
    try:
        with open_orchestrator() as orch:
            yield orch
    except (NexBuilderError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _require_project(orch):
    project = orch.project
    if project is None:
        click.echo("No project yet. Run 'nb plan \"<your idea>\"' first.")
        sys.exit(1)
    return project


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose):
    """nb - NexBuilder: plan, split and build apps from a task graph"""
    config = get_config()
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ── Project Commands ──────────────────────────────────────────────────────────


@main.command("plan")
@click.argument("idea")
def plan_command(idea):
    """Generate a task graph for an app idea (replaces the current project)."""
    with _orchestrator() as orch:
        project = orch.create_project(idea)
        orch.storage.save_idea(idea)
        click.echo(f"Project created: {project.name} ({len(project.tasks)} tasks)")
        for task in project.tasks:
            _echo_task_line(task)


@main.command("status")
def status_command():
    """Show project progress."""
    with _orchestrator() as orch:
        project = _require_project(orch)
        s = graph.summarize(project)
        click.echo(f"Project: {project.name}")
        idea = orch.storage.load_idea()
        if idea:
            click.echo(f"  Idea: {idea}")
        click.echo(f"  Progress: {s['progress_pct']}% ({s['counts']['completed']}/{s['total']})")
        for status, count in s["counts"].items():
            click.echo(f"  {STATUS_ICONS[status]} {status}: {count}")
        click.echo(f"  Ready: {s['ready']}  Files: {s['files']}")
        if project.packages:
            click.echo(f"  Packages: {', '.join(project.packages)}")


@main.command("run-all")
@click.option("--limit", type=int, default=None, help="Stop after this many tasks")
def run_all(limit):
    """Execute ready tasks until none remain or one fails."""
    with _orchestrator() as orch:
        _require_project(orch)
        finished = orch.run_ready(limit=limit)
        for task in finished:
            click.echo(f"✓ {task.id}: {task.title}")
        remaining = orch.ready_tasks()
        click.echo(f"Executed {len(finished)} task(s); {len(remaining)} ready.")


@main.command("fix")
@click.argument("message")
@click.option("--stack", default=None, help="Stack trace for the error")
def fix_command(message, stack):
    """Report a runtime error and queue a fix task for it."""
    with _orchestrator() as orch:
        task = orch.report_runtime_error(message, stack)
        click.echo(f"Created fix task: {task.id}")
        click.echo(f"  Title: {task.title}")
        if task.dependencies:
            click.echo(f"  Depends on: {', '.join(task.dependencies)}")


@main.command("log")
@click.option("--task", "task_id", default=None, help="Only entries for this task")
@click.option("--limit", default=20, type=int, help="Number of most recent entries")
def log_command(task_id, limit):
    """Show the activity log, newest first."""
    with _orchestrator() as orch:
        project = _require_project(orch)
        entries = entries_for_task(project, task_id) if task_id else list(project.activity_log)
        if not entries:
            click.echo("No activity yet.")
            return
        for entry in reversed(entries[-limit:]):
            stamp = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
            details = f" - {entry.details}" if entry.details else ""
            click.echo(f"  {stamp} [{entry.status.value.upper()}] {entry.task_title}{details}")


@main.command("reset")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def reset_command(yes):
    """Delete the current project."""
    if not yes:
        click.confirm("Delete the current project and all its files?", abort=True)
    with _orchestrator() as orch:
        orch.reset()
        click.echo("Project reset.")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("list")
@click.option("--ready", is_flag=True, help="Only tasks that can run now")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_list(ready, json_output):
    """List tasks."""
    with _orchestrator() as orch:
        project = _require_project(orch)
        tasks = orch.ready_tasks() if ready else list(project.tasks)

        if json_output:
            click.echo(json.dumps([task_to_dict(t) for t in tasks], indent=2))
            return

        if not tasks:
            click.echo("No tasks found.")
            return
        for task in tasks:
            _echo_task_line(task)


@task_group.command("show")
@click.argument("task_id")
def task_show(task_id):
    """Show task details."""
    with _orchestrator() as orch:
        project = _require_project(orch)
        task = orch.get_task(task_id)
        click.echo(f"Task: {task.id}")
        click.echo(f"  Title: {task.title}")
        click.echo(f"  Role: {task.agent_role.value}")
        click.echo(f"  Status: {task.status.value}")
        if task.description:
            click.echo(f"  Description: {task.description}")
        if task.dependencies:
            click.echo(f"  Depends on: {', '.join(task.dependencies)}")
        entries = entries_for_task(project, task.id)
        if entries:
            click.echo("  Activity:")
            for entry in entries:
                details = f" - {entry.details}" if entry.details else ""
                click.echo(f"    [{entry.status.value}] {entry.timestamp:%H:%M:%S}{details}")
        if task.output:
            click.echo("  Output:")
            click.echo(task.output)


@task_group.command("run")
@click.argument("task_id")
@click.option("--retry", is_flag=True, help="Reset a failed task and run it again")
def task_run(task_id, retry):
    """Execute one ready task."""
    with _orchestrator() as orch:
        task = orch.execute_task(task_id, retry=retry)
        click.echo(f"Completed {task.id}: {task.title}")
        project = orch.project
        click.echo(f"  Files in project: {len(project.files)}")


@task_group.command("split")
@click.argument("task_id")
def task_split(task_id):
    """Decompose a task into sequential subtasks."""
    with _orchestrator() as orch:
        chain = orch.split_task(task_id)
        click.echo(f"Split {task_id} into {len(chain)} subtasks:")
        for task in chain:
            _echo_task_line(task)


@task_group.command("edit")
@click.argument("task_id")
@click.option("--title", default=None, help="New title")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--refine", is_flag=True, help="Let the model rewrite the description")
def task_edit(task_id, title, description, refine):
    """Edit a pending task's title and description."""
    with _orchestrator() as orch:
        task = orch.get_task(task_id)
        title = title if title is not None else task.title
        description = description if description is not None else task.description
        if refine:
            description = orch.refine_description(title, description)
        updated = orch.edit_task(task_id, title, description)
        click.echo(f"Updated {updated.id}: {updated.title}")
        if refine:
            click.echo(f"  Description: {updated.description}")


@task_group.command("add-dep")
@click.argument("task_id")
@click.argument("depends_on_id")
def task_add_dep(task_id, depends_on_id):
    """Make TASK_ID depend on DEPENDS_ON_ID."""
    with _orchestrator() as orch:
        task = orch.add_dependency(task_id, depends_on_id)
        click.echo(f"{task.id} now depends on: {', '.join(task.dependencies)}")


@task_group.command("remove-dep")
@click.argument("task_id")
@click.argument("depends_on_id")
def task_remove_dep(task_id, depends_on_id):
    """Remove a dependency edge."""
    with _orchestrator() as orch:
        task = orch.remove_dependency(task_id, depends_on_id)
        deps = ", ".join(task.dependencies) or "(none)"
        click.echo(f"{task.id} now depends on: {deps}")


# ── Package Commands ──────────────────────────────────────────────────────────


@main.group("package")
def package_group():
    """Manage the project's package list."""
    pass


@package_group.command("add")
@click.argument("name")
def package_add(name):
    with _orchestrator() as orch:
        project = orch.add_package(name)
        click.echo(f"Packages: {', '.join(project.packages)}")


@package_group.command("remove")
@click.argument("name")
def package_remove(name):
    with _orchestrator() as orch:
        project = orch.remove_package(name)
        click.echo(f"Packages: {', '.join(project.packages) or '(none)'}")


@package_group.command("list")
def package_list():
    with _orchestrator() as orch:
        project = _require_project(orch)
        if not project.packages:
            click.echo("No packages.")
            return
        for name in project.packages:
            click.echo(f"  {name}")


# ── File Commands ─────────────────────────────────────────────────────────────


@main.group("files")
def files_group():
    """Inspect generated files."""
    pass


@files_group.command("list")
def files_list():
    with _orchestrator() as orch:
        project = _require_project(orch)
        if not project.files:
            click.echo("No files generated yet.")
            return
        for f in project.files:
            click.echo(f"  {f.path} ({f.language}, {len(f.content)} chars)")


@files_group.command("show")
@click.argument("path")
def files_show(path):
    with _orchestrator() as orch:
        project = _require_project(orch)
        f = get_file(project, path)
        if f is None:
            click.echo(f"File not found: {path}", err=True)
            sys.exit(1)
        click.echo(f.content)


@main.command("export")
@click.argument("directory", type=click.Path(file_okay=False, path_type=Path))
@click.option("--zip", "as_zip", is_flag=True, help="Write a zip archive instead of loose files")
@click.option("--json", "as_json", is_flag=True, help="Also write the project snapshot as JSON")
def export_command(directory, as_zip, as_json):
    """Export generated files to DIRECTORY."""
    with _orchestrator() as orch:
        project = _require_project(orch)
        directory.mkdir(parents=True, exist_ok=True)
        if as_zip:
            target = directory / archive_name(project)
            target.write_bytes(export_zip(project))
            click.echo(f"Wrote {target}")
        else:
            written = write_files(project, directory)
            click.echo(f"Wrote {len(written)} file(s) to {directory}")
        if as_json:
            target = directory / "project.json"
            target.write_text(json.dumps(project_to_dict(project), indent=2), encoding="utf-8")
            click.echo(f"Wrote {target}")


@main.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def import_command(file):
    """Replace the current project with a JSON snapshot."""
    with _orchestrator() as orch:
        try:
            data = json.loads(file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"{file} is not valid JSON: {e}") from e
        project = orch.import_project(project_from_dict(data))
        click.echo(f"Imported {project.name} ({len(project.tasks)} tasks, {len(project.files)} files)")


# ── Config Commands ───────────────────────────────────────────────────────────


@main.group("config")
def config_group():
    """Show or change the AI provider settings."""
    pass


@config_group.command("show")
def config_show():
    with _orchestrator() as orch:
        ai = resolve_ai_config(orch.storage.load_config(), get_config())
        click.echo(f"Provider: {ai.provider.value}")
        click.echo(f"Model: {ai.model}")
        click.echo(f"API key: {_mask(ai.api_key)}")


@config_group.command("set")
@click.option("--provider", type=click.Choice([p.value for p in Provider]), default=None)
@click.option("--model", default=None)
@click.option("--api-key", default=None)
def config_set(provider, model, api_key):
    with _orchestrator() as orch:
        current = orch.storage.load_config() or AIConfig(provider=get_config().provider)
        updated = AIConfig(
            provider=Provider(provider) if provider else current.provider,
            model=model if model is not None else current.model,
            api_key=api_key if api_key is not None else current.api_key,
        )
        orch.storage.save_config(updated)
        click.echo(f"Saved: provider={updated.provider.value} model={updated.model or '(default)'}")


# ── Dashboard Command ────────────────────────────────────────────────────────


@main.command("ui")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8788, type=int, help="Port to listen on")
@click.option("--open/--no-open", default=True, help="Open browser automatically")
def ui_command(host, port, open):
    """Launch the web dashboard."""
    import webbrowser

    from nexbuilder.web.app import run_server

    url = f"http://{host}:{port}"
    click.echo(f"Starting dashboard at {url}")
    if open:
        webbrowser.open(url)
    run_server(host=host, port=port)


# ── MCP Server Command ───────────────────────────────────────────────────────


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from nexbuilder.mcp.server import mcp
    from nexbuilder.mcp import prompts  # noqa: F401 - registers prompts

    mcp.run(transport="stdio")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _echo_task_line(task):
    icon = STATUS_ICONS.get(task.status.value, "?")
    deps = f" [depends: {', '.join(task.dependencies)}]" if task.dependencies else ""
    click.echo(f"  {icon} {task.id}: {task.title} ({task.status.value}, {task.agent_role.value}){deps}")


def _mask(key: str | None) -> str:
    if not key:
        return "(not set)"
    return key[:4] + "…" + key[-4:] if len(key) > 8 else "****"


if __name__ == "__main__":
    main()
