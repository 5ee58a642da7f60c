"""MCP prompt templates for common workflows."""

from nexbuilder.mcp.server import mcp


@mcp.prompt()
def plan_app(idea: str) -> str:
    """Generate a prompt to turn an app idea into a buildable task graph."""
    return (
        f"I want to build the following app:\n\n"
        f"{idea}\n\n"
        f"Please:\n"
        f"1. Use create_project with a clear, detailed version of this idea\n"
        f"2. Review the generated tasks and their dependencies\n"
        f"3. Split any task that looks too large with split_task\n"
        f"4. Use get_ready_tasks to tell me what can start right away"
    )


@mcp.prompt()
def status_report() -> str:
    """Generate a prompt for a project status report."""
    return (
        "Please generate a status report for the current project.\n\n"
        "Use get_project and get_activity, then provide:\n"
        "1. Overall progress summary\n"
        "2. Tasks that failed and the errors they reported\n"
        "3. Tasks that are blocked and which dependency is missing\n"
        "4. The tasks that are ready to run next"
    )


@mcp.prompt()
def review_task(task_id: str) -> str:
    """Generate a prompt to review the output of a task."""
    return (
        f"Please review the work done for task '{task_id}'.\n\n"
        f"Use get_task to read its output and read_file for the files it wrote.\n"
        f"Then provide:\n"
        f"1. Summary of what was produced\n"
        f"2. Whether the task goals appear to be met\n"
        f"3. Any bugs or concerns\n"
        f"4. Whether a fix task should be queued with report_runtime_error"
    )
