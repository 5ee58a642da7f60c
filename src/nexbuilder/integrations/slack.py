"""Slack Web API integration for task notifications."""

import logging
from dataclasses import dataclass

from nexbuilder.core.graph import summarize
from nexbuilder.db.models import Project, Task, TaskStatus

logger = logging.getLogger(__name__)

STATUS_EMOJI = {
    TaskStatus.PENDING: ":white_circle:",
    TaskStatus.IN_PROGRESS: ":large_blue_circle:",
    TaskStatus.COMPLETED: ":white_check_mark:",
    TaskStatus.FAILED: ":x:",
    TaskStatus.BLOCKED: ":red_circle:",
}


class SlackError(Exception):
    """Raised when a Slack operation fails."""


@dataclass
class SlackMessage:
    channel: str
    ts: str
    text: str


def get_client(token: str | None):
    """Get a Slack WebClient. Returns None if no token provided."""
    if not token:
        return None
    from slack_sdk import WebClient
    return WebClient(token=token)


def send_message(
    token: str | None,
    channel: str,
    text: str,
    blocks: list[dict] | None = None,
    client=None,
) -> SlackMessage:
    """Send a message to a Slack channel."""
    client = client or get_client(token)
    if not client:
        raise SlackError("Slack not configured: SLACK_BOT_TOKEN not set")

    response = client.chat_postMessage(channel=channel, text=text, blocks=blocks)
    return SlackMessage(channel=response["channel"], ts=response["ts"], text=text)


def format_task_notification(task: Task, project_name: str) -> list[dict]:
    """Format a finished task as Slack blocks."""
    emoji = STATUS_EMOJI.get(task.status, ":grey_question:")
    text = (
        f"{emoji} *Task Update*\n*{task.title}* (`{task.id}`)\n"
        f"Status: *{task.status.value}* | Project: {project_name}"
    )
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]


def format_status_update(project: Project) -> list[dict]:
    """Format a project status summary as Slack blocks."""
    s = summarize(project)
    c = s["counts"]
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f":bar_chart: *Project Status: {project.name}*\n"
                    f":white_check_mark: Completed: {c['completed']} | "
                    f":large_blue_circle: In Progress: {c['in_progress']} | "
                    f":white_circle: Pending: {c['pending']} | "
                    f":x: Failed: {c['failed']} | "
                    f":red_circle: Blocked: {c['blocked']}\n"
                    f"Progress: {s['progress_pct']:.0f}% ({c['completed']}/{s['total']})"
                ),
            },
        }
    ]


class SlackNotifier:
    """Posts a message to one channel whenever a task finishes."""

    def __init__(self, token: str, channel: str, client=None):
        self.token = token
        self.channel = channel
        self.client = client

    def task_finished(self, project: Project, task: Task) -> None:
        try:
            send_message(
                self.token,
                self.channel,
                f"{task.title}: {task.status.value}",
                blocks=format_task_notification(task, project.name),
                client=self.client,
            )
        except Exception as e:
            raise SlackError(f"Failed to post to {self.channel}: {e}") from e
