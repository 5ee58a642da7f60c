"""Data models for nexbuilder.

Graph snapshots are immutable: every operation returns a new ``Project``
built with ``dataclasses.replace`` instead of mutating fields in place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class AgentRole(str, Enum):
    ARCHITECT = "architect"
    DEVELOPER = "developer"
    REVIEWER = "reviewer"
    PLANNER = "planner"

    @classmethod
    def parse(cls, value: str | None) -> "AgentRole":
        """Parse a role name, falling back to developer for unknown values."""
        if value is None:
            return cls.DEVELOPER
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.DEVELOPER


class LogStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    SPLIT = "split"


class Provider(str, Enum):
    CLAUDE = "claude"
    OPENROUTER = "openrouter"


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    description: str = ""
    agent_role: AgentRole = AgentRole.DEVELOPER
    status: TaskStatus = TaskStatus.PENDING
    dependencies: tuple[str, ...] = ()
    output: str | None = None


@dataclass(frozen=True)
class ProjectFile:
    path: str
    content: str
    language: str = "plaintext"


@dataclass(frozen=True)
class ActivityLogEntry:
    id: str
    task_id: str
    task_title: str
    timestamp: datetime
    status: LogStatus
    details: str | None = None


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    description: str = ""
    tasks: tuple[Task, ...] = ()
    files: tuple[ProjectFile, ...] = ()
    packages: tuple[str, ...] = ()
    activity_log: tuple[ActivityLogEntry, ...] = ()
    created_at: datetime | None = None
    version: int = 0
    retired_task_ids: tuple[str, ...] = ()


@dataclass
class Plan:
    name: str
    tasks: list[dict] = field(default_factory=list)
    packages: list[str] = field(default_factory=list)


@dataclass
class SubtaskSpec:
    title: str
    description: str = ""
    agent_role: AgentRole = AgentRole.DEVELOPER


@dataclass
class AIConfig:
    provider: Provider = Provider.CLAUDE
    model: str | None = None
    api_key: str | None = None
