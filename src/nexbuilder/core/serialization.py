"""JSON codec for project snapshots.

``project_from_dict`` is a versioned loader: documents written before the
activity log and package list existed (no ``schemaVersion``) load with
those collections empty.
"""

from datetime import datetime

from nexbuilder.core.artifacts import infer_language
from nexbuilder.db.models import (
    ActivityLogEntry,
    AgentRole,
    LogStatus,
    Project,
    ProjectFile,
    Task,
    TaskStatus,
)
from nexbuilder.errors import ParseError

SCHEMA_VERSION = 2


def _dt_out(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_in(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as written by the browser app.
        return datetime.fromtimestamp(value / 1000)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ParseError(f"Invalid timestamp: {value!r}") from e


# ── Encode ───────────────────────────────────────────────────────────────────


def task_to_dict(t: Task) -> dict:
    data = {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "agentRole": t.agent_role.value,
        "status": t.status.value,
        "dependencies": list(t.dependencies),
    }
    if t.output is not None:
        data["output"] = t.output
    return data


def file_to_dict(f: ProjectFile) -> dict:
    return {"path": f.path, "content": f.content, "language": f.language}


def entry_to_dict(e: ActivityLogEntry) -> dict:
    data = {
        "id": e.id,
        "taskId": e.task_id,
        "taskTitle": e.task_title,
        "timestamp": _dt_out(e.timestamp),
        "status": e.status.value,
    }
    if e.details is not None:
        data["details"] = e.details
    return data


def project_to_dict(p: Project) -> dict:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "tasks": [task_to_dict(t) for t in p.tasks],
        "files": [file_to_dict(f) for f in p.files],
        "packages": list(p.packages),
        "activityLog": [entry_to_dict(e) for e in p.activity_log],
        "createdAt": _dt_out(p.created_at),
        "version": p.version,
        "retiredTaskIds": list(p.retired_task_ids),
    }


# ── Decode ───────────────────────────────────────────────────────────────────


def _migrate(data: dict) -> dict:
    """Bring an older document up to the current schema by filling defaults."""
    version = data.get("schemaVersion", 1)
    if version > SCHEMA_VERSION:
        raise ParseError(f"Unsupported project schema version: {version}")
    migrated = dict(data)
    if version < 2:
        migrated.setdefault("activityLog", [])
        migrated.setdefault("packages", [])
        migrated.setdefault("retiredTaskIds", [])
        migrated.setdefault("version", 0)
    migrated["schemaVersion"] = SCHEMA_VERSION
    return migrated


def task_from_dict(data: dict) -> Task:
    try:
        status = TaskStatus(data.get("status", TaskStatus.PENDING.value))
    except ValueError as e:
        raise ParseError(f"Unknown task status: {data.get('status')!r}") from e
    output = data.get("output")
    if status != TaskStatus.COMPLETED:
        output = None
    return Task(
        id=str(data["id"]),
        title=str(data.get("title", "")),
        description=str(data.get("description", "")),
        agent_role=AgentRole.parse(data.get("agentRole")),
        status=status,
        dependencies=tuple(dict.fromkeys(str(d) for d in data.get("dependencies") or [])),
        output=output,
    )


def file_from_dict(data: dict) -> ProjectFile:
    path = str(data["path"])
    return ProjectFile(
        path=path,
        content=str(data.get("content", "")),
        language=data.get("language") or infer_language(path),
    )


def entry_from_dict(data: dict) -> ActivityLogEntry:
    try:
        status = LogStatus(data["status"])
    except ValueError as e:
        raise ParseError(f"Unknown log status: {data['status']!r}") from e
    return ActivityLogEntry(
        id=str(data["id"]),
        task_id=str(data["taskId"]),
        task_title=str(data.get("taskTitle", "")),
        timestamp=_dt_in(data.get("timestamp")) or datetime.now(),
        status=status,
        details=data.get("details"),
    )


def _check_unique(values, what: str) -> None:
    seen = set()
    for value in values:
        if value in seen:
            raise ParseError(f"Duplicate {what} in project document: {value}")
        seen.add(value)


def project_from_dict(data: dict) -> Project:
    if not isinstance(data, dict):
        raise ParseError("Project document must be a JSON object")
    data = _migrate(data)
    try:
        project = Project(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            tasks=tuple(task_from_dict(t) for t in data.get("tasks") or []),
            files=tuple(file_from_dict(f) for f in data.get("files") or []),
            packages=tuple(dict.fromkeys(str(p) for p in data["packages"])),
            activity_log=tuple(entry_from_dict(e) for e in data["activityLog"]),
            created_at=_dt_in(data.get("createdAt")),
            version=int(data["version"]),
            retired_task_ids=tuple(dict.fromkeys(str(i) for i in data["retiredTaskIds"])),
        )
    except KeyError as e:
        raise ParseError(f"Project document is missing field {e}") from e
    _check_unique((t.id for t in project.tasks), "task id")
    _check_unique((f.path for f in project.files), "file path")
    _check_unique((e.id for e in project.activity_log), "activity entry id")
    return project
