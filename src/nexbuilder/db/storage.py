"""Snapshot persistence for the current project, its idea and the AI settings."""

import json
import sqlite3
import threading
from datetime import datetime

from nexbuilder.db.models import (
    ActivityLogEntry,
    AgentRole,
    AIConfig,
    LogStatus,
    Project,
    ProjectFile,
    Provider,
    Task,
    TaskStatus,
)

IDEA_KEY = "idea"
CONFIG_KEY = "ai_config"


def save_project(db: sqlite3.Connection, project: Project) -> None:
    """Replace the stored project with ``project`` in one transaction."""
    with db:
        _delete_project_rows(db)
        db.execute(
            """INSERT INTO projects (id, name, description, created_at, version)
               VALUES (?, ?, ?, ?, ?)""",
            (
                project.id,
                project.name,
                project.description,
                _dt_out(project.created_at) or datetime.now().isoformat(),
                project.version,
            ),
        )
        db.executemany(
            """INSERT INTO tasks
               (project_id, id, position, title, description, agent_role, status, output)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    project.id, t.id, i, t.title, t.description,
                    t.agent_role.value, t.status.value, t.output,
                )
                for i, t in enumerate(project.tasks)
            ],
        )
        db.executemany(
            """INSERT INTO task_dependencies (project_id, task_id, depends_on_task_id, position)
               VALUES (?, ?, ?, ?)""",
            [
                (project.id, t.id, dep_id, i)
                for t in project.tasks
                for i, dep_id in enumerate(t.dependencies)
            ],
        )
        db.executemany(
            """INSERT INTO project_files (project_id, path, position, content, language)
               VALUES (?, ?, ?, ?, ?)""",
            [(project.id, f.path, i, f.content, f.language) for i, f in enumerate(project.files)],
        )
        db.executemany(
            "INSERT INTO project_packages (project_id, name, position) VALUES (?, ?, ?)",
            [(project.id, name, i) for i, name in enumerate(project.packages)],
        )
        db.executemany(
            """INSERT INTO activity_log
               (id, project_id, position, task_id, task_title, timestamp, status, details)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    e.id, project.id, i, e.task_id, e.task_title,
                    _dt_out(e.timestamp), e.status.value, e.details,
                )
                for i, e in enumerate(project.activity_log)
            ],
        )
        db.executemany(
            "INSERT INTO retired_task_ids (project_id, task_id) VALUES (?, ?)",
            [(project.id, task_id) for task_id in project.retired_task_ids],
        )


def load_project(db: sqlite3.Connection) -> Project | None:
    """Load the stored project, or None if there is none."""
    row = db.execute("SELECT * FROM projects ORDER BY created_at DESC LIMIT 1").fetchone()
    if not row:
        return None
    project_id = row["id"]

    deps: dict[str, list[str]] = {}
    for d in db.execute(
        "SELECT * FROM task_dependencies WHERE project_id = ? ORDER BY task_id, position",
        (project_id,),
    ).fetchall():
        deps.setdefault(d["task_id"], []).append(d["depends_on_task_id"])

    tasks = tuple(
        _row_to_task(r, deps.get(r["id"], []))
        for r in db.execute(
            "SELECT * FROM tasks WHERE project_id = ? ORDER BY position", (project_id,)
        ).fetchall()
    )
    files = tuple(
        ProjectFile(path=r["path"], content=r["content"], language=r["language"] or "plaintext")
        for r in db.execute(
            "SELECT * FROM project_files WHERE project_id = ? ORDER BY position", (project_id,)
        ).fetchall()
    )
    packages = tuple(
        r["name"]
        for r in db.execute(
            "SELECT name FROM project_packages WHERE project_id = ? ORDER BY position",
            (project_id,),
        ).fetchall()
    )
    log = tuple(
        _row_to_entry(r)
        for r in db.execute(
            "SELECT * FROM activity_log WHERE project_id = ? ORDER BY position", (project_id,)
        ).fetchall()
    )
    retired = tuple(
        r["task_id"]
        for r in db.execute(
            "SELECT task_id FROM retired_task_ids WHERE project_id = ? ORDER BY rowid",
            (project_id,),
        ).fetchall()
    )

    return Project(
        id=project_id,
        name=row["name"],
        description=row["description"] or "",
        tasks=tasks,
        files=files,
        packages=packages,
        activity_log=log,
        created_at=_parse_dt(row["created_at"]),
        version=row["version"] or 0,
        retired_task_ids=retired,
    )


def clear_project(db: sqlite3.Connection) -> None:
    """Delete the stored project and the idea it was generated from."""
    with db:
        _delete_project_rows(db)
        db.execute("DELETE FROM settings WHERE key = ?", (IDEA_KEY,))


def _delete_project_rows(db: sqlite3.Connection):
    for table in (
        "retired_task_ids",
        "activity_log",
        "project_packages",
        "project_files",
        "task_dependencies",
        "tasks",
        "projects",
    ):
        db.execute(f"DELETE FROM {table}")


# ── Settings ─────────────────────────────────────────────────────────────────


def _get_setting(db: sqlite3.Connection, key: str) -> str | None:
    row = db.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def _set_setting(db: sqlite3.Connection, key: str, value: str):
    db.execute(
        """INSERT INTO settings (key, value) VALUES (?, ?)
           ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = datetime('now')""",
        (key, value),
    )
    db.commit()


def save_idea(db: sqlite3.Connection, idea: str) -> None:
    _set_setting(db, IDEA_KEY, idea)


def load_idea(db: sqlite3.Connection) -> str | None:
    return _get_setting(db, IDEA_KEY)


def save_config(db: sqlite3.Connection, config: AIConfig) -> None:
    _set_setting(
        db,
        CONFIG_KEY,
        json.dumps(
            {"provider": config.provider.value, "model": config.model, "api_key": config.api_key}
        ),
    )


def load_config(db: sqlite3.Connection) -> AIConfig | None:
    raw = _get_setting(db, CONFIG_KEY)
    if raw is None:
        return None
    data = json.loads(raw)
    return AIConfig(
        provider=Provider(data.get("provider", Provider.CLAUDE.value)),
        model=data.get("model"),
        api_key=data.get("api_key"),
    )


class SqliteStorage:
    """Persistence backed by one sqlite connection, safe to share across threads."""

    def __init__(self, db: sqlite3.Connection):
        self.db = db
        self._lock = threading.Lock()

    def load_project(self) -> Project | None:
        with self._lock:
            return load_project(self.db)

    def save_project(self, project: Project) -> None:
        with self._lock:
            save_project(self.db, project)

    def clear_project(self) -> None:
        with self._lock:
            clear_project(self.db)

    def load_config(self) -> AIConfig | None:
        with self._lock:
            return load_config(self.db)

    def save_config(self, config: AIConfig) -> None:
        with self._lock:
            save_config(self.db, config)

    def load_idea(self) -> str | None:
        with self._lock:
            return load_idea(self.db)

    def save_idea(self, idea: str) -> None:
        with self._lock:
            save_idea(self.db, idea)


# ── Row-to-model helpers ────────────────────────────────────────────────────


def _row_to_task(row: sqlite3.Row, dependencies: list[str]) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"] or "",
        agent_role=AgentRole(row["agent_role"]),
        status=TaskStatus(row["status"]),
        dependencies=tuple(dependencies),
        output=row["output"],
    )


def _row_to_entry(row: sqlite3.Row) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=row["id"],
        task_id=row["task_id"],
        task_title=row["task_title"],
        timestamp=_parse_dt(row["timestamp"]),
        status=LogStatus(row["status"]),
        details=row["details"],
    )


def _dt_out(val: datetime | None) -> str | None:
    return val.isoformat() if val else None


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
