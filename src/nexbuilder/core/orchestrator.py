"""The orchestrator: owns the current project snapshot and drives every mutation.

The snapshot pointer is the only mutable state. Each operation reads the
current snapshot, computes a new one with the pure functions in
``nexbuilder.core`` and installs it (auto-saving) under a short state lock.
Executions and splits each have their own in-flight gate, so at most one of
each runs at a time while the two categories stay independent.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from nexbuilder.core import graph
from nexbuilder.core.activity import record
from nexbuilder.core.artifacts import extract_files
from nexbuilder.core.collaborators import (
    DescriptionRefiner,
    Notifier,
    Persistence,
    PlanGenerator,
    TaskDecomposer,
    TaskExecutor,
)
from nexbuilder.core.execution import (
    build_context,
    complete_execution,
    fail_execution,
    reset_failed,
    start_execution,
)
from nexbuilder.core.healing import inject_fix_task
from nexbuilder.core.planning import build_project
from nexbuilder.core.recovery import recover_project
from nexbuilder.core.splitting import check_splittable, split_task
from nexbuilder.db.models import LogStatus, Project, Task, TaskStatus
from nexbuilder.errors import (
    ConfigurationError,
    NoProjectError,
    OperationInProgressError,
    StaleExecutionError,
)

logger = logging.getLogger(__name__)


@contextmanager
def _gate(lock: threading.Lock, category: str) -> Iterator[None]:
    if not lock.acquire(blocking=False):
        raise OperationInProgressError(category)
    try:
        yield
    finally:
        lock.release()


class Orchestrator:
    def __init__(
        self,
        storage: Persistence,
        planner: PlanGenerator | None = None,
        executor: TaskExecutor | None = None,
        decomposer: TaskDecomposer | None = None,
        refiner: DescriptionRefiner | None = None,
        notifier: Notifier | None = None,
    ):
        self.storage = storage
        self.planner = planner
        self.executor = executor
        self.decomposer = decomposer
        self.refiner = refiner
        self.notifier = notifier
        self._project: Project | None = None
        self._loaded = False
        self._state_lock = threading.RLock()
        self._plan_gate = threading.Lock()
        self._execution_gate = threading.Lock()
        self._split_gate = threading.Lock()

    # ── State ────────────────────────────────────────────────────────────────

    def load(self) -> Project | None:
        """Load the persisted project once and run recovery on it."""
        with self._state_lock:
            if self._loaded:
                return self._project
            project = self.storage.load_project()
            if project is not None:
                project, reset_ids = recover_project(project)
                if reset_ids:
                    self.storage.save_project(project)
            self._project = project
            self._loaded = True
            return project

    @property
    def project(self) -> Project | None:
        if not self._loaded:
            return self.load()
        return self._project

    @property
    def busy(self) -> dict[str, bool]:
        return {
            "planning": self._plan_gate.locked(),
            "execution": self._execution_gate.locked(),
            "split": self._split_gate.locked(),
        }

    def require_project(self) -> Project:
        project = self.project
        if project is None:
            raise NoProjectError("No project loaded. Run 'nb plan' first.")
        return project

    def _install(self, project: Project) -> Project:
        with self._state_lock:
            self.storage.save_project(project)
            self._project = project
        return project

    def _running_project(self, project_id: str) -> Project:
        project = self.require_project()
        if project.id != project_id:
            raise StaleExecutionError(
                f"Project {project_id} was replaced while a task was running; discarding its result"
            )
        return project

    def _mutate(self, change: Callable[[Project], Project]) -> Project:
        with self._state_lock:
            current = self.require_project()
            updated = change(current)
            if updated is not current:
                self._install(updated)
            return updated

    @staticmethod
    def _collaborator(value, name: str):
        if value is None:
            raise ConfigurationError(f"No {name} configured")
        return value

    # ── Queries ──────────────────────────────────────────────────────────────

    def ready_tasks(self) -> list[Task]:
        project = self.project
        return graph.get_ready_tasks(project) if project else []

    def get_task(self, task_id: str) -> Task:
        return graph.require_task(self.require_project(), task_id)

    # ── Project lifecycle ────────────────────────────────────────────────────

    def create_project(self, prompt: str) -> Project:
        """Generate a plan for ``prompt`` and install it as the current project."""
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("Describe the project to build")
        planner = self._collaborator(self.planner, "plan generator")
        self._ensure_idle()
        with _gate(self._plan_gate, "plan generation"):
            plan = planner.generate(prompt)
            project = build_project(plan, prompt)
            with self._state_lock:
                self._ensure_idle("execution", "split")
                self.load()
                self._install(project)
        logger.info("Created project '%s' with %d tasks", project.name, len(project.tasks))
        return project

    def _ensure_idle(self, *categories: str) -> None:
        for category, busy in self.busy.items():
            if busy and (not categories or category in categories):
                raise OperationInProgressError(category)

    def reset(self) -> None:
        """Forget the current project entirely."""
        self._ensure_idle()
        with self._state_lock:
            self._project = None
            self._loaded = True
            self.storage.clear_project()
        logger.info("Project reset")

    def import_project(self, project: Project) -> Project:
        """Install a snapshot loaded from an export as the current project."""
        self._ensure_idle()
        graph.validate_acyclic(project.tasks)
        project, _ = recover_project(project)
        project = graph.refresh_blocked(project)
        with self._state_lock:
            self._loaded = True
            self._install(project)
        logger.info("Imported project '%s' with %d tasks", project.name, len(project.tasks))
        return project

    # ── Execution ────────────────────────────────────────────────────────────

    def execute_task(self, task_id: str, retry: bool = False) -> Task:
        """Run one ready task through the executor and merge its files.

        With ``retry``, a failed task is first put back to pending. Errors are
        recorded on the task and in the log, then re-raised.
        """
        executor = self._collaborator(self.executor, "task executor")
        with _gate(self._execution_gate, "execution"):
            with self._state_lock:
                current = self.require_project()
                if retry and graph.require_task(current, task_id).status == TaskStatus.FAILED:
                    current = reset_failed(current, task_id)
                started = self._install(start_execution(current, task_id))
            task = graph.require_task(started, task_id)
            logger.info("Executing task %s (%s)", task.id, task.title)

            try:
                context = build_context(started, task)
                output = executor.execute(task, context, list(started.packages))
                files = extract_files(output)
                with self._state_lock:
                    done = self._install(
                        complete_execution(self._running_project(started.id), task_id, output, files)
                    )
            except StaleExecutionError:
                raise
            except Exception as e:
                with self._state_lock:
                    failed = self._install(
                        fail_execution(self._running_project(started.id), task_id, e)
                    )
                logger.warning("Task %s failed: %s", task_id, e)
                self._notify(failed, task_id)
                raise

        logger.info("Task %s completed with %d file(s)", task_id, len(files))
        self._notify(done, task_id)
        return graph.require_task(done, task_id)

    def run_ready(self, limit: int | None = None) -> list[Task]:
        """Keep executing the first ready task until none remain.

        Stops at the first failure by re-raising it.
        """
        finished: list[Task] = []
        while limit is None or len(finished) < limit:
            ready = self.ready_tasks()
            if not ready:
                break
            finished.append(self.execute_task(ready[0].id))
        return finished

    def _notify(self, project: Project, task_id: str) -> None:
        if self.notifier is None:
            return
        task = graph.find_task(project, task_id)
        if task is None:
            return
        try:
            self.notifier.task_finished(project, task)
        except Exception:
            logger.exception("Failed to send notification for task %s", task_id)

    # ── Graph rewrites ───────────────────────────────────────────────────────

    def split_task(self, task_id: str) -> list[Task]:
        """Ask the decomposer for subtasks and splice them in place of the task.

        If decomposition fails or returns nothing the graph is left alone,
        apart from the leading log entry recording the attempt.
        """
        decomposer = self._collaborator(self.decomposer, "task decomposer")
        with _gate(self._split_gate, "split"):
            with self._state_lock:
                current = self.require_project()
                task = check_splittable(current, task_id)
                self._install(record(current, task, LogStatus.SPLIT, "Decomposing..."))

            subtasks = decomposer.decompose(task)

            with self._state_lock:
                rewired, chain = split_task(self.require_project(), task_id, subtasks)
                rewired = record(
                    rewired, task, LogStatus.SPLIT,
                    f"Successfully split into {len(chain)} subtasks",
                )
                self._install(rewired)

        logger.info("Split task %s into %s", task_id, ", ".join(t.id for t in chain))
        return chain

    def edit_task(self, task_id: str, title: str, description: str) -> Task:
        project = self._mutate(lambda p: graph.edit_task(p, task_id, title, description))
        return graph.require_task(project, task_id)

    def add_dependency(self, task_id: str, depends_on_id: str) -> Task:
        project = self._mutate(lambda p: graph.add_dependency(p, task_id, depends_on_id))
        return graph.require_task(project, task_id)

    def remove_dependency(self, task_id: str, depends_on_id: str) -> Task:
        project = self._mutate(lambda p: graph.remove_dependency(p, task_id, depends_on_id))
        return graph.require_task(project, task_id)

    def add_package(self, name: str) -> Project:
        return self._mutate(lambda p: graph.add_package(p, name))

    def remove_package(self, name: str) -> Project:
        return self._mutate(lambda p: graph.remove_package(p, name))

    def report_runtime_error(self, message: str, stack: str | None = None) -> Task:
        """Create a fix task for a runtime fault reported by the preview."""
        with self._state_lock:
            project, task = inject_fix_task(self.require_project(), message, stack)
            self._install(project)
        logger.info("Injected fix task %s for runtime error", task.id)
        return task

    def refine_description(self, title: str, description: str) -> str:
        refiner = self._collaborator(self.refiner, "description refiner")
        return refiner.refine(title, description)
