"""Contracts for the external systems the orchestrator drives."""

from typing import Protocol

from nexbuilder.db.models import AIConfig, Plan, Project, SubtaskSpec, Task


class PlanGenerator(Protocol):
    def generate(self, prompt: str) -> Plan:
        """Turn an app idea into a plan. Raises EmptyPlanError on zero tasks."""


class TaskExecutor(Protocol):
    def execute(self, task: Task, context: str, packages: list[str]) -> str:
        """Perform a task and return the raw response text."""


class TaskDecomposer(Protocol):
    def decompose(self, task: Task) -> list[SubtaskSpec]:
        """Break a task into sequential subtasks."""


class DescriptionRefiner(Protocol):
    def refine(self, title: str, description: str) -> str:
        """Rewrite a task description into clearer instructions."""


class Persistence(Protocol):
    def load_project(self) -> Project | None: ...

    def save_project(self, project: Project) -> None: ...

    def clear_project(self) -> None: ...

    def load_config(self) -> AIConfig | None: ...

    def save_config(self, config: AIConfig) -> None: ...


class Notifier(Protocol):
    def task_finished(self, project: Project, task: Task) -> None:
        """Called after a task reaches completed or failed."""
