"""Shared fixtures: an in-memory store and scripted collaborators."""

import pytest

from nexbuilder.core.orchestrator import Orchestrator
from nexbuilder.db.models import AgentRole, Plan, SubtaskSpec


class MemoryStorage:
    def __init__(self, project=None):
        self.project = project
        self.config = None
        self.saves = 0
        self.cleared = False

    def load_project(self):
        return self.project

    def save_project(self, project):
        self.project = project
        self.saves += 1

    def clear_project(self):
        self.project = None
        self.cleared = True

    def load_config(self):
        return self.config

    def save_config(self, config):
        self.config = config


class StaticPlanner:
    def __init__(self, plan):
        self.plan = plan
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        return self.plan


class ScriptedExecutor:
    """Returns one file block per task unless told otherwise."""

    def __init__(self, outputs=None, error=None):
        self.outputs = outputs or {}
        self.error = error
        self.calls = []

    def execute(self, task, context, packages):
        self.calls.append((task.id, context, packages))
        if self.error is not None:
            raise self.error
        return self.outputs.get(task.id, f'<file path="{task.id}.js">// {task.title}</file>')


class StaticDecomposer:
    def __init__(self, subtasks=None, error=None):
        self.subtasks = subtasks or []
        self.error = error
        self.calls = []

    def decompose(self, task):
        self.calls.append(task.id)
        if self.error is not None:
            raise self.error
        return list(self.subtasks)


class EchoRefiner:
    def refine(self, title, description):
        return f"Refined: {description}"


class RecordingNotifier:
    def __init__(self):
        self.finished = []

    def task_finished(self, project, task):
        self.finished.append((task.id, task.status.value))


def make_plan() -> Plan:
    return Plan(
        name="Todo App",
        tasks=[
            {"id": "setup", "title": "Set up page", "agentRole": "architect", "dependencies": []},
            {"id": "styles", "title": "Write styles", "dependencies": ["setup"]},
            {"id": "logic", "title": "Write logic", "dependencies": ["setup"]},
        ],
        packages=["lodash"],
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def orchestrator(storage):
    return Orchestrator(
        storage,
        planner=StaticPlanner(make_plan()),
        executor=ScriptedExecutor(),
        decomposer=StaticDecomposer(
            [
                SubtaskSpec(title="Write markup", description="HTML only"),
                SubtaskSpec(title="Wire events", agent_role=AgentRole.REVIEWER),
            ]
        ),
        refiner=EchoRefiner(),
        notifier=RecordingNotifier(),
    )


@pytest.fixture
def planned(orchestrator):
    """An orchestrator that already holds the Todo App project."""
    orchestrator.create_project("A todo app")
    return orchestrator
