"""Tests for turning a generated plan into a project."""

import pytest

from nexbuilder.core.graph import find_task
from nexbuilder.core.planning import build_project, normalize_packages
from nexbuilder.db.models import AgentRole, Plan, TaskStatus
from nexbuilder.errors import CycleError, EmptyPlanError, ParseError


class TestBuildProject:
    def test_basic_plan(self):
        plan = Plan(
            name="Todo App",
            tasks=[
                {"id": "t1", "title": "Markup", "agentRole": "architect"},
                {"id": "t2", "title": "Logic", "dependencies": ["t1"], "description": "JS"},
            ],
        )
        project = build_project(plan, "a todo app")
        assert project.name == "Todo App"
        assert project.description == "a todo app"
        assert [t.id for t in project.tasks] == ["t1", "t2"]
        assert all(t.status == TaskStatus.PENDING for t in project.tasks)
        assert find_task(project, "t1").agent_role == AgentRole.ARCHITECT
        assert find_task(project, "t2").dependencies == ("t1",)
        assert find_task(project, "t2").description == "JS"
        assert project.activity_log == ()
        assert project.files == ()
        assert project.created_at is not None

    def test_unknown_role_becomes_developer(self):
        plan = Plan(name="x", tasks=[{"id": "a", "title": "A", "agentRole": "wizard"}])
        assert build_project(plan, "p").tasks[0].agent_role == AgentRole.DEVELOPER

    def test_snake_case_role_accepted(self):
        plan = Plan(name="x", tasks=[{"id": "a", "title": "A", "agent_role": "Reviewer"}])
        assert build_project(plan, "p").tasks[0].agent_role == AgentRole.REVIEWER

    def test_missing_ids_minted(self):
        plan = Plan(name="x", tasks=[{"title": "Build UI"}, {"title": "Build UI"}])
        assert [t.id for t in build_project(plan, "p").tasks] == ["build-ui", "build-ui-2"]

    def test_duplicate_dependencies_collapsed(self):
        plan = Plan(
            name="x",
            tasks=[{"id": "a", "title": "A"}, {"id": "b", "title": "B", "dependencies": ["a", "a"]}],
        )
        assert build_project(plan, "p").tasks[1].dependencies == ("a",)

    def test_default_name(self):
        plan = Plan(name="  ", tasks=[{"id": "a", "title": "A"}])
        assert build_project(plan, "p").name == "New Project"

    def test_packages_normalized(self):
        plan = Plan(name="x", tasks=[{"id": "a", "title": "A"}], packages=[" react", "react", ""])
        assert build_project(plan, "p").packages == ("react",)

    def test_dangling_dependency_blocked(self):
        plan = Plan(
            name="x",
            tasks=[
                {"id": "a", "title": "A", "dependencies": ["ghost"]},
                {"id": "b", "title": "B"},
            ],
        )
        project = build_project(plan, "p")
        assert find_task(project, "a").status == TaskStatus.BLOCKED
        assert find_task(project, "b").status == TaskStatus.PENDING

    def test_empty_plan(self):
        with pytest.raises(EmptyPlanError):
            build_project(Plan(name="x", tasks=[]), "p")

    def test_duplicate_ids(self):
        plan = Plan(name="x", tasks=[{"id": "a", "title": "A"}, {"id": "a", "title": "B"}])
        with pytest.raises(ParseError, match="more than once"):
            build_project(plan, "p")

    def test_missing_title(self):
        with pytest.raises(ParseError):
            build_project(Plan(name="x", tasks=[{"id": "a"}]), "p")

    def test_non_object_task(self):
        with pytest.raises(ParseError):
            build_project(Plan(name="x", tasks=["just a string"]), "p")

    def test_cycle_rejected(self):
        plan = Plan(
            name="x",
            tasks=[
                {"id": "a", "title": "A", "dependencies": ["b"]},
                {"id": "b", "title": "B", "dependencies": ["a"]},
            ],
        )
        with pytest.raises(CycleError):
            build_project(plan, "p")


class TestNormalizePackages:
    def test_order_kept(self):
        assert normalize_packages(["b", "a", "b"]) == ("b", "a")

    def test_none(self):
        assert normalize_packages(None) == ()
