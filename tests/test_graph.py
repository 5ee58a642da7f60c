"""Tests for task graph operations and readiness."""

import pytest

from nexbuilder.core import graph
from nexbuilder.db.models import Project, Task, TaskStatus
from nexbuilder.errors import (
    CycleError,
    InvalidDependencyError,
    TaskNotEditableError,
    TaskNotFoundError,
)


def _project(*tasks, **kwargs) -> Project:
    return Project(id="p1", name="Demo", tasks=tuple(tasks), **kwargs)


def _task(task_id, *deps, status=TaskStatus.PENDING) -> Task:
    return Task(id=task_id, title=task_id.title(), status=status, dependencies=tuple(deps))


class TestSlugify:
    def test_basic(self):
        assert graph.slugify("Hello World") == "hello-world"

    def test_special_chars(self):
        assert graph.slugify("Auth: Login & Signup!") == "auth-login-signup"

    def test_empty_falls_back(self):
        assert graph.slugify("!!!") == "task"

    def test_truncation(self):
        assert len(graph.slugify("a" * 100)) <= 60


class TestUniqueTaskId:
    def test_free_slug(self):
        assert graph.unique_task_id(set(), "Build API") == "build-api"

    def test_suffix(self):
        assert graph.unique_task_id({"build-api", "build-api-2"}, "Build API") == "build-api-3"

    def test_retired_ids_are_taken(self):
        project = _project(_task("a"), retired_task_ids=("build-api",))
        assert graph.unique_task_id(graph.taken_task_ids(project), "Build API") == "build-api-2"


class TestReadiness:
    def test_pending_without_deps_is_ready(self):
        project = _project(_task("a"))
        assert [t.id for t in graph.get_ready_tasks(project)] == ["a"]

    def test_waits_for_dependencies(self):
        project = _project(_task("a"), _task("b", "a"))
        assert [t.id for t in graph.get_ready_tasks(project)] == ["a"]

    def test_ready_after_dependency_completes(self):
        project = _project(_task("a", status=TaskStatus.COMPLETED), _task("b", "a"))
        assert [t.id for t in graph.get_ready_tasks(project)] == ["b"]

    def test_failed_dependency_is_not_satisfied(self):
        project = _project(_task("a", status=TaskStatus.FAILED), _task("b", "a"))
        assert graph.get_ready_tasks(project) == []

    def test_missing_dependency_is_not_satisfied(self):
        project = _project(_task("b", "ghost"))
        assert graph.get_ready_tasks(project) == []

    def test_only_pending_tasks(self):
        project = _project(
            _task("a", status=TaskStatus.IN_PROGRESS),
            _task("b", status=TaskStatus.BLOCKED),
            _task("c", status=TaskStatus.COMPLETED),
        )
        assert graph.get_ready_tasks(project) == []

    def test_list_order(self):
        project = _project(_task("z"), _task("a"), _task("m"))
        assert [t.id for t in graph.get_ready_tasks(project)] == ["z", "a", "m"]


class TestSummarize:
    def test_counts_and_progress(self):
        project = _project(
            _task("a", status=TaskStatus.COMPLETED),
            _task("b", "a"),
            _task("c", status=TaskStatus.FAILED),
            _task("d", status=TaskStatus.COMPLETED),
        )
        s = graph.summarize(project)
        assert s["counts"]["completed"] == 2
        assert s["counts"]["failed"] == 1
        assert s["total"] == 4
        assert s["ready"] == 1
        assert s["progress_pct"] == 50.0

    def test_empty(self):
        assert graph.summarize(_project())["progress_pct"] == 0


class TestLookup:
    def test_require_missing(self):
        with pytest.raises(TaskNotFoundError, match="ghost"):
            graph.require_task(_project(_task("a")), "ghost")

    def test_evolve_bumps_version(self):
        project = _project(_task("a"))
        assert graph.evolve(project, name="Other").version == project.version + 1


class TestValidateAcyclic:
    def test_dag_passes(self):
        graph.validate_acyclic([_task("a"), _task("b", "a"), _task("c", "a", "b")])

    def test_self_dependency(self):
        with pytest.raises(CycleError):
            graph.validate_acyclic([_task("a", "a")])

    def test_two_cycle(self):
        with pytest.raises(CycleError) as exc:
            graph.validate_acyclic([_task("a", "b"), _task("b", "a")])
        assert set(exc.value.cycle) >= {"a", "b"}

    def test_missing_ids_are_not_cycles(self):
        graph.validate_acyclic([_task("a", "ghost")])


class TestRefreshBlocked:
    def test_dangling_dependency_blocks(self):
        project = graph.refresh_blocked(_project(_task("a", "ghost"), _task("c")))
        assert graph.find_task(project, "a").status == TaskStatus.BLOCKED
        assert graph.find_task(project, "c").status == TaskStatus.PENDING

    def test_blocking_is_transitive(self):
        project = graph.refresh_blocked(_project(_task("a", "ghost"), _task("b", "a")))
        assert graph.find_task(project, "b").status == TaskStatus.BLOCKED

    def test_completed_dependency_shields_chain(self):
        project = graph.refresh_blocked(
            _project(_task("a", "ghost", status=TaskStatus.COMPLETED), _task("b", "a"))
        )
        assert graph.find_task(project, "b").status == TaskStatus.PENDING

    def test_unchanged_returns_same_snapshot(self):
        project = _project(_task("a"), _task("b", "a"))
        assert graph.refresh_blocked(project) is project

    def test_unblocks_when_fixed(self):
        project = graph.refresh_blocked(_project(_task("a", "ghost"), _task("b", "a")))
        fixed = graph.remove_dependency(project, "a", "ghost")
        assert graph.find_task(fixed, "a").status == TaskStatus.PENDING
        assert graph.find_task(fixed, "b").status == TaskStatus.PENDING


class TestEditTask:
    def test_edit_pending(self):
        project = _project(_task("a"))
        edited = graph.edit_task(project, "a", "  New title ", "New description")
        task = graph.find_task(edited, "a")
        assert task.title == "New title"
        assert task.description == "New description"
        assert edited.version == project.version + 1
        assert graph.find_task(project, "a").title == "A"

    def test_edit_completed_rejected(self):
        project = _project(_task("a", status=TaskStatus.COMPLETED))
        with pytest.raises(TaskNotEditableError):
            graph.edit_task(project, "a", "x", "y")

    def test_empty_title_rejected(self):
        with pytest.raises(TaskNotEditableError):
            graph.edit_task(_project(_task("a")), "a", "   ", "")


class TestDependencyEdits:
    def test_add(self):
        project = graph.add_dependency(_project(_task("a"), _task("b")), "b", "a")
        assert graph.find_task(project, "b").dependencies == ("a",)

    def test_add_existing_is_noop(self):
        project = _project(_task("a"), _task("b", "a"))
        assert graph.add_dependency(project, "b", "a") is project

    def test_cycle_rejected_and_graph_untouched(self):
        project = _project(_task("a"), _task("b", "a"))
        with pytest.raises(CycleError):
            graph.add_dependency(project, "a", "b")
        assert graph.find_task(project, "a").dependencies == ()

    def test_self_dependency_rejected(self):
        with pytest.raises(InvalidDependencyError):
            graph.add_dependency(_project(_task("a")), "a", "a")

    def test_missing_target_rejected(self):
        with pytest.raises(InvalidDependencyError):
            graph.add_dependency(_project(_task("a")), "a", "ghost")

    def test_completed_task_is_fixed(self):
        project = _project(_task("a"), _task("b", status=TaskStatus.COMPLETED))
        with pytest.raises(TaskNotEditableError):
            graph.add_dependency(project, "b", "a")

    def test_remove(self):
        project = graph.remove_dependency(_project(_task("a"), _task("b", "a")), "b", "a")
        assert graph.find_task(project, "b").dependencies == ()

    def test_remove_absent_is_noop(self):
        project = _project(_task("a"), _task("b"))
        assert graph.remove_dependency(project, "b", "a") is project


class TestPackages:
    def test_add_strips_and_dedupes(self):
        project = graph.add_package(_project(), " react ")
        project = graph.add_package(project, "react")
        project = graph.add_package(project, "lodash")
        assert project.packages == ("react", "lodash")

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            graph.add_package(_project(), "  ")

    def test_remove(self):
        project = graph.remove_package(_project(packages=("react", "lodash")), "react")
        assert project.packages == ("lodash",)

    def test_remove_unknown_is_noop(self):
        project = _project(packages=("react",))
        assert graph.remove_package(project, "vue") is project
