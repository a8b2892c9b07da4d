from pathlib import Path

import pytest

from application.object_manager import ObjectManager, replace_string_with_regex
from application.prerequisites import ANCESTOR_PREREQUISITES_INCOMPLETE, OWN_PREREQUISITES_INCOMPLETE
from core import (
    BlockedTransitionError,
    HasChildrenError,
    HasDependentsError,
    InvalidParentError,
    InvalidStatusError,
    InvalidTitleError,
    MultipleMatchesError,
    NoAvailableObjectError,
    NotClaimableError,
    NotFoundError,
    NotInProgressError,
    ObjectPriority,
    ObjectStatus,
    ParentNotFoundError,
    TrellisError,
)
from infrastructure.file_repository import FileObjectRepository
from infrastructure.memory_repository import InMemoryObjectRepository


@pytest.fixture(params=["file", "memory"])
def repo(request, tmp_path: Path):
    if request.param == "file":
        return FileObjectRepository(tmp_path / "planning")
    return InMemoryObjectRepository()


@pytest.fixture
def manager(repo) -> ObjectManager:
    return ObjectManager(repo)


def _hierarchy(manager: ObjectManager):
    project = manager.create_object("project", "Web App")
    epic = manager.create_object("epic", "Accounts", parent=project.id)
    feature = manager.create_object("feature", "Login", parent=epic.id)
    task = manager.create_object("task", "Build form", parent=feature.id)
    return project, epic, feature, task


class TestCreate:
    def test_create_hierarchy(self, manager: ObjectManager):
        project, epic, feature, task = _hierarchy(manager)
        assert [project.id, epic.id, feature.id, task.id] == ["P-web-app", "E-accounts", "F-login", "T-build-form"]
        assert task.schema == "v1.0"
        assert task.created == task.updated
        assert manager.get_object(feature.id).children_ids == [task.id]

    def test_defaults(self, manager: ObjectManager):
        task = manager.create_object("task", "Standalone", description="Some *markdown*\n")
        assert task.status is ObjectStatus.OPEN
        assert task.priority is ObjectPriority.MEDIUM
        assert task.parent is None
        assert manager.get_object(task.id).body == "Some *markdown*\n"

    def test_duplicate_titles_get_suffix(self, manager: ObjectManager):
        first = manager.create_object("task", "Fix bug")
        second = manager.create_object("task", "Fix bug", status="done")
        third = manager.create_object("task", "Fix bug")
        assert [first.id, second.id, third.id] == ["T-fix-bug", "T-fix-bug-1", "T-fix-bug-2"]

    def test_parent_rules(self, manager: ObjectManager):
        with pytest.raises(InvalidParentError):
            manager.create_object("epic", "Orphan epic")
        with pytest.raises(ParentNotFoundError):
            manager.create_object("epic", "Lost epic", parent="P-missing")
        with pytest.raises(InvalidParentError):
            manager.create_object("project", "Nested", parent="P-other")

    def test_unknown_tokens(self, manager: ObjectManager):
        with pytest.raises(InvalidStatusError):
            manager.create_object("story", "Nope")
        with pytest.raises(InvalidStatusError):
            manager.create_object("task", "Nope", priority="urgent")


class TestUpdateAndDelete:
    def test_update_fields(self, manager: ObjectManager):
        task = manager.create_object("task", "Write docs")
        updated = manager.update_object(task.id, title="Write API docs", priority="high", body="New body")
        assert updated.title == "Write API docs"
        assert updated.priority is ObjectPriority.HIGH
        assert updated.body == "New body"
        assert updated.id == task.id

    def test_start_cascades_to_ancestors(self, manager: ObjectManager):
        project, epic, feature, task = _hierarchy(manager)
        manager.update_object(task.id, status="in-progress")
        for object_id in (feature.id, epic.id, project.id):
            assert manager.get_object(object_id).status is ObjectStatus.IN_PROGRESS

    def test_blocked_status_change_and_force(self, manager: ObjectManager):
        first = manager.create_object("task", "First")
        second = manager.create_object("task", "Second", prerequisites=[first.id])
        with pytest.raises(BlockedTransitionError, match="force=true"):
            manager.update_object(second.id, status="done")
        assert manager.get_object(second.id).status is ObjectStatus.OPEN

        forced = manager.update_object(second.id, status="done", force=True)
        assert forced.status is ObjectStatus.DONE

    def test_delete(self, manager: ObjectManager):
        first = manager.create_object("task", "First")
        manager.create_object("task", "Second", prerequisites=[first.id])
        with pytest.raises(HasDependentsError):
            manager.delete_object(first.id)
        assert manager.delete_object(first.id, force=True) == f"Successfully deleted object: {first.id}"
        with pytest.raises(NotFoundError):
            manager.get_object(first.id)

    @pytest.mark.parametrize("title", ["", "   "])
    def test_blank_title_rejected_on_update(self, manager: ObjectManager, title):
        task = manager.create_object("task", "Real title")
        with pytest.raises(InvalidTitleError):
            manager.update_object(task.id, title=title)
        assert manager.get_object(task.id).title == "Real title"

    def test_update_strips_title(self, manager: ObjectManager):
        task = manager.create_object("task", "Real title")
        assert manager.update_object(task.id, title="  Better title  ").title == "Better title"

    def test_non_string_title_rejected(self, manager: ObjectManager):
        with pytest.raises(InvalidTitleError):
            manager.create_object("task", 42)
        task = manager.create_object("task", "Real title")
        with pytest.raises(InvalidTitleError):
            manager.update_object(task.id, title=7)

    def test_delete_parent_refused_while_children_remain(self, manager: ObjectManager):
        _, _, feature, task = _hierarchy(manager)
        with pytest.raises(HasChildrenError):
            manager.delete_object(feature.id)
        assert manager.update_object(task.id, status="in-progress").status is ObjectStatus.IN_PROGRESS

        manager.delete_object(feature.id, force=True)
        for object_id in (feature.id, task.id):
            with pytest.raises(NotFoundError):
                manager.get_object(object_id)


def test_end_to_end_prerequisite_flow(manager: ObjectManager):
    task_a = manager.create_object("task", "Task A")
    assert manager.update_object(task_a.id, status="in-progress").status is ObjectStatus.IN_PROGRESS

    task_b = manager.create_object("task", "Task B", prerequisites=[task_a.id])
    with pytest.raises(BlockedTransitionError) as excinfo:
        manager.update_object(task_b.id, status="in-progress")
    assert "prerequisites are not complete" in str(excinfo.value)

    manager.update_object(task_a.id, status="done")
    assert manager.update_object(task_b.id, status="in-progress").status is ObjectStatus.IN_PROGRESS


class TestList:
    def test_sorted_by_priority_then_id(self, manager: ObjectManager):
        manager.create_object("task", "Beta", priority="low")
        manager.create_object("task", "Alpha", priority="low")
        manager.create_object("task", "Gamma", priority="high")
        assert [obj.id for obj in manager.list_objects()] == ["T-gamma", "T-alpha", "T-beta"]

    def test_filters(self, manager: ObjectManager):
        project, epic, feature, task = _hierarchy(manager)
        other = manager.create_object("feature", "Search")
        manager.create_object("task", "Index docs", parent=other.id, priority="high")
        manager.update_object(task.id, status="done")

        assert [obj.id for obj in manager.list_objects(object_type="feature")] == ["F-login", "F-search"]
        assert [obj.id for obj in manager.list_objects(scope=epic.id)] == ["E-accounts", "F-login"]
        assert [obj.id for obj in manager.list_objects(scope=epic.id, include_closed=True)] == [
            "E-accounts",
            "F-login",
            "T-build-form",
        ]
        assert [obj.id for obj in manager.list_objects(status="done")] == ["T-build-form"]
        assert [obj.id for obj in manager.list_objects(object_type="task", priority="high")] == ["T-index-docs"]


class TestLogAndFiles:
    def test_append_log(self, manager: ObjectManager):
        task = manager.create_object("task", "Logged")
        manager.append_object_log(task.id, "first")
        manager.append_object_log(task.id, "second")
        assert manager.get_object(task.id).log == ["first", "second"]

    def test_append_modified_files_merges_descriptions(self, manager: ObjectManager):
        task = manager.create_object("task", "Files")
        manager.append_modified_files(task.id, {"a.py": "created", "b.py": "edited"})
        manager.append_modified_files(task.id, {"a.py": "refactored", "c.py": "added"})
        assert manager.get_object(task.id).affected_files == {
            "a.py": "created; refactored",
            "b.py": "edited",
            "c.py": "added",
        }


class TestBodyRegex:
    BODY = "## Notes\nalpha\n## Todo\nalpha beta\n"

    def test_single_replacement(self, manager: ObjectManager):
        task = manager.create_object("task", "Doc", description=self.BODY)
        item, changed = manager.replace_object_body_regex(task.id, r"## Todo\n.*", "## Done\n")
        assert changed
        assert item.body == "## Notes\nalpha\n## Done\n"
        assert manager.get_object(task.id).body == item.body

    def test_multiple_matches_need_permission(self, manager: ObjectManager):
        task = manager.create_object("task", "Doc", description=self.BODY)
        with pytest.raises(MultipleMatchesError) as excinfo:
            manager.replace_object_body_regex(task.id, "alpha", "omega")
        assert excinfo.value.count == 2
        item, _ = manager.replace_object_body_regex(task.id, "alpha", "omega", allow_multiple_occurrences=True)
        assert item.body == "## Notes\nomega\n## Todo\nomega beta\n"

    def test_no_match_leaves_body(self, manager: ObjectManager):
        task = manager.create_object("task", "Doc", description=self.BODY)
        item, changed = manager.replace_object_body_regex(task.id, "zeta", "x")
        assert not changed
        assert item.body == self.BODY

    def test_empty_body_rejected(self, manager: ObjectManager):
        task = manager.create_object("task", "Empty")
        with pytest.raises(TrellisError, match="no body content"):
            manager.replace_object_body_regex(task.id, "x", "y")

    def test_group_references_and_bad_patterns(self):
        assert replace_string_with_regex("name: Ada", r"name: (\w+)", r"user: \1") == "user: Ada"
        assert replace_string_with_regex("^start", "^", ">", allow_multiple=False) == ">^start"
        with pytest.raises(TrellisError, match="Invalid regex pattern"):
            replace_string_with_regex("text", "(unclosed", "x")


class TestNextAvailable:
    def test_priority_then_oldest(self, manager: ObjectManager):
        manager.create_object("task", "Low one", priority="low")
        first_high = manager.create_object("task", "Zed high", priority="high")
        later = manager.create_object("task", "Also high", priority="high")
        later.created = "2999-01-01T00:00:00.000+00:00"
        manager.repo.save_object(later)
        assert manager.get_next_available_issue(object_type="task").id == first_high.id

    def test_skips_blocked_and_non_open(self, manager: ObjectManager):
        blocker = manager.create_object("task", "Blocker", priority="low")
        manager.create_object("task", "Waiting", priority="high", prerequisites=[blocker.id])
        manager.create_object("task", "Drafted", priority="high", status="draft")
        assert manager.get_next_available_issue(object_type="task").id == blocker.id

    def test_skips_tasks_with_blocked_ancestor(self, manager: ObjectManager):
        project = manager.create_object("project", "App")
        infra = manager.create_object("epic", "Infra", parent=project.id, priority="low")
        core = manager.create_object("epic", "Core", parent=project.id, prerequisites=[infra.id])
        feature = manager.create_object("feature", "Login", parent=core.id)
        manager.create_object("task", "Form", parent=feature.id, priority="high")
        with pytest.raises(NoAvailableObjectError):
            manager.get_next_available_issue(object_type="task")
        assert manager.get_next_available_issue(object_type="epic").id == infra.id

    def test_read_only(self, manager: ObjectManager):
        task = manager.create_object("task", "Only")
        manager.get_next_available_issue()
        assert manager.get_object(task.id).status is ObjectStatus.OPEN


class TestClaimAndComplete:
    def test_claim_next_available(self, manager: ObjectManager):
        project, epic, feature, task = _hierarchy(manager)
        claimed = manager.claim_task()
        assert claimed.id == task.id
        assert claimed.status is ObjectStatus.IN_PROGRESS
        assert manager.get_object(project.id).status is ObjectStatus.IN_PROGRESS

    def test_claim_by_id_own_prerequisites(self, manager: ObjectManager):
        first = manager.create_object("task", "First")
        second = manager.create_object("task", "Second", prerequisites=[first.id])
        with pytest.raises(BlockedTransitionError) as excinfo:
            manager.claim_task(task_id=second.id)
        assert excinfo.value.cause == BlockedTransitionError.OWN
        assert OWN_PREREQUISITES_INCOMPLETE in str(excinfo.value)
        assert manager.claim_task(task_id=second.id, force=True).status is ObjectStatus.IN_PROGRESS

    def test_claim_by_id_ancestor_prerequisites(self, manager: ObjectManager):
        project = manager.create_object("project", "App")
        infra = manager.create_object("epic", "Infra", parent=project.id)
        core = manager.create_object("epic", "Core", parent=project.id, prerequisites=[infra.id])
        feature = manager.create_object("feature", "Login", parent=core.id)
        task = manager.create_object("task", "Form", parent=feature.id)
        with pytest.raises(BlockedTransitionError) as excinfo:
            manager.claim_task(task_id=task.id)
        assert excinfo.value.cause == BlockedTransitionError.ANCESTOR
        assert ANCESTOR_PREREQUISITES_INCOMPLETE in str(excinfo.value)

    def test_claim_rejections(self, manager: ObjectManager):
        feature = manager.create_object("feature", "Not a task")
        with pytest.raises(NotClaimableError):
            manager.claim_task(task_id=feature.id)
        task = manager.create_object("task", "Busy")
        manager.claim_task(task_id=task.id)
        with pytest.raises(NotClaimableError):
            manager.claim_task(task_id=task.id)
        with pytest.raises(NoAvailableObjectError):
            manager.claim_task()

    def test_claim_within_scope(self, manager: ObjectManager):
        manager.create_object("task", "Elsewhere", priority="high")
        feature = manager.create_object("feature", "Scoped")
        inside = manager.create_object("task", "Inside", parent=feature.id, priority="low")
        assert manager.claim_task(scope=feature.id).id == inside.id

    def test_complete_task(self, manager: ObjectManager):
        task = manager.create_object("task", "Finish me")
        with pytest.raises(NotInProgressError):
            manager.complete_task(task.id, "too early")
        manager.claim_task(task_id=task.id)
        done = manager.complete_task(task.id, "Implemented it", {"src/app.py": "new endpoint"})
        assert done.status is ObjectStatus.DONE
        assert done.log == ["Implemented it"]
        assert manager.get_object(task.id).affected_files == {"src/app.py": "new endpoint"}

    def test_complete_without_auto_complete_leaves_parent(self, manager: ObjectManager):
        _, _, feature, task = _hierarchy(manager)
        manager.claim_task(task_id=task.id)
        manager.complete_task(task.id, "done")
        assert manager.get_object(feature.id).status is ObjectStatus.IN_PROGRESS


def test_complete_with_auto_complete_parent(repo):
    manager = ObjectManager(repo, auto_complete_parent=True)
    project, epic, feature, task = _hierarchy(manager)
    sibling = manager.create_object("task", "Second step", parent=feature.id)

    manager.claim_task(task_id=task.id)
    manager.complete_task(task.id, "first half")
    assert manager.get_object(feature.id).status is ObjectStatus.IN_PROGRESS

    manager.claim_task(task_id=sibling.id)
    manager.complete_task(sibling.id, "second half")
    for object_id in (feature.id, epic.id, project.id):
        assert manager.get_object(object_id).status is ObjectStatus.DONE
    assert manager.get_object(feature.id).log[-1] == "Auto-completed: All child tasks are complete"


def test_prune_closed_through_manager(manager: ObjectManager):
    task = manager.create_object("task", "Old news")
    closed = manager.update_object(task.id, status="wont-do")
    closed.updated = "2020-01-01T00:00:00.000+00:00"
    manager.repo.save_object(closed)

    result = manager.prune_closed(60)
    assert result.deleted == [task.id]
    assert manager.list_objects(include_closed=True) == []
