import logging

from application.hierarchy import auto_complete_parent_hierarchy, update_parent_hierarchy
from core import ObjectStatus, WorkItem, infer_object_type
from infrastructure.memory_repository import InMemoryObjectRepository


def _item(object_id, status="open", parent=None):
    return WorkItem(id=object_id, type=infer_object_type(object_id), title=object_id, status=status, parent=parent)


def _tree(**statuses):
    defaults = {"P-app": "open", "E-core": "open", "F-login": "open", "T-form": "open", "T-submit": "open"}
    defaults.update({key.replace("_", "-"): value for key, value in statuses.items()})
    return InMemoryObjectRepository(
        [
            _item("P-app", defaults["P-app"]),
            _item("E-core", defaults["E-core"], parent="P-app"),
            _item("F-login", defaults["F-login"], parent="E-core"),
            _item("T-form", defaults["T-form"], parent="F-login"),
            _item("T-submit", defaults["T-submit"], parent="F-login"),
        ]
    )


def _status(repo, object_id):
    return repo.get_object_by_id(object_id).status


def test_start_bubbles_up_every_ancestor():
    repo = _tree()
    update_parent_hierarchy("F-login", repo)
    assert _status(repo, "F-login") is ObjectStatus.IN_PROGRESS
    assert _status(repo, "E-core") is ObjectStatus.IN_PROGRESS
    assert _status(repo, "P-app") is ObjectStatus.IN_PROGRESS


def test_start_stops_at_first_in_progress_ancestor():
    repo = _tree(E_core="in-progress")
    update_parent_hierarchy("F-login", repo)
    assert _status(repo, "F-login") is ObjectStatus.IN_PROGRESS
    assert _status(repo, "P-app") is ObjectStatus.OPEN


def test_start_without_parent_is_noop():
    repo = _tree()
    update_parent_hierarchy(None, repo)
    assert _status(repo, "P-app") is ObjectStatus.OPEN


def test_start_with_missing_parent_is_noop():
    update_parent_hierarchy("F-gone", InMemoryObjectRepository())


def test_complete_waits_for_every_child():
    repo = _tree(T_form="done", T_submit="in-progress")
    auto_complete_parent_hierarchy(repo, repo.get_object_by_id("T-form"))
    assert _status(repo, "F-login") is ObjectStatus.OPEN
    assert repo.get_object_by_id("F-login").log == []


def test_complete_recurses_upward():
    repo = _tree(T_form="done", T_submit="wont-do")
    auto_complete_parent_hierarchy(repo, repo.get_object_by_id("T-submit"))

    feature = repo.get_object_by_id("F-login")
    assert feature.status is ObjectStatus.DONE
    assert feature.log == ["Auto-completed: All child tasks are complete"]
    assert repo.get_object_by_id("E-core").log == ["Auto-completed: All child features are complete"]
    assert repo.get_object_by_id("P-app").log == ["Auto-completed: All child epics are complete"]
    assert _status(repo, "P-app") is ObjectStatus.DONE


def test_complete_leaves_terminal_parent_alone():
    repo = _tree(F_login="wont-do", T_form="done", T_submit="done")
    auto_complete_parent_hierarchy(repo, repo.get_object_by_id("T-form"))
    feature = repo.get_object_by_id("F-login")
    assert feature.status is ObjectStatus.WONT_DO
    assert feature.log == []
    assert _status(repo, "E-core") is ObjectStatus.OPEN


def test_complete_without_parent_is_noop():
    repo = _tree()
    auto_complete_parent_hierarchy(repo, repo.get_object_by_id("P-app"))
    assert _status(repo, "P-app") is ObjectStatus.OPEN


class _FailingSaves(InMemoryObjectRepository):
    def save_object(self, item):
        raise OSError("disk full")


def test_cascade_failures_are_logged_not_raised(caplog):
    repo = _FailingSaves(_tree(T_form="done", T_submit="done").get_objects(include_closed=True))
    with caplog.at_level(logging.WARNING, logger="trellis.hierarchy"):
        update_parent_hierarchy("F-login", repo)
        auto_complete_parent_hierarchy(repo, repo.get_object_by_id("T-form"))
    messages = [record.getMessage() for record in caplog.records]
    assert any("Failed to update parent hierarchy" in message for message in messages)
    assert any("Failed to auto-complete" in message for message in messages)


class _RejectingSaves(InMemoryObjectRepository):
    def save_object(self, item):
        raise ValueError("cannot represent value")


def test_cascade_logs_any_save_failure(caplog):
    repo = _RejectingSaves(_tree(T_form="done", T_submit="done").get_objects(include_closed=True))
    with caplog.at_level(logging.WARNING, logger="trellis.hierarchy"):
        update_parent_hierarchy("F-login", repo)
        auto_complete_parent_hierarchy(repo, repo.get_object_by_id("T-form"))
    assert len([record for record in caplog.records if "cannot represent value" in record.getMessage()]) == 2
