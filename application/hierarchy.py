"""Status cascades along the parent chain.

Both cascades are best-effort: failures are logged and never undo or block
the child update that triggered them.
"""

import logging
from typing import Optional, Set

from core import ObjectStatus, ObjectType, WorkItem
from application.ports import ObjectRepository
from application.prerequisites import resolve_object

logger = logging.getLogger("trellis.hierarchy")


def update_parent_hierarchy(
    parent_id: Optional[str],
    repo: ObjectRepository,
    visited: Optional[Set[str]] = None,
) -> None:
    """Mark every not-yet-started ancestor in-progress, starting at ``parent_id``.

    Stops at the first ancestor already in progress.
    """
    try:
        _start_ancestors(parent_id, repo, visited if visited is not None else set())
    except Exception as exc:
        logger.warning("Failed to update parent hierarchy from %s: %s", parent_id, exc)


def _start_ancestors(parent_id: Optional[str], repo: ObjectRepository, visited: Set[str]) -> None:
    while parent_id and parent_id not in visited:
        visited.add(parent_id)
        parent = resolve_object(repo, parent_id)
        if parent is None or parent.status is ObjectStatus.IN_PROGRESS:
            return
        parent.status = ObjectStatus.IN_PROGRESS
        parent.touch()
        repo.save_object(parent)
        logger.info("Started %s because a child began work", parent.id)
        parent_id = parent.parent


def auto_complete_parent_hierarchy(
    repo: ObjectRepository,
    child: WorkItem,
    visited: Optional[Set[str]] = None,
) -> None:
    """Complete the parent when every one of its children is done/wont-do, then recurse upward."""
    try:
        _complete_ancestors(repo, child, visited if visited is not None else set())
    except Exception as exc:
        logger.warning("Failed to auto-complete parent hierarchy of %s: %s", child.id, exc)


def _complete_ancestors(repo: ObjectRepository, child: WorkItem, visited: Set[str]) -> None:
    current = child
    while current.parent and current.parent not in visited:
        visited.add(current.parent)
        parent = resolve_object(repo, current.parent)
        if parent is None or parent.is_closed:
            return
        children = repo.get_children_of(parent.id)
        if not children or not all(sibling.is_closed for sibling in children):
            return
        parent.status = ObjectStatus.DONE
        parent.append_log(f"Auto-completed: All child {_child_kind(parent)} are complete")
        parent.touch()
        repo.save_object(parent)
        logger.info("Auto-completed %s", parent.id)
        current = parent


def _child_kind(parent: WorkItem) -> str:
    return {
        ObjectType.PROJECT: ObjectType.EPIC.plural,
        ObjectType.EPIC: ObjectType.FEATURE.plural,
        ObjectType.FEATURE: ObjectType.TASK.plural,
    }.get(parent.type, "children")
