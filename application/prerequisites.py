"""Prerequisite evaluation and status transition gating.

A prerequisite is satisfied when it resolves to a Done/WontDo object, or
when it does not resolve at all (unknown ids and external tokens).
Walks are single-pass: a flat prerequisite list, or up one parent chain
with a visited set, never transitive over prerequisites.
"""

from typing import List, Optional, Set

from core import (
    BlockedTransitionError,
    InvalidIdError,
    NotFoundError,
    ObjectStatus,
    WorkItem,
)
from application.ports import ObjectRepository

OWN_PREREQUISITES_INCOMPLETE = "Not all prerequisites are complete"
ANCESTOR_PREREQUISITES_INCOMPLETE = "Parent hierarchy has incomplete prerequisites"

# Target statuses that require complete prerequisites.
GATED_STATUSES = frozenset({ObjectStatus.IN_PROGRESS, ObjectStatus.DONE})


def resolve_object(repo: ObjectRepository, object_id: str) -> Optional[WorkItem]:
    try:
        return repo.get_object_by_id(object_id)
    except (NotFoundError, InvalidIdError):
        return None


def incomplete_prerequisites(item: WorkItem, repo: ObjectRepository) -> List[str]:
    """Resolvable prerequisites of ``item`` that are not yet terminal, in declared order."""
    blocking: List[str] = []
    for prerequisite_id in item.prerequisites:
        prerequisite = resolve_object(repo, prerequisite_id)
        if prerequisite is not None and not prerequisite.is_closed:
            blocking.append(prerequisite_id)
    return blocking


def check_prerequisites_complete(item: WorkItem, repo: ObjectRepository) -> bool:
    return not incomplete_prerequisites(item, repo)


def find_blocking_ancestor(item: WorkItem, repo: ObjectRepository) -> Optional[WorkItem]:
    """First ancestor (nearest first) whose own prerequisites are incomplete."""
    visited: Set[str] = {item.id}
    parent_id = item.parent
    while parent_id and parent_id not in visited:
        visited.add(parent_id)
        parent = resolve_object(repo, parent_id)
        if parent is None:
            return None
        if not check_prerequisites_complete(parent, repo):
            return parent
        parent_id = parent.parent
    return None


def check_ancestor_prerequisites_complete(item: WorkItem, repo: ObjectRepository) -> bool:
    return find_blocking_ancestor(item, repo) is None


def check_hierarchical_prerequisites_complete(item: WorkItem, repo: ObjectRepository) -> bool:
    return check_prerequisites_complete(item, repo) and check_ancestor_prerequisites_complete(item, repo)


def require_prerequisites_complete(item: WorkItem, repo: ObjectRepository, *, action: str = "started") -> None:
    """Raise BlockedTransitionError naming the first failing cause: own prerequisites, then ancestors."""
    blocking = incomplete_prerequisites(item, repo)
    if blocking:
        raise BlockedTransitionError(
            f'Task "{item.id}" cannot be {action}. {OWN_PREREQUISITES_INCOMPLETE} '
            f"(waiting on {', '.join(blocking)}).",
            cause=BlockedTransitionError.OWN,
            object_id=item.id,
        )
    ancestor = find_blocking_ancestor(item, repo)
    if ancestor is not None:
        raise BlockedTransitionError(
            f'Task "{item.id}" cannot be {action}. {ANCESTOR_PREREQUISITES_INCOMPLETE} '
            f"({ancestor.id} is waiting on {', '.join(incomplete_prerequisites(ancestor, repo))}).",
            cause=BlockedTransitionError.ANCESTOR,
            object_id=item.id,
        )


def validate_status_transition(item: WorkItem, repo: ObjectRepository, force: bool = False) -> None:
    """Gate moves into in-progress/done on the object's own prerequisites.

    Draft, open and wont-do are always allowed. ``force`` skips the check; the
    store itself never re-checks and persists whatever status it is given.
    """
    if force or item.status not in GATED_STATUSES:
        return
    if not check_prerequisites_complete(item, repo):
        raise BlockedTransitionError(
            f"Cannot update status to '{item.status.value}' - prerequisites are not complete. "
            "Use force=true to override.",
            status=item.status.value,
            cause=BlockedTransitionError.OWN,
            object_id=item.id,
        )


__all__ = [
    "OWN_PREREQUISITES_INCOMPLETE",
    "ANCESTOR_PREREQUISITES_INCOMPLETE",
    "GATED_STATUSES",
    "resolve_object",
    "incomplete_prerequisites",
    "check_prerequisites_complete",
    "find_blocking_ancestor",
    "check_ancestor_prerequisites_complete",
    "check_hierarchical_prerequisites_complete",
    "require_prerequisites_complete",
    "validate_status_transition",
]
