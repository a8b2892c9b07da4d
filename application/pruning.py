"""Deletion of aged, fully-closed subtrees."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set

from core import NotFoundError, TrellisError, WorkItem
from application.ports import ObjectRepository

logger = logging.getLogger("trellis.prune")


@dataclass
class PruneResult:
    age: int
    scope: Optional[str] = None
    deleted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        text = f"Pruned {len(self.deleted)} closed objects older than {self.age} minutes"
        if self.scope:
            text += f" in scope {self.scope}"
        if self.deleted:
            text += f"\nDeleted objects: {', '.join(self.deleted)}"
        return text


def _children_map(objects: Iterable[WorkItem]) -> Dict[str, List[str]]:
    children: Dict[str, List[str]] = {}
    for obj in objects:
        if obj.parent:
            children.setdefault(obj.parent, []).append(obj.id)
    return children


def _descendants(root_id: str, children: Dict[str, List[str]]) -> Set[str]:
    found: Set[str] = set()
    stack = list(children.get(root_id, []))
    while stack:
        current = stack.pop()
        if current in found or current == root_id:
            continue
        found.add(current)
        stack.extend(children.get(current, []))
    return found


def _ancestors(object_id: str, by_id: Dict[str, WorkItem]) -> List[str]:
    chain: List[str] = []
    seen: Set[str] = {object_id}
    current = by_id.get(object_id)
    while current is not None and current.parent and current.parent not in seen:
        seen.add(current.parent)
        chain.append(current.parent)
        current = by_id.get(current.parent)
    return chain


def prune_closed(
    repo: ObjectRepository,
    age: int,
    scope: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PruneResult:
    """Delete done/wont-do objects whose last update is older than ``age`` minutes.

    A candidate survives when any descendant will not be deleted in this pass
    (still open, or closed but too recent); every ancestor of a survivor is
    kept too. Objects without a parseable ``updated`` timestamp are never
    candidates. Deletion runs children-first and bypasses the dependents guard.
    """
    if age < 0:
        raise TrellisError("Age must be a non-negative number of minutes")

    result = PruneResult(age=age, scope=scope)
    objects = repo.get_objects(include_closed=True)
    by_id = {obj.id: obj for obj in objects}
    children = _children_map(objects)

    if scope:
        in_scope = _descendants(scope, children) | ({scope} if scope in by_id else set())
    else:
        in_scope = set(by_id)

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=age)
    candidates: Set[str] = set()
    for obj in objects:
        if obj.id not in in_scope or not obj.is_closed:
            continue
        updated_at = obj.updated_at
        if updated_at is not None and updated_at < cutoff:
            candidates.add(obj.id)

    blocked: Set[str] = set()
    for candidate in sorted(candidates):
        survivors = _descendants(candidate, children) - candidates
        if survivors:
            logger.debug("Keeping %s: descendants %s stay", candidate, sorted(survivors))
            blocked.add(candidate)
            blocked.update(_ancestors(candidate, by_id))

    doomed = candidates - blocked
    result.skipped = sorted(candidates & blocked)
    # Deepest first so children go before their parents.
    order = sorted(doomed, key=lambda oid: (-len(_ancestors(oid, by_id)), oid))
    for object_id in order:
        try:
            repo.delete_object(object_id, force=True)
        except NotFoundError:
            logger.debug("Already gone while pruning: %s", object_id)
            continue
        except (TrellisError, OSError) as exc:
            logger.warning("Failed to delete object %s: %s", object_id, exc)
            continue
        result.deleted.append(object_id)

    logger.info(result.message.splitlines()[0])
    return result


def auto_prune(repo: ObjectRepository, age: int) -> Optional[PruneResult]:
    """Startup prune; never raises so the host process still becomes ready."""
    if age <= 0:
        return None
    try:
        return prune_closed(repo, age)
    except Exception as exc:  # pragma: no cover - safety
        logger.warning("Auto-prune failed: %s", exc)
        return None
