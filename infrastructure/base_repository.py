"""Guards shared by every ObjectRepository backend."""

from typing import Dict, Iterable, List, Optional

from core import (
    HasDependentsError,
    InvalidParentError,
    TrellisError,
    WorkItem,
    detect_parent_cycle,
    validate_parent_type,
)


def attach_children(items: Iterable[WorkItem]) -> List[WorkItem]:
    """Recompute the derived ``children_ids`` of every item from ``parent`` links."""
    items = list(items)
    children: Dict[str, List[str]] = {}
    for item in items:
        if item.parent:
            children.setdefault(item.parent, []).append(item.id)
    for item in items:
        item.children_ids = sorted(children.get(item.id, []))
    return items


class BaseObjectRepository:
    def get_objects(self, include_closed: bool = False) -> List[WorkItem]:
        raise NotImplementedError

    def _peek_parent(self, object_id: str) -> Optional[str]:
        """Parent id of a stored object, None when unknown."""
        raise NotImplementedError

    def validate_for_save(self, item: WorkItem) -> None:
        validate_parent_type(item.type, item.parent)
        if item.parent == item.id:
            raise InvalidParentError(f"Object {item.id} cannot be its own parent")
        cycle = detect_parent_cycle(item.id, item.parent, self._safe_peek_parent)
        if cycle:
            raise InvalidParentError(f"Parent chain would form a cycle: {' -> '.join(cycle)}")

    def _safe_peek_parent(self, object_id: str) -> Optional[str]:
        try:
            return self._peek_parent(object_id)
        except TrellisError:
            return None

    def dependents_of(self, object_id: str) -> List[str]:
        """Ids of open objects that still list ``object_id`` as a prerequisite."""
        return sorted(
            obj.id
            for obj in self.get_objects(include_closed=True)
            if obj.id != object_id and obj.is_open and object_id in obj.prerequisites
        )

    def ensure_no_dependents(self, object_id: str) -> None:
        dependents = self.dependents_of(object_id)
        if dependents:
            raise HasDependentsError(object_id, dependents)
