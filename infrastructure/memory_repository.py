from typing import Dict, Iterable, List, Optional

from core import HasChildrenError, NotFoundError, ParentNotFoundError, WorkItem
from application.ports import ObjectRepository
from infrastructure.base_repository import BaseObjectRepository, attach_children


class InMemoryObjectRepository(BaseObjectRepository, ObjectRepository):
    """Dict-backed store with the same contract as FileObjectRepository.

    Objects are copied on the way in and out so callers never mutate stored state.
    """

    def __init__(self, items: Optional[Iterable[WorkItem]] = None):
        self._items: Dict[str, WorkItem] = {}
        for item in items or []:
            self._items[item.id] = item.copy()

    def _peek_parent(self, object_id: str) -> Optional[str]:
        item = self._items.get(object_id)
        return item.parent if item else None

    def get_objects(self, include_closed: bool = False) -> List[WorkItem]:
        items = attach_children(item.copy() for item in self._items.values())
        items.sort(key=lambda obj: obj.id)
        if include_closed:
            return items
        return [item for item in items if item.is_open]

    def get_object_by_id(self, object_id: str) -> WorkItem:
        item = self._items.get(object_id)
        if item is None:
            raise NotFoundError(object_id)
        found = item.copy()
        found.children_ids = sorted(child.id for child in self._items.values() if child.parent == object_id)
        return found

    def get_children_of(self, object_id: str) -> List[WorkItem]:
        return [item for item in self.get_objects(include_closed=True) if item.parent == object_id]

    def save_object(self, item: WorkItem) -> None:
        self.validate_for_save(item)
        if item.parent and item.parent not in self._items:
            raise ParentNotFoundError(item.parent)
        self._items[item.id] = item.copy()

    def delete_object(self, object_id: str, force: bool = False) -> None:
        if object_id not in self._items:
            raise NotFoundError(object_id)
        if not force:
            self.ensure_no_dependents(object_id)
            children = sorted(oid for oid, item in self._items.items() if item.parent == object_id)
            if children:
                raise HasChildrenError(object_id, children)
            self._items.pop(object_id, None)
            return
        # Forced deletes take the whole subtree.
        doomed = {object_id}
        changed = True
        while changed:
            children = {oid for oid, item in self._items.items() if item.parent in doomed} - doomed
            doomed |= children
            changed = bool(children)
        for oid in doomed:
            self._items.pop(oid, None)
