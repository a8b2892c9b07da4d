from typing import List, Protocol

from core import WorkItem


class ObjectRepository(Protocol):
    """Enumerate/get/put/delete contract for work item storage.

    Implementations re-derive state from their backing store on every call
    (no caches) and fill ``children_ids`` from the objects whose parent names
    the id.
    """

    def get_objects(self, include_closed: bool = False) -> List[WorkItem]:
        ...

    def get_object_by_id(self, object_id: str) -> WorkItem:
        ...

    def get_children_of(self, object_id: str) -> List[WorkItem]:
        ...

    def save_object(self, item: WorkItem) -> None:
        ...

    def delete_object(self, object_id: str, force: bool = False) -> None:
        ...
