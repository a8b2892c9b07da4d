"""Application-level work item management (projects → epics → features → tasks)."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Type, TypeVar, Union

from core import (
    InvalidStatusError,
    InvalidTitleError,
    MultipleMatchesError,
    NoAvailableObjectError,
    NotClaimableError,
    NotInProgressError,
    ObjectPriority,
    ObjectStatus,
    ObjectType,
    TrellisError,
    WorkItem,
    generate_unique_id,
    now_iso,
)
from application.hierarchy import auto_complete_parent_hierarchy, update_parent_hierarchy
from application.ports import ObjectRepository
from application.prerequisites import (
    check_hierarchical_prerequisites_complete,
    require_prerequisites_complete,
    validate_status_transition,
)
from application.pruning import PruneResult, prune_closed
from application.validation import validate_object_creation

logger = logging.getLogger("trellis.manager")

E = TypeVar("E", ObjectType, ObjectStatus, ObjectPriority)
TypeFilter = Union[None, str, ObjectType, Sequence[Union[str, ObjectType]]]


def _coerce(enum_cls: Type[E], value: Union[str, E]) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls.from_string(str(value))
    except ValueError as exc:
        raise InvalidStatusError(str(exc)) from None


def _clean_title(title) -> str:
    if not isinstance(title, str):
        raise InvalidTitleError("Title must be a string")
    title = title.strip()
    if not title:
        raise InvalidTitleError("Title cannot be empty")
    return title


def _coerce_many(enum_cls: Type[E], value) -> Optional[Set[E]]:
    if value is None or value == "" or value == []:
        return None
    values = [value] if isinstance(value, (str, enum_cls)) else list(value)
    return {_coerce(enum_cls, v) for v in values}


def sort_objects(objects: Iterable[WorkItem]) -> List[WorkItem]:
    """High priority first, then id."""
    return sorted(objects, key=lambda obj: (obj.priority.rank, obj.id))


def _availability_key(obj: WorkItem):
    return obj.priority.rank, obj.created or "", obj.id


def subtree_ids(scope: str, objects: Iterable[WorkItem]) -> Set[str]:
    """``scope`` plus every transitive child, following parent links."""
    children: Dict[str, List[str]] = {}
    for obj in objects:
        if obj.parent:
            children.setdefault(obj.parent, []).append(obj.id)
    found: Set[str] = {scope}
    stack = list(children.get(scope, []))
    while stack:
        current = stack.pop()
        if current in found:
            continue
        found.add(current)
        stack.extend(children.get(current, []))
    return found


class ObjectManager:
    def __init__(self, repo: ObjectRepository, auto_complete_parent: bool = False):
        self.repo = repo
        self.auto_complete_parent = auto_complete_parent

    # --- crud ------------------------------------------------------------

    def create_object(
        self,
        object_type: Union[str, ObjectType],
        title: str,
        parent: Optional[str] = None,
        priority: Union[str, ObjectPriority] = ObjectPriority.MEDIUM,
        status: Union[str, ObjectStatus] = ObjectStatus.OPEN,
        prerequisites: Optional[List[str]] = None,
        description: str = "",
    ) -> WorkItem:
        kind = _coerce(ObjectType, object_type)
        title = _clean_title(title)
        existing_ids = {obj.id for obj in self.repo.get_objects(include_closed=True)}
        now = now_iso()
        item = WorkItem(
            id=generate_unique_id(title, kind, existing_ids),
            type=kind,
            title=title,
            status=_coerce(ObjectStatus, status),
            priority=_coerce(ObjectPriority, priority),
            parent=parent or None,
            prerequisites=[p for p in (prerequisites or []) if p],
            created=now,
            updated=now,
            body=description or "",
        )
        validate_object_creation(item, self.repo)
        self.repo.save_object(item)
        logger.info("Created %s", item.id)
        return item

    def get_object(self, object_id: str) -> WorkItem:
        return self.repo.get_object_by_id(object_id)

    def update_object(
        self,
        object_id: str,
        *,
        title: Optional[str] = None,
        priority: Union[None, str, ObjectPriority] = None,
        prerequisites: Optional[List[str]] = None,
        body: Optional[str] = None,
        status: Union[None, str, ObjectStatus] = None,
        force: bool = False,
    ) -> WorkItem:
        existing = self.repo.get_object_by_id(object_id)
        updated = existing.copy()
        if title is not None:
            updated.title = _clean_title(title)
        if priority is not None:
            updated.priority = _coerce(ObjectPriority, priority)
        if prerequisites is not None:
            updated.prerequisites = [p for p in prerequisites if p]
        if body is not None:
            updated.body = body
        if status is not None:
            updated.status = _coerce(ObjectStatus, status)
            if updated.status is not existing.status:
                validate_status_transition(updated, self.repo, force=force)

        updated.touch()
        self.repo.save_object(updated)
        self._cascade(existing.status, updated)
        return self.repo.get_object_by_id(object_id)

    def delete_object(self, object_id: str, force: bool = False) -> str:
        self.repo.delete_object(object_id, force=force)
        logger.info("Deleted %s", object_id)
        return f"Successfully deleted object: {object_id}"

    def list_objects(
        self,
        object_type: TypeFilter = None,
        scope: Optional[str] = None,
        status=None,
        priority=None,
        include_closed: bool = False,
    ) -> List[WorkItem]:
        types = _coerce_many(ObjectType, object_type)
        statuses = _coerce_many(ObjectStatus, status)
        priorities = _coerce_many(ObjectPriority, priority)
        if statuses and any(s.is_terminal for s in statuses):
            include_closed = True

        objects = self.repo.get_objects(include_closed=True)
        in_scope = subtree_ids(scope, objects) if scope else None
        selected = [
            obj
            for obj in objects
            if (include_closed or obj.is_open)
            and (in_scope is None or obj.id in in_scope)
            and (types is None or obj.type in types)
            and (statuses is None or obj.status in statuses)
            and (priorities is None or obj.priority in priorities)
        ]
        return sort_objects(selected)

    # --- body / log / files ---------------------------------------------

    def append_object_log(self, object_id: str, entry: str) -> WorkItem:
        item = self.repo.get_object_by_id(object_id)
        item.append_log(entry)
        item.touch()
        self.repo.save_object(item)
        return item

    def append_modified_files(self, object_id: str, files: Dict[str, str]) -> WorkItem:
        item = self.repo.get_object_by_id(object_id)
        item.merge_affected_files(files)
        item.touch()
        self.repo.save_object(item)
        return item

    def replace_object_body_regex(
        self,
        object_id: str,
        regex: str,
        replacement: str,
        allow_multiple_occurrences: bool = False,
    ) -> Tuple[WorkItem, bool]:
        """Returns the (possibly unchanged) object and whether the body changed."""
        item = self.repo.get_object_by_id(object_id)
        if not item.body:
            raise TrellisError(f"Object with ID '{object_id}' has no body content to replace")
        new_body = replace_string_with_regex(item.body, regex, replacement, allow_multiple_occurrences)
        if new_body == item.body:
            return item, False
        item.body = new_body
        item.touch()
        self.repo.save_object(item)
        return item, True

    # --- workflow --------------------------------------------------------

    def get_next_available_issue(self, scope: Optional[str] = None, object_type: TypeFilter = None) -> WorkItem:
        types = _coerce_many(ObjectType, object_type)
        candidates = [
            obj
            for obj in self.list_objects(object_type=types and list(types), scope=scope)
            if obj.status is ObjectStatus.OPEN and check_hierarchical_prerequisites_complete(obj, self.repo)
        ]
        if not candidates:
            raise NoAvailableObjectError("No available issues found matching criteria")
        return min(candidates, key=_availability_key)

    def claim_task(self, scope: Optional[str] = None, task_id: Optional[str] = None, force: bool = False) -> WorkItem:
        if task_id:
            task = self.repo.get_object_by_id(task_id)
            if task.type is not ObjectType.TASK:
                raise NotClaimableError(f'Object with ID "{task_id}" is not a task (type: {task.type.token})')
            if not force:
                if not task.is_claimable:
                    raise NotClaimableError(
                        f'Task "{task_id}" cannot be claimed (status: {task.status.value}). '
                        "Task must be in draft or open status."
                    )
                require_prerequisites_complete(task, self.repo, action="claimed")
        else:
            try:
                task = self.get_next_available_issue(scope, ObjectType.TASK)
            except NoAvailableObjectError:
                raise NoAvailableObjectError("No available tasks to claim") from None

        previous = task.status
        task.status = ObjectStatus.IN_PROGRESS
        task.touch()
        self.repo.save_object(task)
        self._cascade(previous, task)
        return task

    def complete_task(self, task_id: str, summary: str, files_changed: Optional[Dict[str, str]] = None) -> WorkItem:
        task = self.repo.get_object_by_id(task_id)
        if task.status is not ObjectStatus.IN_PROGRESS:
            raise NotInProgressError(f'Task "{task_id}" is not in progress (current status: {task.status.value})')
        previous = task.status
        task.status = ObjectStatus.DONE
        task.merge_affected_files(files_changed or {})
        if summary:
            task.append_log(summary)
        task.touch()
        self.repo.save_object(task)
        self._cascade(previous, task)
        return task

    def prune_closed(self, age: int, scope: Optional[str] = None) -> PruneResult:
        return prune_closed(self.repo, age, scope)

    def _cascade(self, previous: ObjectStatus, item: WorkItem) -> None:
        if item.status is previous:
            return
        if item.status is ObjectStatus.IN_PROGRESS:
            update_parent_hierarchy(item.parent, self.repo)
        elif item.is_closed and self.auto_complete_parent:
            auto_complete_parent_hierarchy(self.repo, item)


def replace_string_with_regex(text: str, regex: str, replacement: str, allow_multiple: bool = False) -> str:
    """Multiline + dotall regex replacement; more than one match requires ``allow_multiple``."""
    if not regex:
        raise TrellisError("Regex pattern cannot be empty")
    try:
        pattern = re.compile(regex, re.MULTILINE | re.DOTALL)
    except re.error as exc:
        raise TrellisError(f"Invalid regex pattern: {exc}") from None

    matches = pattern.finditer(text)
    if next(matches, None) is None:
        return text
    if not allow_multiple and next(matches, None) is not None:
        raise MultipleMatchesError(len(pattern.findall(text)), regex)

    try:
        return pattern.sub(replacement, text)
    except (re.error, IndexError) as exc:
        raise TrellisError(f"Error during replacement: {exc}") from None
