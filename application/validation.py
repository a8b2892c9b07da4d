from typing import Optional

from core import ParentNotFoundError, WorkItem, validate_parent_type
from application.ports import ObjectRepository
from application.prerequisites import resolve_object


def validate_parent_exists(parent_id: Optional[str], repo: ObjectRepository) -> None:
    if not parent_id:
        return
    if resolve_object(repo, parent_id) is None:
        raise ParentNotFoundError(parent_id)


def validate_object_creation(item: WorkItem, repo: ObjectRepository) -> None:
    """Creation-time rules: parent shape first, then parent existence."""
    validate_parent_type(item.type, item.parent)
    validate_parent_exists(item.parent, repo)
