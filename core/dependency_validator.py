"""Hierarchy shape validation.

Pure domain logic for validating parent references.
No I/O operations - receives ids and lookups as parameters.
"""

from typing import Callable, List, Optional, Set

from .errors import InvalidIdError, InvalidParentError
from .status import ObjectType

_PARENT_RULES = {
    ObjectType.EPIC: (ObjectType.PROJECT, "Epics must have a project as a parent"),
    ObjectType.FEATURE: (ObjectType.EPIC, "Features can only have an epic as a parent"),
    ObjectType.TASK: (ObjectType.FEATURE, "Tasks can only have a feature as a parent"),
}


def validate_object_id(object_id: str) -> str:
    """Reject ids that are empty or could escape the planning root when used as a path."""
    value = (object_id or "").strip()
    if not value:
        raise InvalidIdError("ID cannot be empty")
    if ".." in value or "/" in value or "\\" in value or "\x00" in value:
        raise InvalidIdError(f"Invalid ID: contains path traversal characters: {object_id}")
    return value


def infer_object_type(object_id: str) -> ObjectType:
    """Infer the type of an externally referenced id from its ``X-`` prefix.

    Used only at the boundary where a bare id string (e.g. a parent reference)
    has to be interpreted; loaded objects carry their type explicitly.
    """
    value = validate_object_id(object_id)
    if len(value) < 2 or value[1] != "-":
        raise InvalidIdError(
            f"Invalid ID format: '{object_id}'. ID must follow pattern X- where X is P, E, F, or T"
        )
    try:
        return ObjectType.from_prefix(value[0])
    except ValueError:
        raise InvalidIdError(
            f"Invalid ID format: '{object_id}'. ID must follow pattern X- where X is P, E, F, or T"
        ) from None


def validate_parent_type(object_type: ObjectType, parent_id: Optional[str]) -> None:
    """Enforce project → epic → feature → task.

    - Projects cannot have parents
    - Epics must have a project as a parent
    - Features may have an epic as a parent, or none
    - Tasks may have a feature as a parent, or none
    """
    if not parent_id:
        if object_type is ObjectType.EPIC:
            raise InvalidParentError("Epics must have a project as a parent")
        return

    if object_type is ObjectType.PROJECT:
        raise InvalidParentError("Projects cannot have parents")

    try:
        parent_type = infer_object_type(parent_id)
    except InvalidIdError as exc:
        raise InvalidParentError(f"Invalid parent reference: {exc}") from None

    expected, message = _PARENT_RULES[object_type]
    if parent_type is not expected:
        raise InvalidParentError(f"{message} (got '{parent_id}')")


def detect_parent_cycle(
    object_id: str,
    parent_id: Optional[str],
    parent_of: Callable[[str], Optional[str]],
) -> Optional[List[str]]:
    """Return the cycle path if ``object_id`` would become its own ancestor.

    ``parent_of`` resolves an id to its parent id (None when absent or unknown).
    Stops on any repeated id so a pre-existing cycle elsewhere still terminates.
    """
    path: List[str] = [object_id]
    seen: Set[str] = {object_id}
    current = parent_id
    while current:
        path.append(current)
        if current == object_id:
            return path
        if current in seen:
            return None
        seen.add(current)
        current = parent_of(current)
    return None


__all__ = [
    "validate_object_id",
    "infer_object_type",
    "validate_parent_type",
    "detect_parent_cycle",
]
