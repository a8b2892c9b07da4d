"""Canonical on-disk locations for work items.

    p/<project>/<project>.md
    p/<project>/e/<epic>/<epic>.md                 (e/<epic>/ when standalone)
    .../e/<epic>/f/<feature>/<feature>.md          (f/<feature>/ when standalone)
    <feature-dir>/t/<open|closed>/<task>.md        (t/<bucket>/ when standalone)
"""

from pathlib import Path
from typing import Sequence, Tuple

from core import InvalidParentError, ObjectStatus, ObjectType, validate_object_id

OBJECT_SUFFIX = ".md"
OPEN_BUCKET = "open"
CLOSED_BUCKET = "closed"

_TYPE_DIRS = {
    ObjectType.PROJECT: "p",
    ObjectType.EPIC: "e",
    ObjectType.FEATURE: "f",
    ObjectType.TASK: "t",
}

# Chain entries are (type, id), nearest parent first.
ParentChain = Sequence[Tuple[ObjectType, str]]


def status_bucket(status: ObjectStatus) -> str:
    return CLOSED_BUCKET if status.is_terminal else OPEN_BUCKET


def object_dir(root: Path, object_type: ObjectType, object_id: str, chain: ParentChain = ()) -> Path:
    """Directory owned by a project/epic/feature."""
    if not object_type.owns_directory:
        raise ValueError(f"{object_type.token} objects do not own a directory")
    validate_object_id(object_id)
    return _container(root, object_type, object_id, chain) / _TYPE_DIRS[object_type] / object_id


def _container(root: Path, object_type: ObjectType, object_id: str, chain: ParentChain) -> Path:
    if not chain:
        return root
    parent_type, parent_id = chain[0]
    if object_type is ObjectType.PROJECT:
        raise InvalidParentError("Projects cannot have parents")
    allowed = {
        ObjectType.EPIC: ObjectType.PROJECT,
        ObjectType.FEATURE: ObjectType.EPIC,
        ObjectType.TASK: ObjectType.FEATURE,
    }[object_type]
    if parent_type is not allowed:
        raise InvalidParentError(
            f"{object_type.token.capitalize()} {object_id} cannot be stored under {parent_type.token} {parent_id}"
        )
    return object_dir(root, parent_type, parent_id, chain[1:])


def object_path(
    root: Path,
    object_type: ObjectType,
    object_id: str,
    status: ObjectStatus,
    chain: ParentChain = (),
) -> Path:
    validate_object_id(object_id)
    if object_type.owns_directory:
        return object_dir(root, object_type, object_id, chain) / f"{object_id}{OBJECT_SUFFIX}"
    container = _container(root, object_type, object_id, chain)
    return container / _TYPE_DIRS[ObjectType.TASK] / status_bucket(status) / f"{object_id}{OBJECT_SUFFIX}"


def is_closed_bucket(path: Path) -> bool:
    parts = path.parts
    return len(parts) >= 3 and parts[-3] == _TYPE_DIRS[ObjectType.TASK] and parts[-2] == CLOSED_BUCKET


__all__ = [
    "OBJECT_SUFFIX",
    "OPEN_BUCKET",
    "CLOSED_BUCKET",
    "ParentChain",
    "status_bucket",
    "object_dir",
    "object_path",
    "is_closed_bucket",
]
