from enum import Enum
from typing import Final


class ObjectType(Enum):
    PROJECT = ("project", "P", "projects")
    EPIC = ("epic", "E", "epics")
    FEATURE = ("feature", "F", "features")
    TASK = ("task", "T", "tasks")

    @property
    def token(self) -> str:
        return self.value[0]

    @property
    def prefix(self) -> str:
        return self.value[1]

    @property
    def plural(self) -> str:
        return self.value[2]

    @property
    def owns_directory(self) -> bool:
        return self is not ObjectType.TASK

    @classmethod
    def from_string(cls, value: str) -> "ObjectType":
        token = _normalize_token(value)
        for kind in cls:
            if kind.token == token:
                return kind
        raise ValueError(f"Invalid object type: {value!r}")

    @classmethod
    def from_prefix(cls, letter: str) -> "ObjectType":
        letter = (letter or "").strip().upper()
        for kind in cls:
            if kind.prefix == letter:
                return kind
        raise ValueError(f"Unknown type prefix: {letter!r}")


class ObjectStatus(Enum):
    DRAFT = "draft"
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    WONT_DO = "wont-do"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_string(cls, value: str) -> "ObjectStatus":
        token = _STATUS_ALIASES.get(_normalize_token(value), _normalize_token(value))
        for status in cls:
            if status.value == token:
                return status
        raise ValueError(f"Invalid status: {value!r}")


class ObjectPriority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def from_string(cls, value: str) -> "ObjectPriority":
        token = _normalize_token(value)
        for priority in cls:
            if priority.value == token:
                return priority
        raise ValueError(f"Invalid priority: {value!r}")


TERMINAL_STATUSES: Final[frozenset[ObjectStatus]] = frozenset({ObjectStatus.DONE, ObjectStatus.WONT_DO})
CLAIMABLE_STATUSES: Final[frozenset[ObjectStatus]] = frozenset({ObjectStatus.DRAFT, ObjectStatus.OPEN})

_STATUS_ALIASES: Final[dict[str, str]] = {
    "inprogress": "in-progress",
    "wontdo": "wont-do",
    "won't-do": "wont-do",
}

_PRIORITY_RANK: Final[dict[ObjectPriority, int]] = {
    ObjectPriority.HIGH: 0,
    ObjectPriority.MEDIUM: 1,
    ObjectPriority.LOW: 2,
}


def _normalize_token(value: str) -> str:
    """Normalize enum input: lowercase, spaces/underscores → hyphens."""
    return (value or "").strip().lower().replace("_", "-").replace(" ", "-")
