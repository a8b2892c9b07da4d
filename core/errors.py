"""Error taxonomy for the object store and hierarchy engine.

Every error carries a short, user-facing message; callers render ``str(exc)``
verbatim. Structural/validation errors always propagate to the caller,
maintenance failures (cascades, per-file decode errors during scans) are
logged by the component that hits them.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class TrellisError(Exception):
    """Base class for all domain errors."""


class InvalidIdError(TrellisError, ValueError):
    """Id has no recognised type prefix or is unsafe to use as a path."""


class InvalidTitleError(TrellisError, ValueError):
    pass


class InvalidStatusError(TrellisError, ValueError):
    """Unknown type/status/priority token on input."""


class InvalidParentError(TrellisError):
    pass


class ParentNotFoundError(TrellisError):
    def __init__(self, parent_id: str):
        self.parent_id = parent_id
        super().__init__(f"Parent object with ID '{parent_id}' does not exist")


class MalformedObjectError(TrellisError):
    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class NotFoundError(TrellisError):
    def __init__(self, object_id: str):
        self.object_id = object_id
        super().__init__(f"Object with ID '{object_id}' not found")


class HasDependentsError(TrellisError):
    def __init__(self, object_id: str, dependents: Iterable[str]):
        self.object_id = object_id
        self.dependents: List[str] = list(dependents)
        super().__init__(
            f"Cannot delete object {object_id} because it is required by other objects "
            f"({', '.join(self.dependents)}). Use force=true to override."
        )


class HasChildrenError(TrellisError):
    def __init__(self, object_id: str, children: Iterable[str]):
        self.object_id = object_id
        self.children: List[str] = list(children)
        super().__init__(
            f"Cannot delete object {object_id} because it still has children "
            f"({', '.join(self.children)}). Delete them first or use force=true."
        )


class BlockedTransitionError(TrellisError):
    """Status change blocked by incomplete prerequisites.

    ``cause`` is ``"own"`` when the object's own prerequisites are incomplete and
    ``"ancestor"`` when an object up the parent chain is the blocker.
    """

    OWN = "own"
    ANCESTOR = "ancestor"

    def __init__(self, message: str, *, status: str = "", cause: str = OWN, object_id: str = ""):
        self.status = status
        self.cause = cause
        self.object_id = object_id
        super().__init__(message)


class NotClaimableError(TrellisError):
    pass


class NotInProgressError(TrellisError):
    pass


class NoAvailableObjectError(TrellisError):
    pass


class MultipleMatchesError(TrellisError):
    def __init__(self, count: int, pattern: str):
        self.count = count
        self.pattern = pattern
        super().__init__(
            f"Found {count} matches for pattern '{pattern}'. "
            "Use allow_multiple_occurrences=true to replace all of them."
        )


__all__ = [
    "TrellisError",
    "InvalidIdError",
    "InvalidTitleError",
    "InvalidStatusError",
    "InvalidParentError",
    "ParentNotFoundError",
    "MalformedObjectError",
    "NotFoundError",
    "HasDependentsError",
    "HasChildrenError",
    "BlockedTransitionError",
    "NotClaimableError",
    "NotInProgressError",
    "NoAvailableObjectError",
    "MultipleMatchesError",
]
