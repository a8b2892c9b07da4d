from .status import (
    CLAIMABLE_STATUSES,
    TERMINAL_STATUSES,
    ObjectPriority,
    ObjectStatus,
    ObjectType,
)
from .work_item import SCHEMA_VERSION, WorkItem, now_iso, parse_timestamp
from .errors import (
    BlockedTransitionError,
    HasChildrenError,
    HasDependentsError,
    InvalidIdError,
    InvalidParentError,
    InvalidStatusError,
    InvalidTitleError,
    MalformedObjectError,
    MultipleMatchesError,
    NoAvailableObjectError,
    NotClaimableError,
    NotFoundError,
    NotInProgressError,
    ParentNotFoundError,
    TrellisError,
)
from .id_generator import generate_unique_id, slugify, truncate_slug
from .dependency_validator import (
    detect_parent_cycle,
    infer_object_type,
    validate_object_id,
    validate_parent_type,
)

__all__ = [
    "ObjectType",
    "ObjectStatus",
    "ObjectPriority",
    "TERMINAL_STATUSES",
    "CLAIMABLE_STATUSES",
    "WorkItem",
    "SCHEMA_VERSION",
    "now_iso",
    "parse_timestamp",
    # Errors
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
    # Ids and hierarchy
    "generate_unique_id",
    "slugify",
    "truncate_slug",
    "validate_object_id",
    "infer_object_type",
    "validate_parent_type",
    "detect_parent_cycle",
]
