from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .status import CLAIMABLE_STATUSES, ObjectPriority, ObjectStatus, ObjectType

SCHEMA_VERSION = "v1.0"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(raw: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    value = (raw or "").strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class WorkItem:
    id: str
    type: ObjectType
    title: str
    status: ObjectStatus = ObjectStatus.OPEN
    priority: ObjectPriority = ObjectPriority.MEDIUM
    parent: Optional[str] = None
    prerequisites: List[str] = field(default_factory=list)
    affected_files: Dict[str, str] = field(default_factory=dict)
    log: List[str] = field(default_factory=list)
    schema: str = SCHEMA_VERSION
    children_ids: List[str] = field(default_factory=list)  # Derived by the store on read
    created: str = ""
    updated: str = ""
    body: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.type, str):
            self.type = ObjectType.from_string(self.type)
        if isinstance(self.status, str):
            self.status = ObjectStatus.from_string(self.status)
        if isinstance(self.priority, str):
            self.priority = ObjectPriority.from_string(self.priority)
        self.parent = self.parent or None

    @property
    def is_closed(self) -> bool:
        return self.status.is_terminal

    @property
    def is_open(self) -> bool:
        return not self.status.is_terminal

    @property
    def is_claimable(self) -> bool:
        return self.status in CLAIMABLE_STATUSES

    @property
    def updated_at(self) -> Optional[datetime]:
        return parse_timestamp(self.updated)

    def copy(self, **changes: Any) -> "WorkItem":
        """Return a detached copy; collections are never shared with the original."""
        clone = replace(
            self,
            prerequisites=list(self.prerequisites),
            affected_files=dict(self.affected_files),
            log=list(self.log),
            children_ids=list(self.children_ids),
        )
        for key, value in changes.items():
            setattr(clone, key, value)
        clone.__post_init__()
        return clone

    def touch(self) -> None:
        self.updated = now_iso()

    def append_log(self, entry: str) -> None:
        self.log.append(entry)

    def merge_affected_files(self, files: Dict[str, str]) -> None:
        """Accumulate descriptions per path; repeated paths keep every description."""
        for path, description in (files or {}).items():
            existing = self.affected_files.get(path)
            if existing and description and description != existing:
                self.affected_files[path] = f"{existing}; {description}"
            elif not existing:
                self.affected_files[path] = description

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.token,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
            "parent": self.parent,
            "prerequisites": list(self.prerequisites),
            "childrenIds": list(self.children_ids),
            "created": self.created,
            "updated": self.updated,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_summary()
        data.update(
            {
                "affectedFiles": dict(self.affected_files),
                "log": list(self.log),
                "schema": self.schema,
                "body": self.body,
            }
        )
        return data
