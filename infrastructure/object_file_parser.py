"""Object codec: WorkItem ↔ YAML frontmatter + verbatim markdown body.

File layout::

    ---
    <yaml header: every field except body>
    ---

    <body, byte-for-byte>
"""

import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core import (
    SCHEMA_VERSION,
    InvalidIdError,
    MalformedObjectError,
    ObjectPriority,
    ObjectStatus,
    ObjectType,
    WorkItem,
    infer_object_type,
)

DELIMITER = "---"
REQUIRED_FIELDS = ("id", "title", "status", "priority")

_FRONTMATTER = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)


class ObjectFileParser:
    @staticmethod
    def _coerce_timestamp(value: Any) -> str:
        """Normalize YAML timestamps to a string.

        Hand-edited files may carry unquoted ISO-8601 values which the YAML
        loader turns into datetime/date objects.
        """
        if value is None:
            return ""
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        return str(value)

    @staticmethod
    def _string_list(value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if item is not None]

    @staticmethod
    def _string_map(value: Any) -> Dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {str(key): "" if val is None else str(val) for key, val in value.items()}

    @classmethod
    def encode(cls, item: WorkItem) -> str:
        metadata: Dict[str, Any] = {
            "id": item.id,
            "type": item.type.token,
            "title": item.title,
            "status": item.status.value,
            "priority": item.priority.value,
        }
        if item.parent:
            metadata["parent"] = item.parent
        metadata.update(
            {
                "prerequisites": list(item.prerequisites),
                "affectedFiles": dict(item.affected_files),
                "log": list(item.log),
                "schema": item.schema,
                "childrenIds": list(item.children_ids),
                "created": item.created,
                "updated": item.updated,
            }
        )
        header = yaml.safe_dump(metadata, allow_unicode=True, sort_keys=False, default_flow_style=False, width=4096)
        return f"{DELIMITER}\n{header}{DELIMITER}\n\n{item.body}"

    @classmethod
    def decode(cls, content: str, source: Optional[str] = None) -> WorkItem:
        match = _FRONTMATTER.match(content.lstrip("\ufeff"))
        if not match:
            raise MalformedObjectError("Expected YAML frontmatter delimited by --- markers", source)

        try:
            metadata = yaml.safe_load(match.group(1))
        except yaml.YAMLError as exc:
            raise MalformedObjectError(f"Invalid YAML frontmatter: {exc}", source) from None
        if not isinstance(metadata, dict):
            raise MalformedObjectError("Invalid frontmatter: expected a mapping", source)

        for key in REQUIRED_FIELDS:
            if metadata.get(key) is None or str(metadata.get(key)).strip() == "":
                raise MalformedObjectError(f"Missing required field: {key}", source)

        object_id = str(metadata["id"]).strip()
        try:
            raw_type = metadata.get("type")
            object_type = ObjectType.from_string(str(raw_type)) if raw_type else infer_object_type(object_id)
            status = ObjectStatus.from_string(str(metadata["status"]))
            priority = ObjectPriority.from_string(str(metadata["priority"]))
        except (ValueError, InvalidIdError) as exc:
            raise MalformedObjectError(str(exc), source) from None

        body = content.lstrip("\ufeff")[match.end():]
        if body.startswith("\r\n"):
            body = body[2:]
        elif body.startswith("\n"):
            body = body[1:]

        parent = metadata.get("parent")
        return WorkItem(
            id=object_id,
            type=object_type,
            title=str(metadata["title"]),
            status=status,
            priority=priority,
            parent=str(parent).strip() if parent else None,
            prerequisites=cls._string_list(metadata.get("prerequisites")),
            affected_files=cls._string_map(metadata.get("affectedFiles")),
            log=cls._string_list(metadata.get("log")),
            schema=str(metadata.get("schema") or SCHEMA_VERSION),
            children_ids=cls._string_list(metadata.get("childrenIds")),
            created=cls._coerce_timestamp(metadata.get("created")),
            updated=cls._coerce_timestamp(metadata.get("updated")),
            body=body,
        )

    @classmethod
    def parse(cls, filepath: Path) -> WorkItem:
        try:
            content = filepath.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedObjectError(f"Not a UTF-8 text file: {exc}", str(filepath)) from None
        return cls.decode(content, str(filepath))


def encode_object(item: WorkItem) -> str:
    return ObjectFileParser.encode(item)


def decode_object(content: str) -> WorkItem:
    return ObjectFileParser.decode(content)


__all__ = ["ObjectFileParser", "encode_object", "decode_object", "DELIMITER", "REQUIRED_FIELDS"]
