"""Title → collision-free, type-prefixed object id."""

import re
from typing import AbstractSet, Iterable

from .errors import InvalidTitleError
from .status import ObjectType

MAX_SLUG_LENGTH = 30
_WORD_BOUNDARY_RATIO = 0.6

_DISALLOWED = re.compile(r"[^a-z0-9\s_-]")
_SEPARATOR_RUNS = re.compile(r"[\s_-]+")


def slugify(text: str) -> str:
    lowered = (text or "").lower().strip()
    slug = _DISALLOWED.sub("", lowered)
    slug = _SEPARATOR_RUNS.sub("-", slug)
    return slug.strip("-")


def truncate_slug(slug: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Cut to ``max_length``, at the last hyphen when it is not too close to the start."""
    if len(slug) <= max_length:
        return slug
    truncated = slug[:max_length]
    last_hyphen = truncated.rfind("-")
    if last_hyphen >= max_length * _WORD_BOUNDARY_RATIO:
        return truncated[:last_hyphen]
    return truncated.rstrip("-")


def generate_unique_id(title: str, object_type: ObjectType, existing_ids: Iterable[str]) -> str:
    if not (title or "").strip():
        raise InvalidTitleError("Title cannot be empty")

    slug = truncate_slug(slugify(title))
    if not slug:
        raise InvalidTitleError("Title must contain at least one alphanumeric character")

    taken: AbstractSet[str] = existing_ids if isinstance(existing_ids, (set, frozenset)) else set(existing_ids)
    base = f"{object_type.prefix}-{slug}"
    if base not in taken:
        return base

    counter = 1
    while f"{base}-{counter}" in taken:
        counter += 1
    return f"{base}-{counter}"


__all__ = ["MAX_SLUG_LENGTH", "slugify", "truncate_slug", "generate_unique_id"]
