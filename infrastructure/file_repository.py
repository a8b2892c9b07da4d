import glob
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

from core import (
    HasChildrenError,
    MalformedObjectError,
    NotFoundError,
    ObjectType,
    ParentNotFoundError,
    WorkItem,
    validate_object_id,
)
from application.ports import ObjectRepository
from infrastructure.base_repository import BaseObjectRepository, attach_children
from infrastructure.object_file_parser import ObjectFileParser
from infrastructure.object_paths import OBJECT_SUFFIX, ParentChain, is_closed_bucket, object_path

logger = logging.getLogger("trellis.store")


class FileObjectRepository(BaseObjectRepository, ObjectRepository):
    """Work items as one markdown file each under a planning root."""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser().resolve()

    # --- discovery -------------------------------------------------------

    def _iter_object_files(self, base: Optional[Path] = None, pattern: str = f"*{OBJECT_SUFFIX}") -> Iterator[Path]:
        base = base or self.root
        if not base.is_dir():
            return
        for file in sorted(base.rglob(pattern)):
            try:
                rel = file.relative_to(self.root)
            except ValueError:
                continue
            # Hidden entries hold housekeeping data and in-flight temp files.
            if any(part.startswith(".") for part in rel.parts):
                continue
            if file.is_file():
                yield file

    def _read(self, file: Path) -> Optional[WorkItem]:
        try:
            return ObjectFileParser.parse(file)
        except FileNotFoundError:
            return None
        except (MalformedObjectError, OSError) as exc:
            logger.warning("Skipping unreadable object file %s: %s", file, exc)
            return None

    def _scan(self, base: Optional[Path] = None) -> List[Tuple[Path, WorkItem]]:
        found: List[Tuple[Path, WorkItem]] = []
        for file in self._iter_object_files(base):
            item = self._read(file)
            if item is not None:
                found.append((file, item))
        return found

    def _locate(self, object_id: str) -> Optional[Tuple[Path, WorkItem]]:
        object_id = validate_object_id(object_id)
        pattern = glob.escape(f"{object_id}{OBJECT_SUFFIX}")
        for file in self._iter_object_files(pattern=pattern):
            item = self._read(file)
            if item is not None and item.id == object_id:
                return file, item
        return None

    def _peek_parent(self, object_id: str) -> Optional[str]:
        located = self._locate(object_id)
        return located[1].parent if located else None

    def path_of(self, object_id: str) -> Path:
        located = self._locate(object_id)
        if not located:
            raise NotFoundError(object_id)
        return located[0]

    # --- reads -----------------------------------------------------------

    def get_objects(self, include_closed: bool = False) -> List[WorkItem]:
        pairs = self._scan()
        attach_children(item for _, item in pairs)
        if include_closed:
            return [item for _, item in pairs]
        return [item for path, item in pairs if item.is_open and not is_closed_bucket(path)]

    def get_object_by_id(self, object_id: str) -> WorkItem:
        located = self._locate(object_id)
        if not located:
            raise NotFoundError(object_id)
        _, item = located
        item.children_ids = sorted(child.id for child in self.get_children_of(item.id))
        return item

    def get_children_of(self, object_id: str) -> List[WorkItem]:
        located = self._locate(object_id)
        if located and not located[1].type.owns_directory:
            return []
        # Children always live inside the parent's directory; orphans fall back to a full scan.
        base = located[0].parent if located else None
        items = attach_children(item for _, item in self._scan(base))
        return [item for item in items if item.parent == object_id]

    # --- writes ----------------------------------------------------------

    def _parent_chain(self, item: WorkItem) -> ParentChain:
        chain: List[Tuple[ObjectType, str]] = []
        seen: Set[str] = {item.id}
        parent_id = item.parent
        while parent_id and parent_id not in seen:
            seen.add(parent_id)
            located = self._locate(parent_id)
            if not located:
                raise ParentNotFoundError(parent_id)
            parent = located[1]
            chain.append((parent.type, parent.id))
            parent_id = parent.parent
        return chain

    def target_path(self, item: WorkItem) -> Path:
        return object_path(self.root, item.type, item.id, item.status, self._parent_chain(item))

    def save_object(self, item: WorkItem) -> None:
        self.validate_for_save(item)
        new_path = self.target_path(item)
        located = self._locate(item.id)
        _atomic_write(new_path, ObjectFileParser.encode(item))
        if located and located[0] != new_path:
            # The new copy is durable before the old one goes away.
            located[0].unlink(missing_ok=True)
            logger.debug("Moved %s: %s -> %s", item.id, located[0], new_path)

    def delete_object(self, object_id: str, force: bool = False) -> None:
        located = self._locate(object_id)
        if not located:
            raise NotFoundError(object_id)
        path, item = located
        descendants: List[Tuple[Path, WorkItem]] = []
        if item.type.owns_directory:
            descendants = [(file, obj) for file, obj in self._scan(path.parent) if file != path]
        if not force:
            self.ensure_no_dependents(item.id)
            if descendants:
                children = [obj.id for _, obj in descendants if obj.parent == item.id]
                raise HasChildrenError(item.id, sorted(children or (obj.id for _, obj in descendants)))
        # Forced deletes take every readable object below this one; unreadable files stay on disk.
        for file, _ in descendants:
            file.unlink(missing_ok=True)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFoundError(object_id) from None
        if item.type.owns_directory:
            self._remove_empty_dirs(path.parent)

    def _remove_empty_dirs(self, directory: Path) -> None:
        """Drop empty directories in and under ``directory``, then its empty ancestors below the root."""
        if directory.is_dir():
            for current, _, _ in os.walk(directory, topdown=False):
                try:
                    os.rmdir(current)
                except OSError:
                    continue
            if directory.exists():
                logger.warning("Keeping %s: it still holds files that are not readable objects", directory)
        current = directory.parent
        while current != self.root and self.root in current.parents:
            try:
                current.rmdir()
            except FileNotFoundError:
                pass
            except OSError:
                break
            current = current.parent


def _atomic_write(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            delete=False,
            dir=str(target.parent),
            prefix=f".{target.stem}.",
            suffix=".tmp",
        ) as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = Path(tmp.name)
        os.replace(str(tmp_path), str(target))
    finally:
        if tmp_path and tmp_path.exists() and tmp_path != target:
            tmp_path.unlink(missing_ok=True)
