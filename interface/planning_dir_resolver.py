from pathlib import Path
import os
import subprocess
from typing import Optional

PLANNING_SUBDIR = Path(".trellis") / "planning"
PROJECT_ROOT_ENV = "TRELLIS_PROJECT_ROOT"


def _git_toplevel() -> Optional[Path]:
    try:
        out = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        ).stdout.strip()
    except (OSError, subprocess.CalledProcessError):
        return None
    return Path(out) if out else None


def resolve_project_root() -> Path:
    """Project root: $TRELLIS_PROJECT_ROOT, else the enclosing git checkout, else cwd."""
    override = os.environ.get(PROJECT_ROOT_ENV)
    if override and Path(override).expanduser().exists():
        return Path(override).expanduser().resolve()
    toplevel = _git_toplevel()
    if toplevel is not None and toplevel.exists():
        return toplevel.resolve()
    return Path.cwd().resolve()


def get_planning_dir(planning_dir: Path | str | None = None, create: bool = True) -> Path:
    """Unified resolver for the planning root.

    Priority:
    1. Explicit planning_dir if provided.
    2. <project root>/.trellis/planning.
    """
    if planning_dir:
        resolved = Path(planning_dir).expanduser().resolve()
    else:
        resolved = (resolve_project_root() / PLANNING_SUBDIR).resolve()
    if create:
        resolved.mkdir(parents=True, exist_ok=True)
    return resolved


__all__ = ["get_planning_dir", "resolve_project_root", "PLANNING_SUBDIR"]
