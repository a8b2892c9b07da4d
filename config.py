from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from interface.planning_dir_resolver import get_planning_dir

CONFIG_FILENAME = "config.yaml"

ENV_ROOT = "TRELLIS_ROOT"
ENV_AUTO_COMPLETE_PARENT = "TRELLIS_AUTO_COMPLETE_PARENT"
ENV_AUTO_PRUNE = "TRELLIS_AUTO_PRUNE"

_TRUE_TOKENS = {"1", "true", "yes", "on"}
_FALSE_TOKENS = {"0", "false", "no", "off", ""}

logger = logging.getLogger("trellis.config")


@dataclass
class ServerConfig:
    root: Path
    auto_complete_parent: bool = False
    auto_prune_age: int = 0  # minutes; 0 disables the startup prune

    @property
    def auto_prune_enabled(self) -> bool:
        return self.auto_prune_age > 0


def _load_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: expected a mapping", path)
        return {}
    return data


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    token = str(value).strip().lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _as_minutes(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    minutes = int(value)
    if minutes < 0:
        raise ValueError(f"Prune age must be non-negative, got {minutes}")
    return minutes


def load_server_config(
    root: Optional[Path] = None,
    *,
    config_path: Optional[Path] = None,
    auto_complete_parent: Optional[bool] = None,
    auto_prune_age: Optional[int] = None,
    environ: Optional[Dict[str, str]] = None,
) -> ServerConfig:
    """Merge config file < environment < explicit arguments."""
    env = os.environ if environ is None else environ
    planning_root = get_planning_dir(root or env.get(ENV_ROOT) or None)

    file_data = _load_config(Path(config_path) if config_path else planning_root / CONFIG_FILENAME)

    complete = _as_bool(file_data.get("autoCompleteParent", file_data.get("auto_complete_parent")))
    prune_age = _as_minutes(file_data.get("autoPrune", file_data.get("auto_prune_age")))

    if env.get(ENV_AUTO_COMPLETE_PARENT) is not None:
        complete = _as_bool(env[ENV_AUTO_COMPLETE_PARENT])
    if env.get(ENV_AUTO_PRUNE) is not None:
        prune_age = _as_minutes(env[ENV_AUTO_PRUNE])

    if auto_complete_parent is not None:
        complete = bool(auto_complete_parent)
    if auto_prune_age is not None:
        prune_age = _as_minutes(auto_prune_age)

    return ServerConfig(root=planning_root, auto_complete_parent=complete, auto_prune_age=prune_age)

