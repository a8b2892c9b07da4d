#!/usr/bin/env python3
"""MCP (Model Context Protocol) stdio server for the planning hierarchy.

Thin wrapper around :class:`application.object_manager.ObjectManager`:
every tool maps 1:1 onto one manager operation.

Hierarchy:
- Project (P-) → Epic (E-) → Feature (F-) → Task (T-)
- Standalone tasks have no parent.
Stdout carries newline-delimited JSON-RPC only; logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from application.object_manager import ObjectManager
from application.pruning import auto_prune
from config import ServerConfig, load_server_config
from core import TrellisError, WorkItem
from infrastructure.file_repository import FileObjectRepository

MCP_VERSION = "2024-11-05"
SERVER_NAME = "trellis-mcp"
SERVER_VERSION = "1.0.0"

logger = logging.getLogger("trellis.server")


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request."""

    jsonrpc: str
    method: str
    id: Optional[int | str] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JsonRpcRequest":
        return cls(
            jsonrpc=str(data.get("jsonrpc", "2.0") or "2.0"),
            method=str(data["method"]),
            id=data.get("id"),
            params=data.get("params", {}) if isinstance(data.get("params", {}), dict) else {},
        )


def json_rpc_response(id: Optional[int | str], result: Any) -> Dict[str, Any]:
    """Create JSON-RPC success response."""
    return {"jsonrpc": "2.0", "id": id, "result": result}


def json_rpc_error(id: Optional[int | str], code: int, message: str, data: Any = None) -> Dict[str, Any]:
    """Create JSON-RPC error response."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


_TYPES = ["project", "epic", "feature", "task"]
_STATUSES = ["draft", "open", "in-progress", "done", "wont-do"]
_PRIORITIES = ["high", "medium", "low"]

_ID = {"type": "string", "description": "Object id (e.g. 'T-add-login')."}
_SCOPE = {"type": "string", "description": "Restrict to the subtree rooted at this id (inclusive)."}
_FILES = {
    "type": "object",
    "additionalProperties": {"type": "string"},
    "description": "Map of file path → description of the change.",
}


def _schema(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": list(required or [])}


_TOOL_SPECS: Dict[str, Dict[str, Any]] = {
    "create_object": {
        "description": "Create a project, epic, feature or task. The id is generated from the title.",
        "schema": _schema(
            {
                "type": {"type": "string", "enum": _TYPES},
                "title": {"type": "string"},
                "parent": {"type": "string", "description": "Parent id (project for epics, epic for features, feature or none for tasks)."},
                "priority": {"type": "string", "enum": _PRIORITIES, "default": "medium"},
                "status": {"type": "string", "enum": _STATUSES, "default": "open"},
                "prerequisites": {"type": "array", "items": {"type": "string"}},
                "description": {"type": "string", "description": "Markdown body."},
            },
            ["type", "title"],
        ),
    },
    "get_object": {
        "description": "Get one object with its body, log and derived childrenIds.",
        "schema": _schema({"id": _ID}, ["id"]),
    },
    "update_object": {
        "description": "Update title, priority, prerequisites, body or status. Moving into in-progress/done requires complete prerequisites unless force=true.",
        "schema": _schema(
            {
                "id": _ID,
                "title": {"type": "string"},
                "priority": {"type": "string", "enum": _PRIORITIES},
                "prerequisites": {"type": "array", "items": {"type": "string"}},
                "body": {"type": "string"},
                "status": {"type": "string", "enum": _STATUSES},
                "force": {"type": "boolean", "default": False},
            },
            ["id"],
        ),
    },
    "delete_object": {
        "description": "Delete an object. Refuses while it has children or open objects list it as a prerequisite, unless force=true, which also deletes every object below it.",
        "schema": _schema({"id": _ID, "force": {"type": "boolean", "default": False}}, ["id"]),
    },
    "list_objects": {
        "description": "List object summaries sorted by priority, then id.",
        "schema": _schema(
            {
                "type": {"type": "string", "enum": _TYPES},
                "scope": _SCOPE,
                "status": {"type": "string", "enum": _STATUSES},
                "priority": {"type": "string", "enum": _PRIORITIES},
                "include_closed": {"type": "boolean", "default": False},
            }
        ),
    },
    "append_object_log": {
        "description": "Append one entry to an object's log.",
        "schema": _schema({"id": _ID, "entry": {"type": "string"}}, ["id", "entry"]),
    },
    "append_modified_files": {
        "description": "Record modified files on an object; descriptions for a known path accumulate.",
        "schema": _schema({"id": _ID, "files": _FILES}, ["id", "files"]),
    },
    "replace_object_body_regex": {
        "description": "Regex replace inside an object body (multiline + dotall, Python replacement syntax).",
        "schema": _schema(
            {
                "id": _ID,
                "regex": {"type": "string"},
                "replacement": {"type": "string"},
                "allow_multiple_occurrences": {"type": "boolean", "default": False},
            },
            ["id", "regex", "replacement"],
        ),
    },
    "get_next_available_issue": {
        "description": "Highest-priority open object whose prerequisites (own and ancestors') are complete. Read-only.",
        "schema": _schema({"scope": _SCOPE, "type": {"type": "string", "enum": _TYPES}}),
    },
    "claim_task": {
        "description": "Claim a task (set in-progress): a specific one by task_id, or the next available one.",
        "schema": _schema(
            {
                "scope": _SCOPE,
                "task_id": {"type": "string"},
                "force": {"type": "boolean", "default": False},
            }
        ),
    },
    "complete_task": {
        "description": "Complete an in-progress task with a summary and the files it changed.",
        "schema": _schema(
            {
                "task_id": {"type": "string"},
                "summary": {"type": "string"},
                "files_changed": _FILES,
            },
            ["task_id", "summary"],
        ),
    },
    "prune_closed": {
        "description": "Delete done/wont-do objects not updated for `age` minutes, keeping any subtree with survivors.",
        "schema": _schema(
            {"age": {"type": "integer", "minimum": 0, "description": "Minutes."}, "scope": _SCOPE},
            ["age"],
        ),
    },
}


def get_tool_definitions() -> List[Dict[str, Any]]:
    """Return MCP tool definitions (1:1 with ObjectManager operations)."""
    return [
        {"name": name, "description": spec["description"], "inputSchema": spec["schema"]}
        for name, spec in sorted(_TOOL_SPECS.items())
    ]


def _require(arguments: Dict[str, Any], key: str) -> Any:
    value = arguments.get(key)
    if value is None or value == "":
        raise TrellisError(f"Missing required argument: {key}")
    return value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_files(value: Any) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TrellisError("files must be an object mapping path to description")
    return {str(path): "" if desc is None else str(desc) for path, desc in value.items()}


def _dump(item: WorkItem) -> Dict[str, Any]:
    return item.to_dict()


def _create_object(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    item = manager.create_object(
        _require(args, "type"),
        _require(args, "title"),
        parent=args.get("parent") or None,
        priority=args.get("priority") or "medium",
        status=args.get("status") or "open",
        prerequisites=args.get("prerequisites") or [],
        description=args.get("description") or "",
    )
    return _dump(item)


def _get_object(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    return _dump(manager.get_object(_require(args, "id")))


def _update_object(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    item = manager.update_object(
        _require(args, "id"),
        title=args.get("title"),
        priority=args.get("priority") or None,
        prerequisites=args.get("prerequisites"),
        body=args.get("body"),
        status=args.get("status") or None,
        force=_as_bool(args.get("force", False)),
    )
    return _dump(item)


def _delete_object(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    return manager.delete_object(_require(args, "id"), force=_as_bool(args.get("force", False)))


def _list_objects(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    objects = manager.list_objects(
        object_type=args.get("type") or None,
        scope=args.get("scope") or None,
        status=args.get("status") or None,
        priority=args.get("priority") or None,
        include_closed=_as_bool(args.get("include_closed", False)),
    )
    return [obj.to_summary() for obj in objects]


def _append_object_log(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    item = manager.append_object_log(_require(args, "id"), str(_require(args, "entry")))
    return f"Appended log entry to {item.id}"


def _append_modified_files(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    files = _as_files(_require(args, "files"))
    item = manager.append_modified_files(_require(args, "id"), files)
    return {"id": item.id, "affectedFiles": dict(item.affected_files)}


def _replace_object_body_regex(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    object_id = _require(args, "id")
    item, changed = manager.replace_object_body_regex(
        object_id,
        _require(args, "regex"),
        str(args.get("replacement") or ""),
        allow_multiple_occurrences=_as_bool(args.get("allow_multiple_occurrences", False)),
    )
    if not changed:
        return f"No matches found for pattern in {object_id}; body unchanged"
    return f"Replaced body content of {item.id}"


def _get_next_available_issue(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    item = manager.get_next_available_issue(scope=args.get("scope") or None, object_type=args.get("type") or None)
    return _dump(item)


def _claim_task(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    item = manager.claim_task(
        scope=args.get("scope") or None,
        task_id=args.get("task_id") or None,
        force=_as_bool(args.get("force", False)),
    )
    return _dump(item)


def _complete_task(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    item = manager.complete_task(
        _require(args, "task_id"),
        str(_require(args, "summary")),
        _as_files(args.get("files_changed")),
    )
    return _dump(item)


def _prune_closed(manager: ObjectManager, args: Dict[str, Any]) -> Any:
    raw_age = args.get("age")
    try:
        age = int(raw_age)
    except (TypeError, ValueError):
        raise TrellisError(f"age must be an integer number of minutes, got {raw_age!r}") from None
    result = manager.prune_closed(age, scope=args.get("scope") or None)
    return result.message


TOOL_HANDLERS: Dict[str, Callable[[ObjectManager, Dict[str, Any]], Any]] = {
    "create_object": _create_object,
    "get_object": _get_object,
    "update_object": _update_object,
    "delete_object": _delete_object,
    "list_objects": _list_objects,
    "append_object_log": _append_object_log,
    "append_modified_files": _append_modified_files,
    "replace_object_body_regex": _replace_object_body_regex,
    "get_next_available_issue": _get_next_available_issue,
    "claim_task": _claim_task,
    "complete_task": _complete_task,
    "prune_closed": _prune_closed,
}


class MCPServer:
    """MCP stdio server exposing the planning hierarchy as tools."""

    def __init__(self, config: Optional[ServerConfig] = None, manager: Optional[ObjectManager] = None):
        self.config = config or load_server_config()
        if manager is None:
            self.config.root.mkdir(parents=True, exist_ok=True)
            manager = ObjectManager(
                FileObjectRepository(self.config.root),
                auto_complete_parent=self.config.auto_complete_parent,
            )
        self.manager = manager
        self._initialized = False

    def startup(self) -> None:
        """One-shot maintenance before serving; failures never prevent start-up."""
        if self.config.auto_prune_enabled:
            result = auto_prune(self.manager.repo, self.config.auto_prune_age)
            if result is not None and result.deleted:
                logger.info("Startup prune removed %d objects", len(result.deleted))

    @staticmethod
    def _text_content(payload: Any) -> Dict[str, Any]:
        text = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False, indent=2)
        return {"type": "text", "text": text}

    def handle_request(self, request: JsonRpcRequest) -> Optional[Dict[str, Any]]:
        method = request.method
        params = request.params

        if method == "initialize":
            return json_rpc_response(
                request.id,
                {
                    "protocolVersion": MCP_VERSION,
                    "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
                    "capabilities": {"tools": {}},
                },
            )

        if not self._initialized and method != "notifications/initialized":
            return json_rpc_error(request.id, -32002, "Server not initialized")

        if method == "notifications/initialized":
            self._initialized = True
            return None

        if method == "tools/list":
            return json_rpc_response(request.id, {"tools": get_tool_definitions()})

        if method == "tools/call":
            return self._handle_tools_call(request.id, params)

        if method == "ping":
            return json_rpc_response(request.id, {})

        return json_rpc_error(request.id, -32601, f"Method not found: {method}")

    def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Run one tool and shape the result as MCP tool content."""
        handler = TOOL_HANDLERS[tool_name]
        try:
            payload = handler(self.manager, arguments)
        except TrellisError as exc:
            return {"content": [self._text_content(f"Error: {exc}")], "isError": True}
        except Exception:
            logger.exception("Tool %s failed", tool_name)
            return {"content": [self._text_content(f"Error: internal error while running {tool_name}")], "isError": True}
        return {"content": [self._text_content(payload)], "isError": False}

    def _handle_tools_call(self, id: Optional[int | str], params: Dict[str, Any]) -> Dict[str, Any]:
        tool_name = params.get("name")
        arguments = params.get("arguments", {})
        if tool_name not in TOOL_HANDLERS:
            return json_rpc_error(id, -32602, f"Unknown tool: {tool_name}")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return json_rpc_error(id, -32602, "arguments must be an object")
        return json_rpc_response(id, self.call_tool(tool_name, arguments))


def _write(message: Dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(message, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def run_stdio(config: Optional[ServerConfig] = None) -> int:
    """Run MCP server over stdio (newline-delimited JSON-RPC)."""
    server = MCPServer(config)
    server.startup()
    logger.info("Serving planning root %s", server.config.root)
    for line in sys.stdin:
        raw = line.strip()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            _write(json_rpc_error(None, -32700, f"Parse error: {exc}"))
            continue
        if not isinstance(data, dict) or "method" not in data:
            _write(json_rpc_error(data.get("id") if isinstance(data, dict) else None, -32600, "Invalid Request"))
            continue
        out = server.handle_request(JsonRpcRequest.from_dict(data))
        if out is None:
            continue
        _write(out)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trellis-mcp", add_help=True)
    parser.add_argument("--root", type=str, help="Planning root directory (default: <project>/.trellis/planning).")
    parser.add_argument("--config", type=str, help="YAML config file (default: <root>/config.yaml).")
    parser.add_argument(
        "--auto-complete-parent",
        dest="auto_complete_parent",
        action="store_true",
        default=None,
        help="Complete a parent once all of its children are done/wont-do.",
    )
    parser.add_argument(
        "--auto-prune",
        dest="auto_prune",
        type=int,
        metavar="MINUTES",
        help="Prune closed objects older than MINUTES at start-up (0 disables).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr logging.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Module entrypoint for `python -m interface.mcp_server`."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    try:
        config = load_server_config(
            Path(args.root) if args.root else None,
            config_path=Path(args.config).expanduser() if args.config else None,
            auto_complete_parent=args.auto_complete_parent,
            auto_prune_age=args.auto_prune,
        )
    except ValueError as exc:
        print(f"trellis-mcp: invalid configuration: {exc}", file=sys.stderr)
        return 2
    return run_stdio(config)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
