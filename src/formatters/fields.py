"""Rendering of individual event fields: tool arguments and model names.

Adapters call these while building canonical events, so the event already
carries the exact text the renderer prints.
"""

from __future__ import annotations

import json
import re
from typing import Any

SHELL_TRUNCATE = 200
PLAN_TRUNCATE = 150
FALLBACK_TRUNCATE = 150
TITLE_TRUNCATE = 100

CLAUDE_MODEL_RE = re.compile(r"claude-(\w+)-(\d+)-(\d+)-\d+")

# Codex tool names that run a shell command.
CODEX_SHELL_TOOLS = frozenset({"shell", "exec_command", "local_shell", "container.exec"})


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with ``...``."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def compact_json(value: Any) -> str:
    """Single-line JSON without spaces after separators."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def shorten_model_name(model: str) -> str:
    """Shorten dated Claude model ids; other ids pass through.

    ``claude-opus-4-5-20251101`` becomes ``opus-4.5``.
    """
    if model == "<synthetic>":
        return "synthetic"
    match = CLAUDE_MODEL_RE.search(model)
    if match:
        name, major, minor = match.groups()
        return f"{name}-{major}.{minor}"
    return model


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def format_claude_input(tool_name: str, tool_input: dict[str, Any]) -> str:
    """Render a Claude Code tool input as a short argument string."""
    if tool_name == "Bash":
        cmd = _text(tool_input.get("command"))
        return truncate(cmd, SHELL_TRUNCATE).replace("\n", " ↵ ")
    if tool_name in ("Read", "Write", "Edit", "MultiEdit"):
        return f'file="{_text(tool_input.get("file_path"))}"'
    if tool_name in ("Glob", "Grep"):
        rendered = f'pattern="{_text(tool_input.get("pattern"))}"'
        if tool_input.get("path"):
            rendered += f' path="{tool_input["path"]}"'
        return rendered
    if tool_name == "Task":
        return f'{_text(tool_input.get("subagent_type"))}: "{_text(tool_input.get("description"))}"'
    if tool_name == "WebFetch":
        return f'url="{_text(tool_input.get("url"))}"'
    if tool_name == "WebSearch":
        return f'query="{_text(tool_input.get("query"))}"'
    if tool_name == "TodoWrite":
        return _format_steps(tool_input, "todos", "content")
    return compact_json(tool_input)


def format_codex_arguments(name: str, arguments: str) -> str:
    """Render a Codex function call's JSON argument string."""
    try:
        args = json.loads(arguments)
    except (json.JSONDecodeError, TypeError):
        return truncate(_text(arguments), FALLBACK_TRUNCATE)
    if not isinstance(args, dict):
        return truncate(compact_json(args), FALLBACK_TRUNCATE)

    if name in CODEX_SHELL_TOOLS:
        cmd = shell_command_text(args.get("command", args.get("cmd")))
        return truncate(cmd, SHELL_TRUNCATE).replace("\n", " ")
    if name in ("read_file", "write_file"):
        return f'file="{_text(args.get("path"))}"'
    if name == "update_plan":
        return _format_steps(args, "plan", "step")
    return compact_json(args)[:FALLBACK_TRUNCATE]


def format_opencode_state(state: dict[str, Any]) -> str:
    """Render an OpenCode tool part from its title or description."""
    metadata = state.get("metadata")
    desc = state.get("title")
    if not desc and isinstance(metadata, dict):
        desc = metadata.get("description")
    return truncate(_text(desc), TITLE_TRUNCATE)


def shell_command_text(command: Any) -> str:
    """Join an argv list into one string; strings pass through."""
    if isinstance(command, list):
        return " ".join(_text(part) for part in command)
    return _text(command)


def _format_steps(args: dict[str, Any], key: str, text_field: str) -> str:
    steps = args.get(key)
    if not isinstance(steps, list):
        return compact_json(args)
    summary = "; ".join(
        f"{_text(step.get('status'))}: {_text(step.get(text_field))}"
        for step in steps
        if isinstance(step, dict)
    )
    return truncate(summary, PLAN_TRUNCATE)
