"""Human-readable rendering of an agent's stream-json output."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Optional, TextIO

_FILE_TOOLS = frozenset({"Read", "Edit", "Write"})
_PATTERN_TOOLS = frozenset({"Glob", "Grep"})


def format_tool_use(block: dict[str, object]) -> str:
    name = str(block.get("name") or "")
    raw_input = block.get("input")
    tool_input: dict[str, object] = raw_input if isinstance(raw_input, dict) else {}

    if name in _FILE_TOOLS:
        return f"▶ {name} {tool_input.get('file_path', '')}"
    if name == "Bash":
        # first line only
        command = str(tool_input.get("command", "")).partition("\n")[0]
        return f"▶ Bash: {command}"
    if name in _PATTERN_TOOLS:
        return f"▶ {name} {tool_input.get('pattern', '')}"
    return f"▶ {name}"


def format_line(line: str) -> Optional[str]:
    """Render one event line, or None when there is nothing to show."""
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(event, dict):
        return None

    event_type = event.get("type")
    if event_type == "system":
        if event.get("subtype") == "init":
            model = event.get("model") or "unknown"
            return f"── session started (model: {model}) ──"
        return None

    if event_type == "assistant":
        message = event.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return None
        rendered: list[str] = []
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text":
                rendered.append(str(block.get("text", "")))
            elif block.get("type") == "tool_use":
                rendered.append(format_tool_use(block))
        return "\n".join(rendered) if rendered else None

    if event_type == "result":
        cost = event.get("total_cost_usd")
        duration = event.get("duration_ms")
        cost_value = float(cost) if isinstance(cost, (int, float)) else 0.0
        seconds = float(duration) / 1000.0 if isinstance(duration, (int, float)) else 0.0
        return f"\n── done ({seconds:.1f}s, ${cost_value:.4f}) ──"

    return None


def format_stream(lines: Iterable[str], out: TextIO) -> None:
    """Render every line of a stream to `out`, flushing as it goes."""
    for line in lines:
        line = line.rstrip("\n")
        if not line:
            continue
        rendered = format_line(line)
        if rendered is not None:
            out.write(rendered + "\n")
            out.flush()
