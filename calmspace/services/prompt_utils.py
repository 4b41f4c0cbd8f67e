import re
from typing import Any, Sequence

_CODE_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```")


def format_history(messages: Sequence[Any], limit: int) -> str:
    """Render the last ``limit`` messages as ``SENDER: content`` lines."""
    if limit <= 0:
        return ""
    lines = []
    for m in list(messages)[-limit:]:
        sender = getattr(m.sender, "value", m.sender)
        lines.append(f"{sender}: {m.content}")
    return "\n".join(lines)


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE_RE.sub("", text).strip()
