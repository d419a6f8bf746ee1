"""General helper utilities."""

from datetime import datetime, timezone
from typing import Any, Optional

PROMPT_ECHO_MARKER = "User query:"


def _utcnow_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def strip_prompt_echo(text: str, query: Optional[str] = None) -> str:
    """Drop an echoed prompt from generated ``text``.

    Some text-generation endpoints return the whole prompt followed by the
    completion.  Everything up to and including the first ``User query:``
    marker is discarded; if the remainder still opens with the user's own
    query, that is removed too.  Text without the marker is returned as is.
    """

    if not text or PROMPT_ECHO_MARKER not in text:
        return text
    tail = text.partition(PROMPT_ECHO_MARKER)[2].strip()
    q = (query or "").strip()
    if q and tail.startswith(q):
        tail = tail[len(q):].strip()
    return tail


def _or_placeholder(value: Any, placeholder: str) -> Any:
    """Return ``value`` unless it is empty, in which case ``placeholder``."""

    return value if value else placeholder
