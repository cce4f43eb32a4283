"""Sanitization of highlighted match fragments.

Fragments come from ``ts_headline`` and embed stored text verbatim, so
they are treated as untrusted markup. Dangerous elements, inline event
handlers and script-capable URI schemes are removed. The ``<mark>``
emphasis wrapper (and any other harmless tag) is left alone.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

# Elements whose body is dropped along with the tags
_PAIRED_TAG_RE = re.compile(
    r"<(script|iframe|object|style)\b[^>]*>.*?</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
# Leftover opening/closing or void tags
_SINGLE_TAG_RE = re.compile(
    r"</?(?:script|iframe|object|img|embed|link|meta|style)\b[^>]*>",
    re.IGNORECASE,
)
# Any single tag; event handlers are only stripped inside one
_TAG_RE = re.compile(r"<[^<>]*>")
_EVENT_HANDLER_RE = re.compile(
    r"\s*\bon[a-z]+\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s>]+)",
    re.IGNORECASE,
)
_URI_SCHEME_RE = re.compile(r"\b(?:javascript|vbscript|data)\s*:", re.IGNORECASE)

_MAX_PASSES = 5


def _strip_event_handlers(match: re.Match[str]) -> str:
    return _EVENT_HANDLER_RE.sub("", match.group(0))


def _strip_once(fragment: str) -> str:
    cleaned = _PAIRED_TAG_RE.sub("", fragment)
    cleaned = _SINGLE_TAG_RE.sub("", cleaned)
    cleaned = _TAG_RE.sub(_strip_event_handlers, cleaned)
    return _URI_SCHEME_RE.sub("", cleaned)


def sanitize_fragment(fragment: str) -> str:
    """Strip unsafe markup from one highlight fragment.

    Passes repeat until the text stops changing, so input such as
    ``<scr<script></script>ipt>`` cannot reassemble a tag and the result
    is a fixed point: sanitizing it again returns it unchanged.
    """
    current = fragment
    for _ in range(_MAX_PASSES):
        cleaned = _strip_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned
    return current


def sanitize_highlight_fields(
    fields: Mapping[str, object] | None,
    allowed: Iterable[str] | None = None,
) -> dict[str, str] | None:
    """Sanitize every fragment of a highlight map.

    Args:
        fields: Field name to raw fragment, as returned by the database.
        allowed: When given, only these field names are kept.

    Returns:
        A new map of sanitized fragments, or ``None`` when there is nothing
        to return. Non-string values are dropped.
    """
    if not fields:
        return None

    keep = set(allowed) if allowed else None
    sanitized: dict[str, str] = {}
    for name, value in fields.items():
        if keep is not None and name not in keep:
            continue
        if isinstance(value, str):
            sanitized[name] = sanitize_fragment(value)
    return sanitized or None
