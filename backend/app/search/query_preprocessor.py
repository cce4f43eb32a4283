"""Query preprocessing: sanitation, strategy selection, tsquery building.

Everything here is pure and synchronous so it can be tested without a
database. The orchestrator calls :func:`analyze_query` once per request.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from app.search.params import get_search_params
from app.search.schemas import SearchStrategy


class QueryAnalysis(NamedTuple):
    """Result of analyzing a search query.

    Attributes:
        original: The raw query as received.
        cleaned: Sanitized query text (empty if nothing usable remains).
        tokens: Whitespace-split tokens of ``cleaned``.
        strategy: Strategy chosen for ``cleaned``.
        tsquery_expr: Prefix-matching boolean expression for ``to_tsquery``.
    """

    original: str
    cleaned: str
    tokens: list[str]
    strategy: SearchStrategy
    tsquery_expr: str


# Quote, semicolon, backslash
_UNSAFE_CHARS_RE = re.compile(r"[';\\]")
# SQL line comment to end of line
_LINE_COMMENT_RE = re.compile(r"--.*$", re.MULTILINE)
# SQL block comment
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
# tsquery operators and grouping characters
_TSQUERY_SPECIAL_RE = re.compile(r"[&|!():*<>\"]")


def sanitize_query(raw: object) -> str:
    """Clean raw query text before it reaches any backend.

    Removes quotes, semicolons, backslashes and SQL comment sequences,
    trims surrounding whitespace and truncates to the maximum query length.

    Returns:
        The cleaned text, or ``""`` when ``raw`` is not a string.
    """
    if not isinstance(raw, str) or not raw:
        return ""

    max_length = get_search_params()["max_query_length"]
    cleaned = _UNSAFE_CHARS_RE.sub("", raw)
    cleaned = _LINE_COMMENT_RE.sub("", cleaned)
    cleaned = _BLOCK_COMMENT_RE.sub("", cleaned)
    return cleaned.strip()[:max_length]


def select_strategy(cleaned: str) -> SearchStrategy:
    """Pick an execution strategy from the shape of a cleaned query.

    The token-count rule is checked before the length rule, so ``"a b c"``
    goes to full-text even though it is short.
    """
    params = get_search_params()
    if len(cleaned.split()) >= params["fulltext_min_tokens"]:
        return SearchStrategy.fulltext
    if len(cleaned) <= params["similarity_max_length"]:
        return SearchStrategy.similarity
    return SearchStrategy.hybrid


def build_tsquery(tokens: list[str]) -> str:
    """Build a prefix-matching ``to_tsquery`` expression.

    Each token becomes ``token:*``; several tokens are AND-combined.
    Operator characters are stripped from tokens and tokens that end up
    empty are dropped.

    Returns:
        e.g. ``"siemens:* & s7:*"``, or ``""`` if no usable token remains.
    """
    terms = []
    for token in tokens:
        term = _TSQUERY_SPECIAL_RE.sub("", token).strip()
        if term:
            terms.append(f"{term}:*")
    return " & ".join(terms)


def analyze_query(raw: object) -> QueryAnalysis:
    """Sanitize a raw query and derive its tokens, strategy and tsquery."""
    cleaned = sanitize_query(raw)
    tokens = cleaned.split()
    return QueryAnalysis(
        original=raw if isinstance(raw, str) else "",
        cleaned=cleaned,
        tokens=tokens,
        strategy=select_strategy(cleaned),
        tsquery_expr=build_tsquery(tokens),
    )
