"""Compile user search input into a PostgreSQL tsquery expression."""

import re

from ..text import remove_diacritics

MAX_QUERY_LENGTH = 500

_SEPARATOR_RE = re.compile(r"[-_/]+")


class QueryError(ValueError):
    """Search input rejected before it reaches the database."""


def _quote(text: str) -> str:
    """Quote text as a tsquery lexeme string."""
    escaped = text.replace("\\", "\\\\").replace("'", "''")
    return f"'{escaped}'"


def is_literal(query: str) -> bool:
    """Whether trimmed input asks for an exact phrase."""
    return len(query) >= 2 and query[0] == '"' and query[-1] == '"'


def compile_query(raw_query: str) -> str:
    """
    Turn free text into a ``to_tsquery`` expression.

    - ``"Jorge Luis Borges"`` (quoted) -> ``'Jorge Luis Borges'``, an exact
      phrase; the text is kept as typed.
    - ``Valentín`` -> ``'valentin':*``, a prefix match without accents.
    - ``Jorge Luis Borges`` -> ``'jorge':* & 'luis':* & 'borges':*``, every
      word must match.

    Returns:
        The compiled expression, or "" when the input cannot match anything
    """
    if raw_query is None:
        return ""
    if len(raw_query) > MAX_QUERY_LENGTH:
        raise QueryError(f"Search query is too long (max {MAX_QUERY_LENGTH} characters)")

    query = raw_query.strip()
    if not query:
        return ""

    if is_literal(query):
        if len(query) <= 2:
            return ""
        return _quote(query[1:-1])

    normalized = _SEPARATOR_RE.sub(" ", remove_diacritics(query).lower())
    words = [word for word in normalized.split() if word]

    if not words:
        return ""
    return " & ".join(f"{_quote(word)}:*" for word in words)
