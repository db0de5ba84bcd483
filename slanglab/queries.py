"""Query expansion for tracked terms.

Turns one canonical phrase into an ordered pack of search queries:

- the exact phrase
- its hashtag form
- hyphen / space variants
- naive inflections (no linguistic validation)
- a context-qualified query that favours "what does X mean" pages

Every entry is quoted so providers treat it as an exact phrase. No cap is
applied here; adapters decide how many queries they can afford to issue.
"""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")

#: Suffixes appended to the base term, in order.
INFLECTIONS: tuple[str, ...] = ("s", "ed", "ing", "y")

#: Words that signal a page is explaining the term rather than just using it.
CONTEXT_WORDS: tuple[str, ...] = ("slang", "means", "as in")


def _quote(text: str) -> str:
    return f'"{text}"'


def unquote(query: str) -> str:
    """Strip the surrounding double quotes added by :func:`expand`."""
    if len(query) >= 2 and query.startswith('"') and query.endswith('"'):
        return query[1:-1]
    return query


def hashtag(term: str) -> str:
    """Return the hashtag form of *term* (``"no cap"`` → ``"#nocap"``)."""
    return "#" + _WHITESPACE.sub("", term.lower().strip())


def expand(term: str) -> list[str]:
    """Expand *term* into an ordered list of quoted search queries.

    Args:
        term: The tracked phrase, in any case.

    Returns:
        Query strings, most specific first. Deterministic for a given term.

    Examples:
        >>> expand("rizz")[:2]
        ['"rizz"', '"#rizz"']
        >>> expand("no cap")[2]
        '"no-cap"'
    """
    base = term.lower().strip()
    queries = [_quote(base), _quote(hashtag(base))]

    if " " in base:
        queries.append(_quote(_WHITESPACE.sub("-", base)))
    if "-" in base:
        queries.append(_quote(base.replace("-", " ")))

    for suffix in INFLECTIONS:
        queries.append(_quote(f"{base}{suffix}"))

    context = " OR ".join(_quote(word) for word in CONTEXT_WORDS)
    queries.append(f"{_quote(base)} AND ({context})")

    return queries
