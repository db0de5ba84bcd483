"""Evidence scoring for tracked-term hits.

Additive point system, clamped to ``[0, 100]``:

==========================================  ======
Signal                                      Points
==========================================  ======
Exact phrase (quoted or whole-word)           +50
Hashtag form                                  +40
Raw substring                                 +30
One word of the term, one char substituted    +15
Context words (slang, means, …)               +10
News / blog / article source                  +10
Forum / reddit / discussion source             +5
Published ≤ 7 days ago                        +10
Published ≤ 30 days ago                        +5
Dictionary / brand collision                  -25
==========================================  ======

Only the first applicable match-quality row counts.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from slanglab.models import RawHit
from slanglab.queries import hashtag

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100

EXACT_POINTS = 50
HASHTAG_POINTS = 40
SUBSTRING_POINTS = 30
FUZZY_POINTS = 15
CONTEXT_POINTS = 10
COLLISION_PENALTY = 25

#: Words shorter than this never take part in fuzzy matching.
_FUZZY_MIN_LENGTH = 3

_CONTEXT_RE = re.compile(r"\b(?:slang|means|as in|definition|refers to)\b", re.IGNORECASE)
_COLLISION_RE = re.compile(
    r"\b(?:dictionary|definition|brand|company|trademark)\b", re.IGNORECASE
)

#: Source classes, checked in order; first match wins.
_SOURCE_CLASSES: list[tuple[re.Pattern[str], int]] = [
    (re.compile(r"\b(?:news|blog|article)\b", re.IGNORECASE), 10),
    (re.compile(r"\b(?:forum|reddit|discussion)\b", re.IGNORECASE), 5),
]
_SOURCE_SEPARATORS = re.compile(r"[_\-.]+")

#: (max age in days, points), checked in order.
_FRESHNESS: list[tuple[int, int]] = [(7, 10), (30, 5)]


# ── Individual signals ─────────────────────────────────────────────────────────


def _fuzzy_pattern(word: str) -> re.Pattern[str]:
    """Match *word* with any single character substituted."""
    variants = [
        re.escape(word[:i]) + r"\w" + re.escape(word[i + 1:])
        for i in range(len(word))
    ]
    return re.compile(r"\b(?:" + "|".join(variants) + r")\b")


def match_quality(content: str, term: str) -> int:
    """Score how closely *content* mentions *term*.

    Args:
        content: Lowercased title and snippet.
        term: The lowercased tracked term.
    """
    if not term:
        return 0
    if f'"{term}"' in content or re.search(rf"(?<![#\w]){re.escape(term)}\b", content):
        return EXACT_POINTS
    if hashtag(term) in content:
        return HASHTAG_POINTS
    if term in content:
        return SUBSTRING_POINTS

    for word in term.split():
        if len(word) >= _FUZZY_MIN_LENGTH and _fuzzy_pattern(word).search(content):
            return FUZZY_POINTS
    return 0


def source_bonus(source: str, match_type: str = "") -> int:
    """Return the bonus for the class of source a hit came from."""
    label = _SOURCE_SEPARATORS.sub(" ", f"{source} {match_type}")
    for pattern, points in _SOURCE_CLASSES:
        if pattern.search(label):
            return points
    return 0


def _parse_published(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable publish date: %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def freshness_bonus(published_at: Optional[str], now: datetime) -> int:
    """Return the recency bonus for a hit published at *published_at*."""
    if not published_at:
        return 0
    published = _parse_published(published_at)
    if published is None:
        return 0

    age_days = (now - published).days
    for max_age, points in _FRESHNESS:
        if age_days <= max_age:
            return points
    return 0


# ── Public interface ───────────────────────────────────────────────────────────


def score(hit: RawHit, term: str, now: Optional[datetime] = None) -> int:
    """Score a single hit against the tracked term.

    Args:
        hit: The hit to score.
        term: The tracked term, in any case.
        now: Reference time for the freshness bonus (defaults to UTC now).

    Returns:
        An integer between 0 and 100 inclusive.

    Examples:
        >>> score(RawHit(url="u", title="What does rizz mean?",
        ...              snippet="Rizz is slang for charm.", source="google_cse"), "rizz")
        60
    """
    now = now or datetime.now(timezone.utc)
    content = f"{(hit.title or '').lower()} {(hit.snippet or '').lower()}"

    points = match_quality(content, term.lower().strip())
    if _CONTEXT_RE.search(content):
        points += CONTEXT_POINTS
    points += source_bonus(hit.source or "", hit.match_type or "")
    points += freshness_bonus(hit.published_at, now)
    if _COLLISION_RE.search(content):
        points -= COLLISION_PENALTY

    return max(MIN_SCORE, min(MAX_SCORE, points))
