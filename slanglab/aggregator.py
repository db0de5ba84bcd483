"""Result normalisation, scoring and cross-source deduplication.

Responsibilities:
- Canonicalise hit URLs into a dedup key
- Score every hit against the tracked term
- Collapse duplicate URLs across sources, keeping the highest-scoring hit
- Drop zero-score hits and order the rest best-first

Duplicates are penalised rather than deleted: a hit that loses to an
earlier one for the same URL has 100 points taken off, which pushes it
under the zero-score filter in the same pass.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from datetime import datetime
from typing import Optional

from slanglab.models import RawHit, ScoredHit
from slanglab.scorer import score

logger = logging.getLogger(__name__)

#: Points removed from a hit that lost a duplicate-URL comparison.
DUPLICATE_PENALTY = 100


def normalize_url(url: str) -> str:
    """Return the dedup key for *url*: fragment removed, lowercased.

    Examples:
        >>> normalize_url("https://Example.com/Rizz#comments")
        'https://example.com/rizz'
    """
    return (url or "").split("#", 1)[0].lower()


def score_hits(
    hits: list[RawHit],
    term: str,
    now: Optional[datetime] = None,
) -> list[ScoredHit]:
    """Attach a score and dedup key to every hit, preserving order."""
    return [
        ScoredHit(
            **{f.name: getattr(hit, f.name) for f in fields(RawHit)},
            score=score(hit, term, now=now),
            dedup_key=normalize_url(hit.url),
        )
        for hit in hits
    ]


def deduplicate(scored: list[ScoredHit]) -> list[ScoredHit]:
    """Collapse hits sharing a dedup key, keeping the best score per key.

    A later hit replaces the stored one only when its score is strictly
    higher, so ties favour the first hit seen. The losing hit is penalised
    in place.

    Args:
        scored: Hits already carrying ``score`` and ``dedup_key``.

    Returns:
        One hit per dedup key, in first-seen key order.
    """
    best: dict[str, ScoredHit] = {}

    for hit in scored:
        if not hit.dedup_key:
            continue
        existing = best.get(hit.dedup_key)
        if existing is None:
            best[hit.dedup_key] = hit
        elif hit.score > existing.score:
            best[hit.dedup_key] = hit
        else:
            hit.score = max(0, hit.score - DUPLICATE_PENALTY)

    return list(best.values())


def process(
    hits: list[RawHit],
    term: str,
    now: Optional[datetime] = None,
) -> list[ScoredHit]:
    """Full pipeline: score → deduplicate → drop zero scores → sort.

    Scores are computed before duplicates are compared, so the surviving
    hit for each URL is always the highest-scoring one.

    Args:
        hits: Raw hits from every source, concatenated.
        term: The tracked term.
        now: Reference time for freshness scoring.

    Returns:
        Hits with unique URLs and score > 0, highest score first.
    """
    unique = deduplicate(score_hits(hits, term, now=now))
    kept = [hit for hit in unique if hit.score > 0]
    kept.sort(key=lambda hit: hit.score, reverse=True)

    logger.debug(
        "Processed %d hits into %d unique scored results", len(hits), len(kept)
    )
    return kept
