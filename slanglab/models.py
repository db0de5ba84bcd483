"""
Data models shared across the SlangLab tracker.

Persisted records are Pydantic models; hits that only live for the
duration of a tracker run are plain dataclasses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

_WHITESPACE = re.compile(r"\s+")


def normalize_term(text: str) -> str:
    """Lowercase *text* and collapse runs of whitespace to a single space."""
    return _WHITESPACE.sub(" ", text).strip().lower()


# ── Persisted records ──────────────────────────────────────────────────────────


class TrackedTerm(BaseModel):
    """A slang phrase being monitored."""

    id: str
    text: str
    normalized_text: str
    created_at: Optional[datetime] = None


class TrackerConfig(BaseModel):
    """Per-term tracking configuration (one per TrackedTerm)."""

    term_id: str
    sensitivity: str = "medium"
    sources_enabled: list[str] = Field(default_factory=list)
    per_run_cap: Optional[int] = Field(default=None, gt=0)
    last_run_at: Optional[datetime] = None


class SourceRule(BaseModel):
    """Admin-configured policy for one external source."""

    source_name: str
    enabled: bool = True
    per_run_cap: Optional[int] = Field(default=None, gt=0)
    domains_allowlist: list[str] = Field(default_factory=list)
    domains_blocklist: list[str] = Field(default_factory=list)
    min_score: int = 0


class Sighting(BaseModel):
    """A scored piece of evidence that a term appeared at a URL."""

    term_id: str
    url: str
    title: str = ""
    snippet: str = ""
    source: str
    match_type: str
    score: int
    first_seen_at: datetime
    last_seen_at: datetime


class RunSummary(BaseModel):
    """Outcome of a single tracker run."""

    term_id: str
    queries_generated: int
    results_found: int
    results_processed: int
    sightings_created: int
    min_score: int
    #: Qualifying sightings, for in-process consumers only.
    sightings: list[Sighting] = Field(default_factory=list, exclude=True)

    def to_response(self) -> dict:
        """Return the JSON body reported to callers of ``run_tracker``."""
        return {"success": True, **self.model_dump()}


class SchedulerSummary(BaseModel):
    """Outcome of a scheduled pass over every tracker."""

    total_trackers: int
    success_count: int
    error_count: int
    timestamp: datetime


# ── Definition synthesis ───────────────────────────────────────────────────────


class Citation(BaseModel):
    """A snippet the synthesised definition relies on."""

    title: str
    url: str
    quote: str = ""
    date: Optional[str] = None


class SlangDefinition(BaseModel):
    """Structured definition returned by the definition synthesiser."""

    meaning: str
    tone: Literal["positive", "neutral", "insulting", "adult", "niche"]
    example: str
    related: list[str] = Field(default_factory=list)
    warning: str = ""
    citations: list[Citation] = Field(default_factory=list)
    confidence: Literal["High", "Medium", "Low"]


# ── In-flight hits ─────────────────────────────────────────────────────────────


@dataclass
class RawHit:
    """A single result returned by a source adapter."""

    url: str
    title: str
    snippet: str
    source: str
    published_at: Optional[str] = None   # ISO-8601, news results only
    match_type: str = "web_search"


@dataclass
class ScoredHit(RawHit):
    """A RawHit after scoring and URL normalisation."""

    score: int = 0
    dedup_key: str = ""
