"""Shared fixtures: a temporary store and scripted source adapters."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from slanglab.models import RawHit, SourceRule, TrackerConfig
from slanglab.store import SightingsStore

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeAdapter:
    """Adapter returning a fixed list of hits and recording every call."""

    def __init__(self, hits: list[RawHit] | None = None) -> None:
        self.hits = hits or []
        self.calls: list[tuple[list[str], list[str], int]] = []

    configured = True

    def search(self, queries, domain_allowlist, max_results):
        self.calls.append((list(queries), list(domain_allowlist), max_results))
        return list(self.hits)


class FailingAdapter:
    """Adapter whose provider always blows up."""

    configured = True

    def __init__(self) -> None:
        self.calls = 0

    def search(self, queries, domain_allowlist, max_results):
        self.calls += 1
        raise RuntimeError("provider exploded")


def make_hit(url: str, title: str, snippet: str = "", source: str = "google_cse", **kw) -> RawHit:
    return RawHit(url=url, title=title, snippet=snippet, source=source, **kw)


@pytest.fixture
def store(tmp_path) -> SightingsStore:
    """A fresh SQLite store per test."""
    s = SightingsStore(tmp_path / "test_slanglab.db")
    s.init_db()
    return s


@pytest.fixture
def rizz(store):
    """The term "rizz" tracked on google_cse with a zero score floor."""
    term = store.create_term("rizz")
    store.save_tracker(TrackerConfig(term_id=term.id, sources_enabled=["google_cse"]))
    store.save_source_rule(SourceRule(source_name="google_cse", min_score=0))
    return term
