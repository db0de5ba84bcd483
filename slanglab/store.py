"""
SQLite-backed sightings store for SlangLab.

Schema
──────
table: terms
  id              TEXT PRIMARY KEY
  text            TEXT NOT NULL
  normalized_text TEXT NOT NULL UNIQUE
  created_at      TEXT NOT NULL  (ISO-8601 UTC)

table: trackers
  term_id         TEXT PRIMARY KEY → terms.id
  sensitivity     TEXT NOT NULL
  sources_enabled TEXT NOT NULL  (JSON list)
  per_run_cap     INTEGER
  last_run_at     TEXT

table: source_rules
  source_name       TEXT PRIMARY KEY
  enabled           INTEGER NOT NULL
  per_run_cap       INTEGER
  domains_allowlist TEXT NOT NULL  (JSON list)
  domains_blocklist TEXT NOT NULL  (JSON list)
  min_score         INTEGER NOT NULL

table: sightings
  id            INTEGER PRIMARY KEY AUTOINCREMENT
  term_id       TEXT NOT NULL
  url           TEXT NOT NULL  (as discovered)
  url_key       TEXT NOT NULL  (normalised; UNIQUE with term_id)
  title, snippet, source, match_type, score,
  first_seen_at TEXT NOT NULL
  last_seen_at  TEXT NOT NULL
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from slanglab.aggregator import normalize_url
from slanglab.models import (
    Sighting,
    SourceRule,
    TrackedTerm,
    TrackerConfig,
    normalize_term,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS terms (
    id              TEXT PRIMARY KEY,
    text            TEXT NOT NULL,
    normalized_text TEXT NOT NULL UNIQUE,
    created_at      TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS trackers (
    term_id         TEXT PRIMARY KEY REFERENCES terms(id),
    sensitivity     TEXT NOT NULL DEFAULT 'medium',
    sources_enabled TEXT NOT NULL DEFAULT '[]',
    per_run_cap     INTEGER,
    last_run_at     TEXT
);
CREATE TABLE IF NOT EXISTS source_rules (
    source_name       TEXT PRIMARY KEY,
    enabled           INTEGER NOT NULL DEFAULT 1,
    per_run_cap       INTEGER,
    domains_allowlist TEXT NOT NULL DEFAULT '[]',
    domains_blocklist TEXT NOT NULL DEFAULT '[]',
    min_score         INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS sightings (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    term_id       TEXT NOT NULL REFERENCES terms(id),
    url           TEXT NOT NULL,
    url_key       TEXT NOT NULL,
    title         TEXT NOT NULL DEFAULT '',
    snippet       TEXT NOT NULL DEFAULT '',
    source        TEXT NOT NULL,
    match_type    TEXT NOT NULL,
    score         INTEGER NOT NULL,
    first_seen_at TEXT NOT NULL,
    last_seen_at  TEXT NOT NULL,
    UNIQUE (term_id, url_key)
);
"""

_UPSERT_SIGHTING = """
INSERT INTO sightings (
    term_id, url, url_key, title, snippet, source, match_type, score,
    first_seen_at, last_seen_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (term_id, url_key) DO UPDATE SET
    url          = excluded.url,
    title        = excluded.title,
    snippet      = excluded.snippet,
    source       = excluded.source,
    match_type   = excluded.match_type,
    score        = excluded.score,
    last_seen_at = excluded.last_seen_at
"""


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _tracker_from_row(row: sqlite3.Row) -> TrackerConfig:
    return TrackerConfig(
        term_id=row["term_id"],
        sensitivity=row["sensitivity"],
        sources_enabled=json.loads(row["sources_enabled"]),
        per_run_cap=row["per_run_cap"],
        last_run_at=row["last_run_at"],
    )


def _rule_from_row(row: sqlite3.Row) -> SourceRule:
    return SourceRule(
        source_name=row["source_name"],
        enabled=bool(row["enabled"]),
        per_run_cap=row["per_run_cap"],
        domains_allowlist=json.loads(row["domains_allowlist"]),
        domains_blocklist=json.loads(row["domains_blocklist"]),
        min_score=row["min_score"],
    )


class SightingsStore:
    """Terms, trackers, source rules and sightings in one SQLite file.

    Every method opens its own connection, so a store can be shared by
    the threads of a tracker run.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()

    @contextmanager
    def _connect(self):
        """Yield a connected sqlite3.Connection, creating the file/dir if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create the tables if they don't exist yet."""
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.info("Sightings DB initialised at %s", self.db_path)

    # ── Terms ──────────────────────────────────────────────────────────────

    def create_term(self, text: str) -> TrackedTerm:
        """Return the term whose normalised text matches *text*, creating it if new.

        Raises:
            ValueError: If *text* is blank.
        """
        normalized = normalize_term(text)
        if not normalized:
            raise ValueError("Term text must not be empty.")

        existing = self.get_term_by_text(normalized)
        if existing is not None:
            return existing

        term = TrackedTerm(
            id=uuid.uuid4().hex,
            text=text.strip(),
            normalized_text=normalized,
            created_at=datetime.now(timezone.utc),
        )
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO terms (id, text, normalized_text, created_at) "
                "VALUES (?, ?, ?, ?)",
                (term.id, term.text, term.normalized_text, _iso(term.created_at)),
            )
        logger.info("Created term id=%s text=%r", term.id, term.text)
        return term

    def get_term(self, term_id: str) -> Optional[TrackedTerm]:
        """Fetch a term by id, or None if not found."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, text, normalized_text, created_at FROM terms WHERE id = ?",
                (term_id,),
            ).fetchone()
        return TrackedTerm(**dict(row)) if row else None

    def get_term_by_text(self, text: str) -> Optional[TrackedTerm]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, text, normalized_text, created_at FROM terms "
                "WHERE normalized_text = ?",
                (normalize_term(text),),
            ).fetchone()
        return TrackedTerm(**dict(row)) if row else None

    # ── Trackers ───────────────────────────────────────────────────────────

    def save_tracker(self, tracker: TrackerConfig) -> None:
        """Insert or replace the tracker configuration for ``tracker.term_id``."""
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO trackers "
                "(term_id, sensitivity, sources_enabled, per_run_cap, last_run_at) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT (term_id) DO UPDATE SET "
                "sensitivity = excluded.sensitivity, "
                "sources_enabled = excluded.sources_enabled, "
                "per_run_cap = excluded.per_run_cap",
                (
                    tracker.term_id,
                    tracker.sensitivity,
                    json.dumps(tracker.sources_enabled),
                    tracker.per_run_cap,
                    _iso(tracker.last_run_at),
                ),
            )

    def get_tracker(self, term_id: str) -> Optional[TrackerConfig]:
        """Fetch the tracker for *term_id*, or None if tracking is not enabled."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM trackers WHERE term_id = ?", (term_id,)
            ).fetchone()
        return _tracker_from_row(row) if row else None

    def list_trackers(self) -> list[TrackerConfig]:
        """Return every tracker whose term still exists."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT trackers.* FROM trackers "
                "JOIN terms ON terms.id = trackers.term_id "
                "ORDER BY trackers.term_id"
            ).fetchall()
        return [_tracker_from_row(row) for row in rows]

    def update_last_run(self, term_id: str, when: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE trackers SET last_run_at = ? WHERE term_id = ?",
                (_iso(when), term_id),
            )

    # ── Source rules ───────────────────────────────────────────────────────

    def save_source_rule(self, rule: SourceRule) -> None:
        """Insert or replace the rule for ``rule.source_name``."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO source_rules "
                "(source_name, enabled, per_run_cap, domains_allowlist, "
                "domains_blocklist, min_score) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    rule.source_name,
                    int(rule.enabled),
                    rule.per_run_cap,
                    json.dumps(rule.domains_allowlist),
                    json.dumps(rule.domains_blocklist),
                    rule.min_score,
                ),
            )
        logger.info("Saved source rule %s (enabled=%s)", rule.source_name, rule.enabled)

    def list_source_rules(self) -> list[SourceRule]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM source_rules ORDER BY source_name"
            ).fetchall()
        return [_rule_from_row(row) for row in rows]

    def get_enabled_rules(self, source_names: list[str]) -> list[SourceRule]:
        """Return enabled rules named in *source_names*, in that order."""
        if not source_names:
            return []
        placeholders = ", ".join("?" for _ in source_names)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM source_rules WHERE enabled = 1 "
                f"AND source_name IN ({placeholders})",
                list(source_names),
            ).fetchall()
        by_name = {row["source_name"]: _rule_from_row(row) for row in rows}
        return [by_name[name] for name in dict.fromkeys(source_names) if name in by_name]

    # ── Sightings ──────────────────────────────────────────────────────────

    def upsert_sightings(self, sightings: list[Sighting]) -> int:
        """Insert new sightings and refresh existing ones, keyed on (term, URL).

        Existing rows keep their ``first_seen_at``; everything else,
        including ``last_seen_at``, takes the new values.

        Returns:
            The number of rows written.
        """
        if not sightings:
            return 0
        rows = [
            (
                s.term_id,
                s.url,
                normalize_url(s.url),
                s.title,
                s.snippet,
                s.source,
                s.match_type,
                s.score,
                _iso(s.first_seen_at),
                _iso(s.last_seen_at),
            )
            for s in sightings
        ]
        with self._write_lock, self._connect() as conn:
            conn.executemany(_UPSERT_SIGHTING, rows)
        logger.info("Upserted %d sightings", len(rows))
        return len(rows)

    def list_sightings(self, term_id: str, limit: int = 50) -> list[Sighting]:
        """Return up to *limit* sightings for a term, highest score first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT term_id, url, title, snippet, source, match_type, score, "
                "first_seen_at, last_seen_at FROM sightings WHERE term_id = ? "
                "ORDER BY score DESC, last_seen_at DESC LIMIT ?",
                (term_id, limit),
            ).fetchall()
        return [Sighting(**dict(row)) for row in rows]

    def count_sightings(self, term_id: str) -> int:
        with self._connect() as conn:
            (count,) = conn.execute(
                "SELECT COUNT(*) FROM sightings WHERE term_id = ?", (term_id,)
            ).fetchone()
        return count
