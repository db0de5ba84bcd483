"""
Tracker runs for SlangLab.

Flow
────
1. run(term_id)
     → load tracker config, term and the enabled source rules
     → expand the term into a query pack
     → fan out to the source adapters on a thread pool
     → score, dedupe and filter the combined hits
     → upsert qualifying sightings keyed on (term, URL)
     → stamp the tracker's last_run_at

2. run_all()
     → run() for every tracker, counting successes and failures

Only a missing tracker or term stops a run. Source failures cost that
source's hits; persistence failures are logged and the run still reports.
"""

from __future__ import annotations

import logging
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from slanglab.aggregator import process
from slanglab.models import (
    RawHit,
    RunSummary,
    SchedulerSummary,
    Sighting,
    SourceRule,
    TrackerConfig,
)
from slanglab.queries import expand
from slanglab.search import SourceAdapter, build_adapters, is_blocked
from slanglab.store import SightingsStore

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_PER_RUN_CAP = 25


# ── Errors ─────────────────────────────────────────────────────────────────────


class NotFoundError(LookupError):
    """A record a tracker run depends on does not exist."""


class TrackerNotFound(NotFoundError):
    def __init__(self, term_id: str) -> None:
        super().__init__("Tracker not found")
        self.term_id = term_id


class TermNotFound(NotFoundError):
    def __init__(self, term_id: str) -> None:
        super().__init__("Term not found")
        self.term_id = term_id


class RunCancelled(RuntimeError):
    """The caller cancelled the run before anything was written."""


# ── Runner ─────────────────────────────────────────────────────────────────────


class TrackerRunner:
    """Runs trackers against a store and a set of source adapters.

    Adapters are keyed by ``SourceRule.source_name``; a rule without a
    matching adapter contributes no hits.
    """

    def __init__(
        self,
        store: SightingsStore,
        adapters: dict[str, SourceAdapter],
        default_cap: int = DEFAULT_PER_RUN_CAP,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.adapters = adapters
        self.default_cap = default_cap
        self.max_workers = max(1, max_workers)
        #: Entries vanish once no run holds the lock.
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: Optional[SightingsStore] = None,
    ) -> TrackerRunner:
        """Build a runner with the default adapters and a store at ``settings.db_path``."""
        if store is None:
            store = SightingsStore(settings.db_path)
            store.init_db()
        return cls(
            store=store,
            adapters=build_adapters(settings),
            default_cap=settings.default_per_run_cap,
            max_workers=settings.max_workers,
        )

    def _term_lock(self, term_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(term_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[term_id] = lock
            return lock

    # ── Source fan-out ─────────────────────────────────────────────────────

    def _cap_for(self, tracker: TrackerConfig, rule: SourceRule) -> int:
        return tracker.per_run_cap or rule.per_run_cap or self.default_cap

    def _search_source(
        self,
        rule: SourceRule,
        queries: list[str],
        cap: int,
    ) -> list[RawHit]:
        adapter = self.adapters.get(rule.source_name)
        if adapter is None:
            logger.warning("No adapter registered for source %r", rule.source_name)
            return []

        logger.info(
            "Searching %s with cap: %d, allowlist: %d domains",
            rule.source_name, cap, len(rule.domains_allowlist),
        )
        hits = adapter.search(queries, list(rule.domains_allowlist), cap)

        if rule.domains_blocklist:
            kept = [h for h in hits if not is_blocked(h.url, rule.domains_blocklist)]
            if len(kept) != len(hits):
                logger.info(
                    "Dropped %d blocklisted hits from %s",
                    len(hits) - len(kept), rule.source_name,
                )
            hits = kept
        return hits

    def collect(
        self,
        tracker: TrackerConfig,
        rules: list[SourceRule],
        queries: list[str],
    ) -> list[RawHit]:
        """Query every rule's source concurrently and concatenate in rule order.

        A source that raises contributes zero hits.
        """
        if not rules:
            return []

        workers = min(self.max_workers, len(rules))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                (rule, executor.submit(
                    self._search_source, rule, queries, self._cap_for(tracker, rule)
                ))
                for rule in rules
            ]

            hits: list[RawHit] = []
            for rule, future in futures:
                try:
                    hits.extend(future.result())
                except Exception:
                    logger.exception("Source %s failed; continuing without it", rule.source_name)
        return hits

    # ── Single run ─────────────────────────────────────────────────────────

    def _load_rules(self, tracker: TrackerConfig) -> list[SourceRule]:
        try:
            return self.store.get_enabled_rules(tracker.sources_enabled)
        except Exception:
            logger.exception("Error fetching source rules for term_id=%s", tracker.term_id)
            return []

    def run(
        self,
        term_id: str,
        now: Optional[datetime] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RunSummary:
        """Run the tracker for *term_id* once.

        Args:
            term_id: Id of the tracked term.
            now: Run start time, stamped on sightings and the tracker
                (defaults to UTC now).
            cancel: Optional event; if set before persistence starts the
                run stops with ``RunCancelled`` and writes nothing.

        Returns:
            A ``RunSummary`` of the run.

        Raises:
            TrackerNotFound: If no tracker exists for *term_id*.
            TermNotFound: If the term itself does not exist.
            RunCancelled: If *cancel* was set.
        """
        now = now or datetime.now(timezone.utc)

        lock = self._term_lock(term_id)
        with lock:
            logger.info("Running tracker for term_id: %s", term_id)

            tracker = self.store.get_tracker(term_id)
            if tracker is None:
                logger.error("Tracker not found for term_id=%s", term_id)
                raise TrackerNotFound(term_id)

            term = self.store.get_term(term_id)
            if term is None:
                logger.error("Term not found for term_id=%s", term_id)
                raise TermNotFound(term_id)

            rules = self._load_rules(tracker)
            logger.info(
                "Searching for term: %r with %d enabled sources", term.text, len(rules)
            )

            queries = expand(term.text)
            logger.info("Generated %d query variants", len(queries))

            if cancel is not None and cancel.is_set():
                raise RunCancelled(f"Run for term_id={term_id} cancelled")
            hits = self.collect(tracker, rules, queries)
            logger.info("Found %d raw results", len(hits))

            processed = process(hits, term.text, now=now)
            logger.info("Processed to %d unique results", len(processed))

            min_score = min((rule.min_score for rule in rules), default=0)
            qualified = [hit for hit in processed if hit.score >= min_score]
            logger.info(
                "%d results meet minimum score threshold of %d", len(qualified), min_score
            )

            if cancel is not None and cancel.is_set():
                raise RunCancelled(f"Run for term_id={term_id} cancelled")

            sightings = [
                Sighting(
                    term_id=term_id,
                    url=hit.url,
                    title=hit.title,
                    snippet=hit.snippet,
                    source=hit.source,
                    match_type=hit.match_type,
                    score=hit.score,
                    first_seen_at=now,
                    last_seen_at=now,
                )
                for hit in qualified
            ]

            written = 0
            try:
                written = self.store.upsert_sightings(sightings)
            except Exception:
                logger.exception("Error upserting sightings for term_id=%s", term_id)

            try:
                self.store.update_last_run(term_id, now)
            except Exception:
                logger.exception("Error updating tracker for term_id=%s", term_id)

        return RunSummary(
            term_id=term_id,
            queries_generated=len(queries),
            results_found=len(hits),
            results_processed=len(processed),
            sightings_created=written,
            min_score=min_score,
            sightings=sightings,
        )

    # ── Scheduled pass ─────────────────────────────────────────────────────

    def run_all(self, now: Optional[datetime] = None) -> SchedulerSummary:
        """Run every tracker once; one tracker failing does not stop the rest."""
        now = now or datetime.now(timezone.utc)
        trackers = self.store.list_trackers()
        logger.info("Found %d active trackers", len(trackers))

        success_count = 0
        error_count = 0
        for tracker in trackers:
            try:
                summary = self.run(tracker.term_id, now=now)
            except Exception:
                logger.exception("Failed to run tracker for term_id=%s", tracker.term_id)
                error_count += 1
                continue
            logger.info(
                "Tracker for term_id=%s wrote %d sightings",
                tracker.term_id, summary.sightings_created,
            )
            success_count += 1

        summary = SchedulerSummary(
            total_trackers=len(trackers),
            success_count=success_count,
            error_count=error_count,
            timestamp=now,
        )
        logger.info("Scheduler run completed: %s", summary.model_dump())
        return summary
