"""
SlangLab tracker package.

Modules
───────
models     : Pydantic records (TrackedTerm, TrackerConfig, SourceRule, Sighting)
             and in-flight hit dataclasses (RawHit, ScoredHit)
queries    : query expansion for a tracked term
search     : source adapters (Google Custom Search, NewsAPI)
scorer     : evidence scoring of a hit against a term
aggregator : URL normalisation, scoring and cross-source deduplication
store      : SQLite-backed terms, trackers, source rules and sightings
tracker    : tracker runs and the scheduled pass over all trackers
definer    : Claude-backed definition synthesis from sightings
"""
