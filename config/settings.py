"""Application settings: all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if ANTHROPIC_API_KEY is missing
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "slanglab.db"


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    google_cse_api_key: str = field(
        default_factory=lambda: os.environ.get("GOOGLE_CSE_API_KEY", "")
    )
    google_cse_id: str = field(
        default_factory=lambda: os.environ.get("GOOGLE_CSE_ID", "")
    )
    news_api_key: str = field(
        default_factory=lambda: os.environ.get("NEWS_API_KEY", "")
    )
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )

    # ── Storage ─────────────────────────────────────────────────────────────
    db_path: Path = field(
        default_factory=lambda: Path(os.environ.get("DB_PATH") or DEFAULT_DB_PATH)
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "5001"))
    )

    # ── Tracker runs ────────────────────────────────────────────────────────
    #: Seconds before a single provider call is abandoned.
    source_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SOURCE_TIMEOUT_SECONDS", "10"))
    )
    #: Per-source result cap when neither the tracker nor the rule sets one.
    default_per_run_cap: int = field(
        default_factory=lambda: int(os.environ.get("DEFAULT_PER_RUN_CAP", "25"))
    )
    max_workers: int = field(
        default_factory=lambda: int(os.environ.get("TRACKER_MAX_WORKERS", "4"))
    )

    # ── AI Models ───────────────────────────────────────────────────────────
    #: Model used for the definition synthesis pass.
    definition_model: str = "claude-haiku-4-5"

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
