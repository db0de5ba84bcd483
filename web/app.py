"""
Flask JSON API for the SlangLab tracker.

Routes
──────
POST /api/run_tracker               Run one tracker {term_id} (JSON summary)
POST /api/run_scheduler             Run every tracker once
POST /api/terms                     Create a term and enable tracking
GET  /api/terms/<id>/sightings      List a term's sightings, best first
POST /api/terms/<id>/define         Synthesise a definition from sightings
GET  /api/source_rules              List admin source rules
PUT  /api/source_rules/<name>       Create or replace a source rule
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from pydantic import ValidationError

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from slanglab.definer import SlangDefiner
from slanglab.models import SourceRule, TrackerConfig
from slanglab.tracker import NotFoundError, TrackerRunner

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    runner: Optional[TrackerRunner] = None,
    definer: Optional[SlangDefiner] = None,
) -> Flask:
    """Build the Flask app.

    Args:
        settings: Configuration; read from the environment when omitted.
        runner: Tracker runner; built from *settings* when omitted, which
            also initialises the SQLite store.
        definer: Definition synthesiser; built from *settings* when omitted.
    """
    settings = settings or Settings()
    runner = runner or TrackerRunner.from_settings(settings)
    definer = definer or SlangDefiner(settings)
    store = runner.store

    app = Flask(__name__)

    # ── Tracker runs ───────────────────────────────────────────────────────

    @app.route("/api/run_tracker", methods=["POST"])
    def run_tracker():
        """Run the tracker for ``term_id`` and return its summary."""
        body = request.get_json(silent=True) or {}
        term_id = body.get("term_id")
        if not term_id:
            return jsonify({"error": "term_id is required"}), 400

        try:
            summary = runner.run(str(term_id))
        except NotFoundError as exc:
            return jsonify({"error": str(exc)}), 404
        except Exception as exc:
            logger.exception("Error in run_tracker for term_id=%s", term_id)
            return jsonify({"error": str(exc)}), 500
        return jsonify(summary.to_response())

    @app.route("/api/run_scheduler", methods=["POST"])
    def run_scheduler():
        """Run every tracker once and report how many succeeded."""
        try:
            summary = runner.run_all()
        except Exception as exc:
            logger.exception("Fatal error in tracker scheduler")
            return jsonify({"error": str(exc)}), 500
        return jsonify(summary.model_dump(mode="json"))

    # ── Terms & sightings ──────────────────────────────────────────────────

    @app.route("/api/terms", methods=["POST"])
    def create_term():
        """Create (or reuse) a term and enable tracking for it."""
        body = request.get_json(silent=True) or {}
        text = str(body.get("text") or "").strip()
        if not text:
            return jsonify({"error": "text is required"}), 400

        try:
            tracker = TrackerConfig(
                term_id="",
                sensitivity=body.get("sensitivity") or "medium",
                sources_enabled=body.get("sources_enabled") or [
                    rule.source_name for rule in store.list_source_rules() if rule.enabled
                ],
                per_run_cap=body.get("per_run_cap"),
            )
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400

        term = store.create_term(text)
        store.save_tracker(tracker.model_copy(update={"term_id": term.id}))

        return jsonify(
            {
                "term": term.model_dump(mode="json"),
                "tracker": store.get_tracker(term.id).model_dump(mode="json"),
            }
        ), 201

    @app.route("/api/terms/<term_id>/sightings")
    def list_sightings(term_id: str):
        """Return the best sightings recorded for a term."""
        if store.get_term(term_id) is None:
            return jsonify({"error": "Term not found"}), 404
        limit = request.args.get("limit", default=50, type=int)
        sightings = store.list_sightings(term_id, limit=limit)
        return jsonify([s.model_dump(mode="json") for s in sightings])

    @app.route("/api/terms/<term_id>/define", methods=["POST"])
    def define_term(term_id: str):
        term = store.get_term(term_id)
        if term is None:
            return jsonify({"error": "Term not found"}), 404
        try:
            definition = definer.define(term.text, store.list_sightings(term_id, limit=10))
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        except Exception as exc:
            logger.exception("Definition synthesis failed for term_id=%s", term_id)
            return jsonify({"error": str(exc)}), 500
        return jsonify(definition.model_dump())

    # ── Source rules (admin) ───────────────────────────────────────────────

    @app.route("/api/source_rules")
    def list_source_rules():
        return jsonify([rule.model_dump() for rule in store.list_source_rules()])

    @app.route("/api/source_rules/<source_name>", methods=["PUT"])
    def put_source_rule(source_name: str):
        """Create or replace the rule for one source."""
        body = request.get_json(silent=True) or {}
        try:
            rule = SourceRule(**{**body, "source_name": source_name})
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400
        store.save_source_rule(rule)
        return jsonify(rule.model_dump())

    return app


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings = Settings()
    create_app(settings).run(debug=settings.debug, host="0.0.0.0", port=settings.port)
