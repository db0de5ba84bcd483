"""Definition synthesis using the Claude API.

Turns the best sightings of a term into a short, family-safe definition
with citations. The model is only allowed to use the supplied snippets;
its answer is parsed straight into a ``SlangDefinition``.

The Anthropic client is lazy-initialised so that the class can be
instantiated in tests without requiring a live API key.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from slanglab.models import Citation, Sighting, SlangDefinition

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

#: Snippets beyond this many are not sent to the model.
MAX_SNIPPETS = 8
MAX_RELATED = 4

DEFINITION_SYSTEM = (
    "You write neutral, family-safe slang definitions with citations. "
    "Use ONLY the provided snippets. No speculation. If sources conflict, "
    "note both and set confidence to \"Medium\". The meaning must be at most "
    "24 words of plain English, the example a safe sentence, and related "
    "terms at most 4. Leave warning empty if none applies."
)


class SlangDefiner:
    """Synthesises definitions for tracked terms from their sightings."""

    def __init__(self, settings: Settings) -> None:
        """Initialise the definer.

        Args:
            settings: Application configuration (must have ``anthropic_api_key``).
        """
        self.settings = settings
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            import anthropic
            self.settings.validate()
            self._client = anthropic.Anthropic(
                api_key=self.settings.anthropic_api_key,
                max_retries=5,
            )
        return self._client

    def define(self, term: str, sightings: list[Sighting]) -> SlangDefinition:
        """Produce a structured definition of *term* from its sightings.

        Args:
            term: The slang term.
            sightings: Evidence for the term, best first.

        Returns:
            A validated ``SlangDefinition``. With no sightings the API is not
            called and a low-confidence placeholder is returned.

        Raises:
            ValueError: If *term* is blank or no API key is configured.
            anthropic.APIError: On API failures.
        """
        term = term.strip()
        if not term:
            raise ValueError("Term must not be empty.")

        if not sightings:
            return SlangDefinition(
                meaning=f"No sightings of '{term}' have been recorded yet.",
                tone="neutral",
                example="",
                confidence="Low",
            )

        snippets = [
            {
                "title": s.title,
                "url": s.url,
                "quote": s.snippet,
                "date": s.last_seen_at.isoformat(),
            }
            for s in sightings[:MAX_SNIPPETS]
        ]
        user_content = f"SNIPPETS: {json.dumps(snippets)}\nTERM: {term}"

        logger.info("Synthesising definition for %r from %d snippets", term, len(snippets))
        response = self.client.messages.parse(
            model=self.settings.definition_model,
            max_tokens=700,
            system=DEFINITION_SYSTEM,
            messages=[{"role": "user", "content": user_content}],
            output_format=SlangDefinition,
        )
        definition = response.parsed_output

        updates: dict = {"related": definition.related[:MAX_RELATED]}
        # Fall back to the snippets we sent if the model cited nothing
        if not definition.citations:
            updates["citations"] = [Citation(**snippet) for snippet in snippets]
        return definition.model_copy(update=updates)
