"""Source adapters for external content providers.

Every adapter exposes the same capability::

    adapter.search(queries, domain_allowlist, max_results) -> list[RawHit]

and never raises for provider trouble. Missing credentials, HTTP errors,
timeouts and malformed payloads are logged and produce zero hits, so a
tracker run can carry on with whatever the other sources returned.

Adding a source means adding a ``SourceAdapter`` subclass and registering
it in :func:`build_adapters`; the tracker itself does not change.
"""

from __future__ import annotations

import logging
import math
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

import httpx

from slanglab.models import RawHit
from slanglab.queries import unquote

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"
NEWSAPI_EVERYTHING_URL = "https://newsapi.org/v2/everything"

_WWW_PREFIX = re.compile(r"^www\.")


def hostname(url: str) -> str:
    """Return the bare lowercase hostname of *url*, stripping any ``www.`` prefix."""
    try:
        return _WWW_PREFIX.sub("", urlparse(url).netloc.lower())
    except ValueError:
        return ""


def _text(value) -> str:
    """Return *value* if it is a string, else an empty string."""
    return value if isinstance(value, str) else ""


def is_blocked(url: str, blocklist: list[str]) -> bool:
    """Return True if *url* is on, or under, a domain in *blocklist*.

    Examples:
        >>> is_blocked("https://www.urbandictionary.com/x", ["urbandictionary.com"])
        True
        >>> is_blocked("https://m.urbandictionary.com/x", ["urbandictionary.com"])
        True
    """
    host = hostname(url)
    if not host:
        return False
    for domain in blocklist:
        domain = _WWW_PREFIX.sub("", domain.strip().lower())
        if domain and (host == domain or host.endswith("." + domain)):
            return True
    return False


# ── Base adapter ───────────────────────────────────────────────────────────────


class SourceAdapter(ABC):
    """One external content source behind the uniform ``search`` interface.

    The ``httpx.Client`` is lazy-initialised so adapters can be built
    without network access; tests pass a client with a mock transport.
    """

    #: Name matching ``SourceRule.source_name``.
    source_name: str = ""

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.Client] = None) -> None:
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialise and return the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when the credentials this source needs are present."""

    @abstractmethod
    def search(
        self,
        queries: list[str],
        domain_allowlist: list[str],
        max_results: int,
    ) -> list[RawHit]:
        """Query the provider and return raw hits (never raises)."""

    def _get_json(self, url: str, params: dict) -> Optional[dict]:
        """GET *url* and decode the JSON body, or log and return ``None``."""
        try:
            response = self.client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "%s error: HTTP %d", self.source_name, exc.response.status_code
            )
            return None
        except httpx.HTTPError as exc:
            logger.warning("%s request failed: %s", self.source_name, exc)
            return None
        except ValueError:
            logger.warning("%s returned a non-JSON body", self.source_name)
            return None

        if not isinstance(payload, dict):
            logger.warning("%s returned an unexpected payload", self.source_name)
            return None
        return payload


# ── Google Custom Search ───────────────────────────────────────────────────────


class GoogleSearchAdapter(SourceAdapter):
    """Web search through the Google Custom Search JSON API."""

    source_name = "google_cse"
    #: Only the first few expanded queries are issued, to stay under rate limits.
    max_queries = 3
    #: Provider ceiling on ``num``.
    max_page_size = 10

    def __init__(
        self,
        api_key: str,
        engine_id: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.engine_id = engine_id

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.engine_id)

    def _params(self, query: str, allowlist: list[str], num: int) -> dict:
        params = {"key": self.api_key, "cx": self.engine_id, "q": query, "num": num}
        if len(allowlist) == 1:
            params["siteSearch"] = allowlist[0]
            params["siteSearchFilter"] = "i"
        elif allowlist:
            sites = " OR ".join(f"site:{domain}" for domain in allowlist)
            params["q"] = f"{query} ({sites})"
        return params

    def search(
        self,
        queries: list[str],
        domain_allowlist: list[str],
        max_results: int,
    ) -> list[RawHit]:
        """Issue one request per query (first three only).

        Each request asks for ``ceil(max_results / len(queries))`` items,
        capped at the provider maximum of 10. A failed query is skipped.
        """
        if not self.configured:
            logger.info("Google CSE credentials not available")
            return []
        if not queries or max_results <= 0:
            return []

        per_query = min(math.ceil(max_results / len(queries)), self.max_page_size)
        hits: list[RawHit] = []

        for query in queries[: self.max_queries]:
            payload = self._get_json(
                GOOGLE_CSE_URL, self._params(query, domain_allowlist, per_query)
            )
            if payload is None:
                continue
            items = payload.get("items") or []
            if not isinstance(items, list):
                logger.warning("Google CSE returned malformed items for %r", query)
                continue
            for item in items:
                link = _text(item.get("link")) if isinstance(item, dict) else ""
                if not link:
                    continue
                hits.append(RawHit(
                    url=link,
                    title=_text(item.get("title")),
                    snippet=_text(item.get("snippet")),
                    source=self.source_name,
                    match_type="web_search",
                ))

        logger.info("Google CSE returned %d hits", len(hits))
        return hits[:max_results]


# ── NewsAPI ────────────────────────────────────────────────────────────────────


class NewsApiAdapter(SourceAdapter):
    """Recent news articles through the newsapi.org ``/everything`` endpoint."""

    source_name = "news_api"
    #: Provider ceiling on ``pageSize``.
    max_page_size = 100

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def search(
        self,
        queries: list[str],
        domain_allowlist: list[str],
        max_results: int,
    ) -> list[RawHit]:
        """Issue a single request for the raw term, newest first.

        The raw term is the first query of the expanded pack with its
        quotes removed. Articles without a URL or description are skipped.
        """
        if not self.configured:
            logger.info("NewsAPI credentials not available")
            return []
        if not queries or max_results <= 0:
            return []

        params = {
            "q": unquote(queries[0]),
            "sortBy": "publishedAt",
            "pageSize": min(max_results, self.max_page_size),
            "apiKey": self.api_key,
        }
        if domain_allowlist:
            params["domains"] = ",".join(domain_allowlist)

        payload = self._get_json(NEWSAPI_EVERYTHING_URL, params)
        if payload is None:
            return []

        articles = payload.get("articles") or []
        if not isinstance(articles, list):
            logger.warning("NewsAPI returned malformed articles")
            return []

        hits: list[RawHit] = []
        for article in articles:
            if not isinstance(article, dict):
                continue
            url = _text(article.get("url"))
            description = _text(article.get("description"))
            if not url or not description:
                continue
            hits.append(RawHit(
                url=url,
                title=_text(article.get("title")),
                snippet=description,
                source=self.source_name,
                published_at=_text(article.get("publishedAt")) or None,
                match_type="news_search",
            ))

        logger.info("NewsAPI returned %d hits", len(hits))
        return hits[:max_results]


# ── Registry ───────────────────────────────────────────────────────────────────


def build_adapters(settings: Settings) -> dict[str, SourceAdapter]:
    """Build every known adapter from *settings*, keyed by source name."""
    adapters: list[SourceAdapter] = [
        GoogleSearchAdapter(
            api_key=settings.google_cse_api_key,
            engine_id=settings.google_cse_id,
            timeout=settings.source_timeout,
        ),
        NewsApiAdapter(
            api_key=settings.news_api_key,
            timeout=settings.source_timeout,
        ),
    ]
    return {adapter.source_name: adapter for adapter in adapters}
