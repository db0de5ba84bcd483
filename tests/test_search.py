"""Tests for slanglab/search.py: source adapters against mocked providers."""

from __future__ import annotations

import httpx
import pytest

from slanglab.queries import expand
from slanglab.search import (
    GoogleSearchAdapter,
    NewsApiAdapter,
    build_adapters,
    hostname,
    is_blocked,
)

QUERIES = expand("rizz")


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def google_items(*links: str) -> dict:
    return {
        "items": [
            {"link": link, "title": f"Title {i}", "snippet": f"Snippet {i}"}
            for i, link in enumerate(links)
        ]
    }


# ── Google Custom Search ───────────────────────────────────────────────────────


class TestGoogleSearchAdapter:
    def make(self, handler, **kw) -> GoogleSearchAdapter:
        kw.setdefault("api_key", "key")
        kw.setdefault("engine_id", "cx")
        return GoogleSearchAdapter(client=mock_client(handler), **kw)

    def test_issues_first_three_queries(self):
        seen = []

        def handler(request):
            seen.append(request.url.params)
            return httpx.Response(200, json=google_items("https://a.com/1"))

        hits = self.make(handler).search(QUERIES, [], 25)

        assert [p["q"] for p in seen] == QUERIES[:3]
        assert len(hits) == 3
        assert all(h.source == "google_cse" for h in hits)
        assert all(h.match_type == "web_search" for h in hits)

    def test_per_query_count_rounds_up(self):
        seen = []

        def handler(request):
            seen.append(request.url.params["num"])
            return httpx.Response(200, json={})

        self.make(handler).search(QUERIES, [], 25)

        assert seen == ["4", "4", "4"]  # ceil(25 / 7)

    def test_per_query_count_capped_at_ten(self):
        seen = []

        def handler(request):
            seen.append(request.url.params["num"])
            return httpx.Response(200, json={})

        self.make(handler).search(['"rizz"'], [], 50)

        assert seen == ["10"]

    def test_single_domain_uses_site_search(self):
        seen = []

        def handler(request):
            seen.append(request.url.params)
            return httpx.Response(200, json={})

        self.make(handler).search(['"rizz"'], ["reddit.com"], 10)

        assert seen[0]["siteSearch"] == "reddit.com"
        assert seen[0]["q"] == '"rizz"'

    def test_many_domains_restrict_query(self):
        seen = []

        def handler(request):
            seen.append(request.url.params)
            return httpx.Response(200, json={})

        self.make(handler).search(['"rizz"'], ["reddit.com", "tiktok.com"], 10)

        assert seen[0]["q"] == '"rizz" (site:reddit.com OR site:tiktok.com)'
        assert "siteSearch" not in seen[0]

    def test_failed_query_skipped(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(500)
            return httpx.Response(200, json=google_items(f"https://a.com/{len(calls)}"))

        hits = self.make(handler).search(QUERIES, [], 25)

        assert len(calls) == 3
        assert [h.url for h in hits] == ["https://a.com/2", "https://a.com/3"]

    def test_truncates_to_max_results(self):
        def handler(request):
            return httpx.Response(200, json=google_items("https://a.com/1", "https://a.com/2"))

        hits = self.make(handler).search(QUERIES, [], 2)

        assert len(hits) == 2

    def test_items_without_link_skipped(self):
        def handler(request):
            return httpx.Response(200, json={"items": [{"title": "no link"}]})

        assert self.make(handler).search(['"rizz"'], [], 10) == []

    def test_non_string_fields_become_empty(self):
        def handler(request):
            return httpx.Response(200, json={"items": [
                {"link": "https://a.com/1", "title": 3, "snippet": "rizz"},
                {"link": ["https://a.com/2"], "title": "list link"},
            ]})

        hits = self.make(handler).search(['"rizz"'], [], 10)

        assert [(h.url, h.title, h.snippet) for h in hits] == [("https://a.com/1", "", "rizz")]

    def test_items_not_a_list_skipped(self):
        assert self.make(lambda request: httpx.Response(200, json={"items": 5})).search(
            ['"rizz"'], [], 10
        ) == []

    def test_missing_credentials_returns_empty(self):
        def handler(request):
            pytest.fail("no request expected without credentials")

        adapter = self.make(handler, api_key="")
        assert adapter.configured is False
        assert adapter.search(QUERIES, [], 25) == []

    def test_timeout_returns_empty(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        assert self.make(handler).search(QUERIES, [], 25) == []


# ── NewsAPI ────────────────────────────────────────────────────────────────────


class TestNewsApiAdapter:
    def make(self, handler, api_key: str = "key") -> NewsApiAdapter:
        return NewsApiAdapter(api_key=api_key, client=mock_client(handler))

    def test_single_call_with_raw_term(self):
        seen = []

        def handler(request):
            seen.append(request.url.params)
            return httpx.Response(200, json={"articles": [
                {
                    "url": "https://news.com/rizz",
                    "title": "Rizz is word of the year",
                    "description": "Oxford picks rizz.",
                    "publishedAt": "2026-01-14T08:00:00Z",
                },
            ]})

        hits = self.make(handler).search(QUERIES, [], 25)

        assert len(seen) == 1
        assert seen[0]["q"] == "rizz"
        assert seen[0]["sortBy"] == "publishedAt"
        assert seen[0]["pageSize"] == "25"
        assert len(hits) == 1
        assert hits[0].match_type == "news_search"
        assert hits[0].source == "news_api"
        assert hits[0].published_at == "2026-01-14T08:00:00Z"
        assert hits[0].snippet == "Oxford picks rizz."

    def test_page_size_capped_at_provider_limit(self):
        seen = []

        def handler(request):
            seen.append(request.url.params)
            return httpx.Response(200, json={"articles": []})

        self.make(handler).search(QUERIES, ["bbc.co.uk", "cnn.com"], 150)

        assert seen[0]["pageSize"] == "100"
        assert seen[0]["domains"] == "bbc.co.uk,cnn.com"

    def test_articles_without_description_skipped(self):
        def handler(request):
            return httpx.Response(200, json={"articles": [
                {"url": "https://news.com/a", "title": "A", "description": None},
                {"url": None, "title": "B", "description": "b"},
                {"url": "https://news.com/c", "title": "C", "description": "c"},
            ]})

        hits = self.make(handler).search(QUERIES, [], 25)

        assert [h.url for h in hits] == ["https://news.com/c"]

    def test_non_string_fields_ignored(self):
        def handler(request):
            return httpx.Response(200, json={"articles": [
                {"url": "https://news.com/a", "title": None, "description": 7},
                {"url": "https://news.com/b", "title": 2, "description": "b", "publishedAt": 0},
            ]})

        (hit,) = self.make(handler).search(QUERIES, [], 25)

        assert (hit.url, hit.title, hit.snippet, hit.published_at) == ("https://news.com/b", "", "b", None)

    def test_articles_not_a_list_returns_empty(self):
        def handler(request):
            return httpx.Response(200, json={"articles": 5})

        assert self.make(handler).search(QUERIES, [], 25) == []

    def test_http_error_returns_empty(self):
        assert self.make(lambda request: httpx.Response(429)).search(QUERIES, [], 25) == []

    def test_non_json_body_returns_empty(self):
        def handler(request):
            return httpx.Response(200, text="<html>rate limited</html>")

        assert self.make(handler).search(QUERIES, [], 25) == []

    def test_missing_credentials_returns_empty(self):
        def handler(request):
            pytest.fail("no request expected without credentials")

        assert self.make(handler, api_key="").search(QUERIES, [], 25) == []


# ── Helpers & registry ─────────────────────────────────────────────────────────


class TestDomains:
    def test_hostname_strips_www(self):
        assert hostname("https://www.Reddit.com/r/slang") == "reddit.com"

    def test_hostname_of_garbage_is_empty(self):
        assert hostname("not-a-url") == ""

    def test_blocked_exact_domain(self):
        assert is_blocked("https://www.urbandictionary.com/x", ["urbandictionary.com"])

    def test_blocked_subdomain(self):
        assert is_blocked("https://m.urbandictionary.com/x", ["urbandictionary.com"])

    def test_similar_domain_not_blocked(self):
        assert not is_blocked("https://noturbandictionary.com/x", ["urbandictionary.com"])

    def test_empty_blocklist(self):
        assert not is_blocked("https://example.com", [])


class TestBuildAdapters:
    def test_registers_both_sources(self):
        settings = type("S", (), {
            "google_cse_api_key": "k",
            "google_cse_id": "cx",
            "news_api_key": "",
            "source_timeout": 5.0,
        })()

        adapters = build_adapters(settings)

        assert set(adapters) == {"google_cse", "news_api"}
        assert adapters["google_cse"].configured
        assert not adapters["news_api"].configured
        assert adapters["news_api"].timeout == 5.0
