# =============================================================================
# Unit Tests — HTTP Live Search
# =============================================================================
#
# httpx.MockTransport stands in for the search endpoint, so requests are
# inspected in-process without touching the network.
# =============================================================================

import json
from unittest.mock import patch

import httpx
import pytest

from app.services import live_search
from app.services.live_search import HttpLiveSearch, get_live_search
from tests.fakes import _run

SEARCH_URL = "https://search.example.com/v1/search"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpLiveSearch:

    def test_posts_query_and_parses_results(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"results": [
                {"title": "Release v3.9", "content": "Adds Asana integration", "url": "https://example.com/v39"},
                {"title": "Blog", "snippet": "Pricing update", "href": "https://example.com/blog"},
            ]})

        search = HttpLiveSearch(SEARCH_URL, api_key="secret", client=_client(handler))
        hits = _run(search.search("latest release", 3))

        assert seen["body"] == {"query": "latest release", "max_results": 3}
        assert seen["auth"] == "Bearer secret"
        assert [h.title for h in hits] == ["Release v3.9", "Blog"]
        assert hits[0].snippet == "Adds Asana integration"
        assert hits[1].snippet == "Pricing update"
        assert hits[1].url == "https://example.com/blog"

    def test_truncates_to_max_results(self):
        def handler(request):
            return httpx.Response(200, json={"results": [
                {"title": f"r{i}", "content": "x"} for i in range(5)
            ]})

        search = HttpLiveSearch(SEARCH_URL, client=_client(handler))
        assert len(_run(search.search("q", 2))) == 2

    def test_missing_results_key_is_empty(self):
        search = HttpLiveSearch(
            SEARCH_URL, client=_client(lambda request: httpx.Response(200, json={})),
        )
        assert _run(search.search("q", 3)) == []

    def test_http_error_propagates(self):
        search = HttpLiveSearch(
            SEARCH_URL, client=_client(lambda request: httpx.Response(503)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            _run(search.search("q", 3))

    def test_no_auth_header_without_key(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"results": []})

        _run(HttpLiveSearch(SEARCH_URL, client=_client(handler)).search("q", 3))
        assert seen["auth"] is None


class TestGetLiveSearch:

    def test_disabled_without_url(self):
        with patch.object(live_search.settings, "live_search_url", None):
            assert get_live_search() is None

    def test_enabled_with_url(self):
        with patch.object(live_search.settings, "live_search_url", SEARCH_URL):
            assert isinstance(get_live_search(), HttpLiveSearch)
