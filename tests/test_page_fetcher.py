"""Tests for the direct fetcher, reader proxy, sitemap parser and robots.txt policy."""

import asyncio
import json

import httpx
import pytest

from bizintel.collectors.base import FetchStatus
from bizintel.collectors.page_fetcher import PageFetcher, is_bot_challenge_html
from bizintel.collectors.reader_proxy import ReaderProxy
from bizintel.errors import NetworkError, RobotsDisallowed
from bizintel.parsers.sitemap_parser import SitemapParser
from bizintel.utils.deadline import Deadline
from bizintel.utils.robots_checker import RobotsChecker, RobotsPolicy, parse_robots

from .conftest import SEED, FakeSite, long_text, page_html

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _fetch(site: FakeSite, url: str, min_chars: int = 500, deadline=None):
    async def run():
        async with httpx.AsyncClient(transport=site.transport) as client:
            return await PageFetcher(client).fetch(url, 15000, min_chars=min_chars, deadline=deadline)

    return asyncio.run(run())


def _proxy_read(handler, backend="jina", api_key=None, min_chars=100):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            proxy = ReaderProxy(client, backend=backend, api_key=api_key)
            return proxy, await proxy.read(SEED, 30, min_chars=min_chars)

    return asyncio.run(run())


# ─── PageFetcher ──────────────────────────────────────────────────────────────


class TestPageFetcher:
    """Response classification: success / blocked / empty / error."""

    def test_success_normalizes_and_keeps_html(self):
        site = FakeSite(pages={SEED: page_html(long_text("Welcome."))})
        result = _fetch(site, SEED)
        assert result.status == FetchStatus.SUCCESS
        assert result.text.startswith("Acme Limo")
        assert "<main>" in result.html
        assert result.http_status == 200

    def test_browser_user_agent_is_sent(self):
        site = FakeSite(pages={SEED: page_html(long_text())})
        _fetch(site, SEED)
        assert "Chrome" in site.requests[0].headers["User-Agent"]

    @pytest.mark.parametrize("status", [403, 429, 500, 503])
    def test_block_statuses(self, status):
        site = FakeSite(pages={SEED: (status, "denied")})
        result = _fetch(site, SEED)
        assert result.status == FetchStatus.BLOCKED
        assert result.http_status == status

    def test_challenge_page_with_200_is_blocked(self):
        challenge = "<html><title>Just a moment...</title><script src='/cdn-cgi/challenge-platform/h/b'></script></html>"
        site = FakeSite(pages={SEED: challenge})
        result = _fetch(site, SEED)
        assert result.status == FetchStatus.BLOCKED
        assert result.error == "CHALLENGE_PAGE"

    def test_thin_page_is_empty(self):
        site = FakeSite(pages={SEED: page_html("Loading...")})
        result = _fetch(site, SEED)
        assert result.status == FetchStatus.EMPTY
        assert result.chars < 500
        assert result.html is not None

    def test_not_found_is_error(self):
        result = _fetch(FakeSite(), f"{SEED}/missing")
        assert result.status == FetchStatus.ERROR
        assert result.http_status == 404

    def test_transport_failure_raises_network_error(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        site = FakeSite(pages={SEED: boom})
        with pytest.raises(NetworkError):
            _fetch(site, SEED)

    def test_expired_deadline_raises_before_request(self):
        clock_value = [0.0]
        deadline = Deadline(1, clock=lambda: clock_value[0])
        clock_value[0] = 5.0
        site = FakeSite(pages={SEED: page_html(long_text())})
        with pytest.raises(NetworkError):
            _fetch(site, SEED, deadline=deadline)
        assert site.requests == []

    def test_challenge_detection_helper(self):
        assert is_bot_challenge_html("<title>Just a moment</title> cloudflare")
        assert not is_bot_challenge_html("<p>Cloudflare-protected limo company</p>")


# ─── ReaderProxy ──────────────────────────────────────────────────────────────


class TestReaderProxy:
    """Jina and Firecrawl backends."""

    def test_jina_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="# Acme Limo\n\n" + long_text())

        _, result = _proxy_read(handler)
        assert result.status == FetchStatus.SUCCESS
        assert str(seen[0].url).startswith("https://r.jina.ai/")
        assert "BizIntelBot" in seen[0].headers["User-Agent"]
        assert result.html.startswith("# Acme Limo")

    def test_short_output_is_empty(self):
        _, result = _proxy_read(lambda request: httpx.Response(200, text="Loading"))
        assert result.status == FetchStatus.EMPTY

    def test_proxy_block_status(self):
        _, result = _proxy_read(lambda request: httpx.Response(429, text="slow down"))
        assert result.status == FetchStatus.BLOCKED

    def test_firecrawl_posts_and_reads_markdown(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": {"markdown": long_text("Fleet list.")}})

        proxy, result = _proxy_read(handler, backend="firecrawl", api_key="fc-test")
        assert proxy.backend == "firecrawl"
        assert seen[0].method == "POST"
        assert seen[0].headers["Authorization"] == "Bearer fc-test"
        assert json.loads(seen[0].content)["url"] == SEED
        assert result.text.startswith("Fleet list.")

    def test_firecrawl_without_key_falls_back_to_jina(self):
        proxy, _ = _proxy_read(lambda request: httpx.Response(200, text=long_text()), backend="firecrawl")
        assert proxy.backend == "jina"

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValueError):
            ReaderProxy(None, backend="scrapingbee")


# ─── SitemapParser ────────────────────────────────────────────────────────────


class TestSitemapParser:
    """sitemap.xml and sitemap-index parsing."""

    def test_parse_namespaced_urlset(self):
        xml = (
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            "<url><loc>https://acme-limo.com/fleet</loc></url>"
            "<url><loc> https://acme-limo.com/about </loc></url></urlset>"
        )
        is_index, locs = SitemapParser(fetcher=None).parse(xml)
        assert not is_index
        assert locs == ["https://acme-limo.com/fleet", "https://acme-limo.com/about"]

    def test_parse_malformed_falls_back_to_regex(self):
        broken = "<urlset><url><loc>https://acme-limo.com/menu</loc></url><url><loc>https://acme-limo.com/team</loc>"
        _, locs = SitemapParser(fetcher=None).parse(broken)
        assert locs == ["https://acme-limo.com/menu", "https://acme-limo.com/team"]

    def test_parse_non_sitemap(self):
        assert SitemapParser(fetcher=None).parse("<html>Not Found</html>") == (False, [])

    def test_index_children_followed_and_filtered(self):
        index = (
            '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            f"<sitemap><loc>{SEED}/page-sitemap.xml</loc></sitemap>"
            "<sitemap><loc>https://cdn.other.com/sitemap.xml</loc></sitemap>"
            "</sitemapindex>"
        )
        pages = (
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            f"<url><loc>{SEED}/fleet</loc></url>"
            f"<url><loc>{SEED}/fleet/</loc></url>"
            "<url><loc>https://other.com/fleet</loc></url>"
            "</urlset>"
        )
        site = FakeSite(pages={f"{SEED}/sitemap_index.xml": index, f"{SEED}/page-sitemap.xml": pages})

        async def run():
            async with httpx.AsyncClient(transport=site.transport) as client:
                parser = SitemapParser(PageFetcher(client))
                return await parser.fetch_sitemap(f"{SEED}/sitemap_index.xml", SEED)

        assert asyncio.run(run()) == [f"{SEED}/fleet"]
        assert "cdn.other.com" not in [r.url.host for r in site.requests]


# ─── robots.txt ───────────────────────────────────────────────────────────────

ROBOTS = """
User-agent: *
Disallow: /private
Sitemap: https://acme-limo.com/custom-sitemap.xml
"""


class TestRobots:
    """Explicit robots policy: log by default, enforce on request."""

    def test_parse_sitemap_directive(self):
        rules = parse_robots(ROBOTS)
        assert rules.sitemaps == ["https://acme-limo.com/custom-sitemap.xml"]
        assert not rules.allows(f"{SEED}/private/rates")
        assert rules.allows(f"{SEED}/fleet")

    def test_missing_robots_allows_everything(self):
        assert parse_robots(None).allows(f"{SEED}/private")

    def test_log_policy_fetches_anyway(self):
        checker = RobotsChecker(parse_robots(ROBOTS), policy=RobotsPolicy.LOG)
        assert checker.can_fetch(f"{SEED}/private")
        checker.check_seed(f"{SEED}/private")

    def test_enforce_policy_drops_and_refuses(self):
        checker = RobotsChecker(parse_robots(ROBOTS), policy=RobotsPolicy.ENFORCE)
        assert checker.filter_urls([f"{SEED}/fleet", f"{SEED}/private/x"]) == [f"{SEED}/fleet"]
        with pytest.raises(RobotsDisallowed):
            checker.check_seed(f"{SEED}/private")

    def test_policy_accepts_strings(self):
        assert RobotsChecker(policy="enforce").policy == RobotsPolicy.ENFORCE
