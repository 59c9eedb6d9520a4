"""
Page discovery - decide which pages of a site to fetch.

Tiers, in strict priority; a tier that yields at least one same-origin page
ends discovery:
1. /sitemap.xml, /sitemap_index.xml, /sitemap-index.xml
2. the first `Sitemap:` directive of robots.txt
3. links on the seed page (markdown `[text](url)` and raw `href="..."`)
4. when tier 3 leaves three or fewer candidates (seed included), a static
   list of common business paths is added

The result is then filtered to relevant paths (seed always kept), run
through the robots policy, and capped.
"""

import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from ..constants import (
    COMMON_BUSINESS_PATHS,
    COMMON_PATH_THRESHOLD,
    DIRECT_FETCH_TIMEOUT_SECONDS,
    MAX_PAGES,
    MAX_SITEMAP_URLS,
    DISCOVERY_TIMEOUT_SECONDS,
    PROXY_FETCH_TIMEOUT_SECONDS,
    SITEMAP_PATHS,
    SKIP_LINK_EXTENSIONS,
    SKIP_LINK_PREFIXES,
)
from ..errors import NetworkError
from ..extractors.page_classifier import PageClassifier
from ..models.acquisition import DiscoveredPage, SourceHint
from ..parsers.sitemap_parser import SitemapParser
from ..utils.deadline import Deadline
from ..utils.robots_checker import RobotsChecker, RobotsPolicy, RobotsRules, parse_robots
from ..utils.url_helpers import canonical_url, is_same_origin, origin_of
from .page_fetcher import PageFetcher
from .reader_proxy import ReaderProxy

MARKDOWN_LINK_PATTERN = re.compile(r"\[([^\]]*)\]\(\s*([^)\s]+)(?:\s+\"[^\"]*\")?\s*\)")
HREF_PATTERN = re.compile(r"""href\s*=\s*["']([^"']+)["']""", re.IGNORECASE)


def extract_links(content: str, seed_url: str) -> List[str]:
    """
    Extract same-origin page links from HTML or markdown.

    Relative paths are resolved against the seed; fragments, mailto/tel/
    javascript links and file downloads are skipped.
    """
    if not content:
        return []

    raw_links = [match.group(2) for match in MARKDOWN_LINK_PATTERN.finditer(content)]
    raw_links.extend(match.group(1) for match in HREF_PATTERN.finditer(content))

    links = []
    seen = set()
    for raw in raw_links:
        link = raw.strip()
        if not link or link.lower().startswith(SKIP_LINK_PREFIXES):
            continue
        absolute = urljoin(seed_url, link).split("#", 1)[0]
        if urlparse(absolute).scheme not in ("http", "https"):
            continue
        if urlparse(absolute).path.lower().endswith(SKIP_LINK_EXTENSIONS):
            continue
        if not is_same_origin(absolute, seed_url):
            continue
        key = canonical_url(absolute)
        if key in seen:
            continue
        seen.add(key)
        links.append(absolute)
    return links


class PageDiscovery:
    """
    Discover candidate pages for a seed URL.

    Never raises for HTTP failure: a discovery request that errors is logged and its
    tier counts as empty.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        reader_proxy: Optional[ReaderProxy] = None,
        classifier: Optional[PageClassifier] = None,
        robots_policy: RobotsPolicy = RobotsPolicy.LOG,
        max_sitemap_urls: int = MAX_SITEMAP_URLS,
        logger=None,
    ):
        self.fetcher = fetcher
        self.reader_proxy = reader_proxy
        self.classifier = classifier or PageClassifier()
        self.robots_policy = robots_policy
        self.max_sitemap_urls = max_sitemap_urls
        self.logger = logger
        self.sitemap_parser = SitemapParser(fetcher, timeout=DISCOVERY_TIMEOUT_SECONDS, logger=logger)
        self._robots: Optional[RobotsRules] = None

    # ------------------------------------------------------------------
    # robots.txt
    # ------------------------------------------------------------------

    async def load_robots(self, seed_url: str, deadline: Optional[Deadline] = None) -> RobotsRules:
        """Fetch and parse robots.txt once per discovery instance."""
        if self._robots is not None:
            return self._robots

        robots_url = f"{origin_of(seed_url)}/robots.txt"
        try:
            result = await self.fetcher.fetch_text(robots_url, DISCOVERY_TIMEOUT_SECONDS, deadline=deadline)
            self._robots = parse_robots(result.text if result.success else None)
        except NetworkError as e:
            if self.logger:
                self.logger.warning("robots.txt check failed", url=robots_url, reason=e.reason)
            self._robots = RobotsRules()
        return self._robots

    async def robots_checker(self, seed_url: str, deadline: Optional[Deadline] = None) -> RobotsChecker:
        rules = await self.load_robots(seed_url, deadline)
        return RobotsChecker(rules=rules, policy=self.robots_policy, logger=self.logger)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    async def _from_sitemaps(self, seed_url: str, deadline: Optional[Deadline]) -> List[str]:
        origin = origin_of(seed_url)
        for path in SITEMAP_PATHS:
            if deadline and deadline.expired:
                return []
            urls = await self.sitemap_parser.fetch_sitemap(
                f"{origin}{path}", seed_url, max_urls=self.max_sitemap_urls, deadline=deadline
            )
            if urls:
                return urls
        return []

    async def _from_robots_sitemap(self, seed_url: str, deadline: Optional[Deadline]) -> List[str]:
        rules = await self.load_robots(seed_url, deadline)
        if not rules.sitemaps:
            return []
        return await self.sitemap_parser.fetch_sitemap(
            rules.sitemaps[0], seed_url, max_urls=self.max_sitemap_urls, deadline=deadline
        )

    async def _seed_content(self, seed_url: str, deadline: Optional[Deadline]) -> Optional[str]:
        """Seed HTML from a direct fetch, or markdown from the reader proxy when blocked."""
        try:
            result = await self.fetcher.fetch(seed_url, DIRECT_FETCH_TIMEOUT_SECONDS * 1000, deadline=deadline)
            if result.html:
                return result.html
        except NetworkError as e:
            if self.logger:
                self.logger.debug("Seed fetch for link discovery failed", url=seed_url, reason=e.reason)

        if self.reader_proxy is None:
            return None
        try:
            result = await self.reader_proxy.read(seed_url, PROXY_FETCH_TIMEOUT_SECONDS, deadline=deadline)
            return result.html
        except NetworkError as e:
            if self.logger:
                self.logger.debug("Reader proxy for link discovery failed", url=seed_url, reason=e.reason)
            return None

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def discover(
        self,
        seed_url: str,
        deadline: Optional[Deadline] = None,
        max_pages: int = MAX_PAGES,
        seed_content: Optional[str] = None,
    ) -> List[DiscoveredPage]:
        """
        Discover pages to fetch for a seed URL.

        Args:
            seed_url: Normalized seed URL
            deadline: Shared run deadline
            max_pages: Cap on returned pages (seed included)
            seed_content: Seed HTML/markdown already fetched by the caller

        Returns:
            DiscoveredPage list, seed first, same-origin, deduplicated
        """
        hint = SourceHint.SITEMAP
        urls = await self._from_sitemaps(seed_url, deadline)

        if not urls:
            hint = SourceHint.ROBOTS_SITEMAP
            urls = await self._from_robots_sitemap(seed_url, deadline)

        candidates = [DiscoveredPage(url=seed_url, source_hint=SourceHint.SEED)]
        seen = {canonical_url(seed_url)}

        def add(url: str, source: SourceHint):
            key = canonical_url(url)
            if key not in seen and is_same_origin(url, seed_url):
                seen.add(key)
                candidates.append(DiscoveredPage(url=url, source_hint=source))

        if urls:
            for url in urls:
                add(url, hint)
        else:
            content = seed_content
            if content is None:
                content = await self._seed_content(seed_url, deadline)
            for url in extract_links(content or "", seed_url):
                add(url, SourceHint.NAV_LINK)

            if len(candidates) <= COMMON_PATH_THRESHOLD:
                origin = origin_of(seed_url)
                for path in COMMON_BUSINESS_PATHS:
                    add(f"{origin}{path}", SourceHint.COMMON_PATH)

        relevant = [candidates[0]] + [p for p in candidates[1:] if self.classifier.is_relevant(p.url)]

        checker = await self.robots_checker(seed_url, deadline)
        permitted = set(checker.filter_urls([p.url for p in relevant[1:]]))
        allowed = [relevant[0]] + [p for p in relevant[1:] if p.url in permitted]

        pages = allowed[:max_pages]
        if self.logger:
            self.logger.info(
                "Discovery complete",
                url=seed_url,
                candidates=len(candidates),
                selected=len(pages),
                source=pages[1].source_hint.value if len(pages) > 1 else "seed_only",
            )
        return pages
