"""
Sitemap parser for page discovery.

Parses sitemap.xml and sitemap-index documents into page URLs. Uses
ElementTree with the sitemap namespace, falling back to a `<loc>` regex for
documents that are not well-formed XML (CMS templates, HTML error pages
served with 200).
"""

import re
from typing import List, Optional, Tuple
from xml.etree import ElementTree as ET

from ..constants import MAX_SITEMAP_URLS, DISCOVERY_TIMEOUT_SECONDS
from ..errors import NetworkError
from ..utils.deadline import Deadline
from ..utils.url_helpers import canonical_url, is_same_origin

LOC_PATTERN = re.compile(r"<loc>\s*(.*?)\s*</loc>", re.IGNORECASE | re.DOTALL)


class SitemapParser:
    """
    Parser for sitemap.xml files.

    Handles:
    - Single sitemaps
    - Sitemap indexes (children followed one level deep)
    - Namespaced and namespace-less documents
    """

    NAMESPACES = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}

    def __init__(self, fetcher, timeout: float = DISCOVERY_TIMEOUT_SECONDS, logger=None):
        """
        Initialize parser.

        Args:
            fetcher: PageFetcher used for raw XML requests (bot user agent)
            timeout: Per-request timeout in seconds
            logger: Logger instance
        """
        self.fetcher = fetcher
        self.timeout = timeout
        self.logger = logger

    def parse(self, content: str) -> Tuple[bool, List[str]]:
        """
        Parse sitemap XML text.

        Returns:
            (is_index, locations) where locations are child sitemaps for an
            index and page URLs otherwise
        """
        if not content or "<loc" not in content.lower():
            return False, []

        try:
            root = ET.fromstring(content.strip().encode("utf-8"))
        except ET.ParseError:
            locs = [loc.strip() for loc in LOC_PATTERN.findall(content) if loc.strip()]
            return "<sitemapindex" in content.lower(), locs

        if root.tag.endswith("sitemapindex"):
            return True, self._child_locs(root, "sitemap")
        return False, self._child_locs(root, "url")

    def _child_locs(self, root: ET.Element, child: str) -> List[str]:
        locs = []
        for element in root.findall(f".//sm:{child}/sm:loc", self.NAMESPACES):
            if element.text and element.text.strip():
                locs.append(element.text.strip())

        # Some sitemaps don't use the namespace
        if not locs:
            for element in root.findall(f".//{child}/loc"):
                if element.text and element.text.strip():
                    locs.append(element.text.strip())
        return locs

    async def _fetch_locs(self, url: str, deadline: Optional[Deadline]) -> Tuple[bool, List[str]]:
        try:
            result = await self.fetcher.fetch_text(url, self.timeout, deadline=deadline)
        except NetworkError as e:
            if self.logger:
                self.logger.debug("Sitemap fetch failed", url=url, reason=e.reason)
            return False, []

        if not result.success:
            return False, []
        return self.parse(result.text)

    async def fetch_sitemap(
        self,
        url: str,
        seed_url: str,
        max_urls: int = MAX_SITEMAP_URLS,
        deadline: Optional[Deadline] = None,
    ) -> List[str]:
        """
        Fetch one sitemap and return same-origin page URLs.

        Args:
            url: Sitemap URL (e.g., https://acme-limo.com/sitemap.xml)
            seed_url: Seed URL; pages on other hosts are dropped
            max_urls: Cap on returned URLs
            deadline: Shared run deadline

        Returns:
            Deduplicated page URLs in document order, at most max_urls
        """
        is_index, locs = await self._fetch_locs(url, deadline)

        if is_index:
            children = [loc for loc in locs if is_same_origin(loc, seed_url)]
            page_urls: List[str] = []
            for child in children:
                if len(page_urls) >= max_urls or (deadline and deadline.expired):
                    break
                _, child_locs = await self._fetch_locs(child, deadline)
                page_urls.extend(child_locs)
            locs = page_urls

        urls = []
        seen = set()
        for loc in locs:
            if not is_same_origin(loc, seed_url):
                continue
            key = canonical_url(loc)
            if key in seen:
                continue
            seen.add(key)
            urls.append(loc)
            if len(urls) >= max_urls:
                break

        if self.logger and urls:
            self.logger.debug("Sitemap parsed", url=url, pages=len(urls), index=is_index)
        return urls
