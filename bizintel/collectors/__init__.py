"""
Collectors module for website content acquisition.

- page_fetcher: direct fetch with block/empty classification
- reader_proxy: Jina reader / Firecrawl fallback for blocked or JS-only sites
- page_discovery: sitemap / robots / nav-link / common-path discovery
- orchestrator: S1 direct -> S2 reader proxy -> S3 multi-page crawl
"""

from .base import ContentSource, FetchStatus, PageFetchResult
from .orchestrator import AcquisitionOrchestrator, build_aggregate
from .page_discovery import PageDiscovery, extract_links
from .page_fetcher import PageFetcher
from .reader_proxy import ReaderProxy

__all__ = [
    "AcquisitionOrchestrator",
    "ContentSource",
    "FetchStatus",
    "PageDiscovery",
    "PageFetchResult",
    "PageFetcher",
    "ReaderProxy",
    "build_aggregate",
    "extract_links",
]
