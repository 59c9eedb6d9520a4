"""
Direct page fetcher.

Fetches a URL with a desktop-browser header set and classifies the response
as success / blocked / empty / error. HTTP-level failures never raise; only
transport failures (DNS, TLS, connect, read timeout) raise NetworkError.
"""

from typing import Dict, Optional

import httpx

from ..constants import (
    BLOCKED_STATUS_CODES,
    BOT_USER_AGENT,
    BROWSER_USER_AGENT,
    CHALLENGE_MARKERS,
    DIRECT_TEXT_CAP,
)
from ..errors import NetworkError
from ..extractors.content_normalizer import ContentNormalizer
from ..utils.deadline import Deadline
from .base import ContentSource, FetchStatus, PageFetchResult

BROWSER_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

BOT_HEADERS = {
    "User-Agent": BOT_USER_AGENT,
    "Accept": "application/xml,text/xml,text/plain;q=0.9,*/*;q=0.5",
}


def is_bot_challenge_html(html: str) -> bool:
    """Detect anti-bot challenge pages that are sometimes returned with HTTP 200."""
    if not html:
        return False

    body = html[:20000].lower()
    if any(marker in body for marker in CHALLENGE_MARKERS):
        return True

    # Fallback marker combination seen on Cloudflare interstitial pages.
    if "just a moment" in body and "cloudflare" in body:
        return True

    return False


def is_blocked_status(status_code: int) -> bool:
    return status_code in BLOCKED_STATUS_CODES or status_code >= 500


def _bounded_timeout(url: str, timeout_s: float, deadline: Optional[Deadline]) -> float:
    timeout = deadline.bound(timeout_s) if deadline else timeout_s
    if timeout <= 0:
        raise NetworkError(url, "deadline exceeded before request")
    return timeout


class PageFetcher(ContentSource):
    """
    Fetch pages directly from the site.

    The httpx client is owned by the caller (one per acquisition run) so
    pending requests are cancelled together when the run ends.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        normalizer: Optional[ContentNormalizer] = None,
        text_cap: int = DIRECT_TEXT_CAP,
        logger=None,
    ):
        self.client = client
        self.normalizer = normalizer or ContentNormalizer()
        self.text_cap = text_cap
        self.logger = logger

    @property
    def source_name(self) -> str:
        return "direct"

    async def _get(self, url: str, timeout: float, headers: Dict[str, str]) -> httpx.Response:
        try:
            return await self.client.get(url, headers=headers, timeout=timeout, follow_redirects=True)
        except httpx.TimeoutException as e:
            raise NetworkError(url, f"timeout after {timeout:.1f}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(url, f"{type(e).__name__}: {e}") from e

    async def fetch(
        self,
        url: str,
        timeout_ms: int,
        min_chars: int = 0,
        deadline: Optional[Deadline] = None,
    ) -> PageFetchResult:
        """
        Fetch and normalize one page.

        Args:
            url: Absolute URL
            timeout_ms: Per-call timeout; further bounded by the deadline
            min_chars: Floor below which the page is classified EMPTY
            deadline: Shared run deadline

        Returns:
            PageFetchResult (never raises for HTTP failure)

        Raises:
            NetworkError: transport failure, timeout, or no time left
        """
        timeout = _bounded_timeout(url, timeout_ms / 1000.0, deadline)
        response = await self._get(url, timeout, BROWSER_HEADERS)
        final_url = str(response.url)
        body = response.text or ""

        if is_blocked_status(response.status_code):
            if self.logger:
                self.logger.debug("Blocked status", url=url, status=response.status_code)
            return PageFetchResult(
                url=url,
                status=FetchStatus.BLOCKED,
                http_status=response.status_code,
                final_url=final_url,
                error=f"HTTP {response.status_code}",
            )

        if not response.is_success:
            return PageFetchResult(
                url=url,
                status=FetchStatus.ERROR,
                http_status=response.status_code,
                final_url=final_url,
                error=f"HTTP {response.status_code}",
            )

        if is_bot_challenge_html(body):
            if self.logger:
                self.logger.debug("Challenge page returned with success status", url=url)
            return PageFetchResult(
                url=url,
                status=FetchStatus.BLOCKED,
                http_status=response.status_code,
                final_url=final_url,
                error="CHALLENGE_PAGE",
            )

        text = self.normalizer.normalize(body).full_text[: self.text_cap]
        if len(text) < min_chars:
            return PageFetchResult(
                url=url,
                status=FetchStatus.EMPTY,
                text=text,
                http_status=response.status_code,
                final_url=final_url,
                error=f"only {len(text)} chars",
                html=body,
            )

        return PageFetchResult(
            url=url,
            status=FetchStatus.SUCCESS,
            text=text,
            http_status=response.status_code,
            final_url=final_url,
            html=body,
        )

    async def read(
        self,
        url: str,
        timeout_s: float,
        min_chars: int = 0,
        deadline: Optional[Deadline] = None,
    ) -> PageFetchResult:
        return await self.fetch(url, int(timeout_s * 1000), min_chars=min_chars, deadline=deadline)

    async def fetch_text(
        self,
        url: str,
        timeout_s: float,
        deadline: Optional[Deadline] = None,
    ) -> PageFetchResult:
        """
        Fetch a machine-readable resource (sitemap, robots.txt) without normalization.

        Uses the descriptive bot user agent. `text` holds the raw body.
        """
        timeout = _bounded_timeout(url, timeout_s, deadline)
        response = await self._get(url, timeout, BOT_HEADERS)
        final_url = str(response.url)

        if is_blocked_status(response.status_code):
            status = FetchStatus.BLOCKED
        elif not response.is_success:
            status = FetchStatus.ERROR
        elif not response.text.strip():
            status = FetchStatus.EMPTY
        else:
            status = FetchStatus.SUCCESS

        return PageFetchResult(
            url=url,
            status=status,
            text=response.text if status == FetchStatus.SUCCESS else "",
            http_status=response.status_code,
            final_url=final_url,
            error=None if status == FetchStatus.SUCCESS else f"HTTP {response.status_code}",
        )
