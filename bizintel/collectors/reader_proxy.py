"""
Reader-proxy content source.

A reader proxy renders a page on its own infrastructure (JavaScript included)
and returns readable text/markdown. Used when the site blocks direct fetches
or renders client-side only.

Backends:
- jina (default): GET https://r.jina.ai/<url>, plain-text response
- firecrawl: POST {url, formats} with a bearer key, markdown in data.markdown
"""

from typing import Optional

import httpx

from ..constants import BOT_USER_AGENT, DIRECT_TEXT_CAP
from ..errors import NetworkError
from ..extractors.content_normalizer import normalize_text
from ..utils.deadline import Deadline
from .base import ContentSource, FetchStatus, PageFetchResult
from .page_fetcher import is_blocked_status

JINA_BACKEND = "jina"
FIRECRAWL_BACKEND = "firecrawl"


class ReaderProxy(ContentSource):
    """
    Fetch a page through a reader proxy.

    Args:
        client: Shared httpx client for the run
        backend: "jina" or "firecrawl"
        base_url: Jina base URL (ignored for firecrawl)
        api_key: Firecrawl API key (required for firecrawl)
        firecrawl_url: Firecrawl scrape endpoint
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        backend: str = JINA_BACKEND,
        base_url: str = "https://r.jina.ai",
        api_key: Optional[str] = None,
        firecrawl_url: str = "https://api.firecrawl.dev/v0/scrape",
        text_cap: int = DIRECT_TEXT_CAP,
        logger=None,
    ):
        if backend not in (JINA_BACKEND, FIRECRAWL_BACKEND):
            raise ValueError(f"Unknown reader proxy backend: {backend}")
        if backend == FIRECRAWL_BACKEND and not api_key:
            # Firecrawl without a key cannot work; use the keyless reader instead
            backend = JINA_BACKEND
            if logger:
                logger.warning("Firecrawl selected without FIRECRAWL_API_KEY, using jina reader")

        self.client = client
        self.backend = backend
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.firecrawl_url = firecrawl_url
        self.text_cap = text_cap
        self.logger = logger

    @property
    def source_name(self) -> str:
        return "reader_proxy"

    async def _request(self, url: str, timeout: float) -> httpx.Response:
        try:
            if self.backend == FIRECRAWL_BACKEND:
                return await self.client.post(
                    self.firecrawl_url,
                    json={"url": url, "formats": ["markdown"], "onlyMainContent": True},
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                        "User-Agent": BOT_USER_AGENT,
                    },
                    timeout=timeout,
                )
            return await self.client.get(
                f"{self.base_url}/{url}",
                headers={"Accept": "text/plain", "User-Agent": BOT_USER_AGENT},
                timeout=timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(url, f"reader proxy timeout after {timeout:.1f}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(url, f"reader proxy {type(e).__name__}: {e}") from e

    def _body_text(self, response: httpx.Response) -> str:
        if self.backend != FIRECRAWL_BACKEND:
            return response.text or ""
        try:
            payload = response.json()
        except ValueError:
            return ""
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            return ""
        data = payload["data"]
        return data.get("markdown") or data.get("content") or ""

    async def read(
        self,
        url: str,
        timeout_s: float,
        min_chars: int = 0,
        deadline: Optional[Deadline] = None,
    ) -> PageFetchResult:
        """
        Read one URL through the proxy.

        Returns:
            PageFetchResult; `html` holds the raw markdown so links can be mined

        Raises:
            NetworkError: transport failure, timeout, or no time left
        """
        timeout = deadline.bound(timeout_s) if deadline else timeout_s
        if timeout <= 0:
            raise NetworkError(url, "deadline exceeded before reader proxy request")

        response = await self._request(url, timeout)

        if is_blocked_status(response.status_code):
            return PageFetchResult(
                url=url,
                status=FetchStatus.BLOCKED,
                http_status=response.status_code,
                error=f"reader proxy HTTP {response.status_code}",
            )
        if not response.is_success:
            return PageFetchResult(
                url=url,
                status=FetchStatus.ERROR,
                http_status=response.status_code,
                error=f"reader proxy HTTP {response.status_code}",
            )

        raw = self._body_text(response)
        text = normalize_text(raw)[: self.text_cap]
        status = FetchStatus.SUCCESS if len(text) >= min_chars and text else FetchStatus.EMPTY

        if self.logger:
            self.logger.debug("Reader proxy response", url=url, backend=self.backend, chars=len(text))

        return PageFetchResult(
            url=url,
            status=status,
            text=text,
            http_status=response.status_code,
            final_url=url,
            error=None if status == FetchStatus.SUCCESS else f"only {len(text)} chars",
            html=raw,
        )
