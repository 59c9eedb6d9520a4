"""
Acquisition orchestrator - turn a seed URL into aggregated page text.

Strategies run in order until one yields enough text:
  S1 direct       fetch and normalize the seed page
  S2 reader_proxy fetch the seed through the reader proxy
  S3 multi_page   discover pages and fetch them concurrently

`crawl_first` runs S3 before S1/S2. Every strategy shares one Deadline; when
it expires mid-crawl the pending fetches are cancelled and whatever was
gathered is returned as a partial aggregate if it clears the floor.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import httpx

from ..config import PipelineSettings
from ..constants import (
    DIRECT_FETCH_TIMEOUT_SECONDS,
    MIN_AGGREGATE_CHARS,
    MIN_DIRECT_CHARS,
    MIN_PAGE_CHARS,
    MIN_PROXY_CHARS,
    PAGE_FETCH_TIMEOUT_SECONDS,
    PROXY_FETCH_TIMEOUT_SECONDS,
)
from ..errors import (
    AcquisitionFailed,
    BlockedError,
    EmptyContentError,
    HttpStatusError,
    NetworkError,
)
from ..extractors.content_normalizer import ContentNormalizer
from ..extractors.page_classifier import PageClassifier
from ..models.acquisition import (
    PAGE_LABEL_TEMPLATE,
    AcquisitionRequest,
    AggregatedContent,
    DiscoveredPage,
    PageContribution,
)
from ..utils.async_helpers import run_sync
from ..utils.deadline import Deadline
from ..utils.url_helpers import page_path
from .base import ContentSource, FetchStatus, PageFetchResult
from .page_discovery import PageDiscovery
from .page_fetcher import PageFetcher
from .reader_proxy import ReaderProxy

STRATEGY_DIRECT = "direct"
STRATEGY_READER_PROXY = "reader_proxy"
STRATEGY_MULTI_PAGE = "multi_page"

# Errors that move the run on to the next strategy
RECOVERABLE_ERRORS = (NetworkError, BlockedError, EmptyContentError, HttpStatusError)


def build_aggregate(
    seed_url: str,
    pages: List[Tuple[str, str]],
    request: AcquisitionRequest,
    classifier: Optional[PageClassifier] = None,
    partial: bool = False,
) -> AggregatedContent:
    """
    Concatenate fetched pages in discovery order under the request's budgets.

    Each page is prefixed with a `========== PAGE: <path> ==========` header.
    Detail pages are capped at `detail_page_char_budget`, others at
    `per_page_char_budget`; the rendered text never exceeds
    `total_char_budget` (the last page is cut to fit).
    """
    classifier = classifier or PageClassifier()
    contributions: List[PageContribution] = []
    parts: List[str] = []
    used = 0

    for url, text in pages:
        is_detail = classifier.is_detail_page(url)
        cap = request.detail_page_char_budget if is_detail else request.per_page_char_budget
        label = classifier.label_for(url)
        header = PAGE_LABEL_TEMPLATE.format(label=label)
        body = text[:cap]

        remaining = request.total_char_budget - used
        if remaining <= len(header):
            break
        if len(header) + len(body) > remaining:
            body = body[: remaining - len(header)]

        parts.append(header + body)
        used += len(header) + len(body)
        contributions.append(PageContribution(url=url, label=label, text=body, is_detail=is_detail))

    return AggregatedContent(
        seed_url=seed_url,
        text="".join(parts),
        strategy=STRATEGY_MULTI_PAGE,
        pages=contributions,
        partial=partial,
    )


@dataclass
class _RunState:
    """Facts one strategy learns that a later one can use."""

    direct_blocked: bool = False
    seed_content: Optional[str] = None


class AcquisitionOrchestrator:
    """
    Run S1 -> S2 -> S3 (or S3 first) for one seed URL under one deadline.

    Args:
        settings: Pipeline settings (proxy backend, robots policy, concurrency)
        transport: Optional httpx transport (tests inject httpx.MockTransport)
        logger: PipelineLogger instance
        clock: Monotonic clock for the deadline
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger=None,
        normalizer: Optional[ContentNormalizer] = None,
        classifier: Optional[PageClassifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or PipelineSettings()
        self.transport = transport
        self.logger = logger
        self.normalizer = normalizer or ContentNormalizer()
        self.classifier = classifier or PageClassifier()
        self.clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            follow_redirects=True,
            timeout=httpx.Timeout(DIRECT_FETCH_TIMEOUT_SECONDS, connect=10.0),
        )

    def _reader_proxy(self, client: httpx.AsyncClient) -> ReaderProxy:
        return ReaderProxy(
            client,
            backend=self.settings.reader_proxy,
            base_url=self.settings.reader_proxy_url,
            api_key=self.settings.firecrawl_api_key,
            firecrawl_url=self.settings.firecrawl_url,
            logger=self.logger,
        )

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _raise_for_result(self, result: PageFetchResult, floor: int) -> None:
        if result.status == FetchStatus.BLOCKED:
            raise BlockedError(result.url, result.error or "blocked", http_status=result.http_status)
        if result.status == FetchStatus.ERROR:
            raise HttpStatusError(result.url, result.http_status)
        if result.status == FetchStatus.EMPTY:
            raise EmptyContentError(result.url, result.chars, floor)

    def _single_page(self, seed_url: str, result: PageFetchResult, strategy: str, request: AcquisitionRequest):
        text = result.text[: request.total_char_budget]
        return AggregatedContent(
            seed_url=seed_url,
            text=text,
            strategy=strategy,
            pages=[PageContribution(url=seed_url, label=page_path(seed_url), text=text)],
            final_url=result.final_url,
        )

    async def _direct(self, request, fetcher, proxy, discovery, deadline, state) -> AggregatedContent:
        result = await fetcher.fetch(
            request.seed_url,
            DIRECT_FETCH_TIMEOUT_SECONDS * 1000,
            min_chars=MIN_DIRECT_CHARS,
            deadline=deadline,
        )

        if result.html:
            state.seed_content = result.html
        if result.status == FetchStatus.BLOCKED:
            state.direct_blocked = True
        self._raise_for_result(result, MIN_DIRECT_CHARS)
        return self._single_page(request.seed_url, result, STRATEGY_DIRECT, request)

    async def _proxy(self, request, fetcher, proxy, discovery, deadline, state) -> AggregatedContent:
        result = await proxy.read(
            request.seed_url,
            PROXY_FETCH_TIMEOUT_SECONDS,
            min_chars=MIN_PROXY_CHARS,
            deadline=deadline,
        )
        if result.html and state.seed_content is None:
            state.seed_content = result.html
        self._raise_for_result(result, MIN_PROXY_CHARS)
        return self._single_page(request.seed_url, result, STRATEGY_READER_PROXY, request)

    async def _fetch_page(
        self,
        source: ContentSource,
        page: DiscoveredPage,
        semaphore: asyncio.Semaphore,
        deadline: Deadline,
    ) -> Optional[PageFetchResult]:
        async with semaphore:
            try:
                return await source.read(page.url, PAGE_FETCH_TIMEOUT_SECONDS, min_chars=MIN_PAGE_CHARS, deadline=deadline)
            except NetworkError as e:
                if self.logger:
                    self.logger.debug("Page fetch failed", url=page.url, reason=e.reason)
                return None

    async def _multi_page(self, request, fetcher, proxy, discovery, deadline, state) -> AggregatedContent:
        pages = await discovery.discover(
            request.seed_url,
            deadline=deadline,
            max_pages=request.max_pages,
            seed_content=state.seed_content,
        )
        source: ContentSource = proxy if state.direct_blocked else fetcher
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)

        tasks = [
            asyncio.create_task(self._fetch_page(source, page, semaphore, deadline))
            for page in pages
        ]
        if not tasks:
            raise EmptyContentError(request.seed_url, 0, MIN_AGGREGATE_CHARS)
        done, pending = await asyncio.wait(tasks, timeout=deadline.remaining())

        partial = bool(pending)
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            if self.logger:
                self.logger.warning(
                    "Deadline reached during crawl, cancelled pending fetches",
                    url=request.seed_url,
                    completed=len(done),
                    cancelled=len(pending),
                )

        fetched: List[Tuple[str, str]] = []
        for page, task in zip(pages, tasks):
            if task not in done or task.cancelled() or task.exception() is not None:
                continue
            result = task.result()
            if result is None or not result.success:
                continue
            if self.classifier.looks_like_not_found(result.text):
                if self.logger:
                    self.logger.debug("Dropping not-found page", url=page.url)
                continue
            fetched.append((page.url, result.text))

        aggregate = build_aggregate(request.seed_url, fetched, request, self.classifier, partial=partial)
        if len(aggregate.text) < MIN_AGGREGATE_CHARS:
            raise EmptyContentError(request.seed_url, len(aggregate.text), MIN_AGGREGATE_CHARS)
        return aggregate

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def acquire(self, request: AcquisitionRequest, deadline: Optional[Deadline] = None) -> AggregatedContent:
        """
        Acquire content for one seed URL.

        Args:
            request: Acquisition parameters
            deadline: Invocation deadline shared with later stages; a new one
                of `request.deadline_seconds` is started when omitted

        Returns:
            AggregatedContent from the first strategy that succeeds

        Raises:
            AcquisitionFailed: every strategy failed or the deadline expired
            RobotsDisallowed: seed disallowed under the enforce policy
        """
        if deadline is None:
            deadline = Deadline(request.deadline_seconds, clock=self.clock)
        state = _RunState()
        attempts: List[Tuple[str, str]] = []

        strategies = [
            (STRATEGY_DIRECT, self._direct),
            (STRATEGY_READER_PROXY, self._proxy),
            (STRATEGY_MULTI_PAGE, self._multi_page),
        ]
        if request.crawl_first:
            strategies = [strategies[2], strategies[0], strategies[1]]

        async with self._client() as client:
            fetcher = PageFetcher(client, normalizer=self.normalizer, logger=self.logger)
            proxy = self._reader_proxy(client)
            discovery = PageDiscovery(
                fetcher,
                reader_proxy=proxy,
                classifier=self.classifier,
                robots_policy=self.settings.robots_policy,
                logger=self.logger,
            )

            checker = await discovery.robots_checker(request.seed_url, deadline)
            checker.check_seed(request.seed_url)

            for name, strategy in strategies:
                if deadline.expired:
                    attempts.append((name, "deadline exceeded"))
                    break
                try:
                    content = await strategy(request, fetcher, proxy, discovery, deadline, state)
                except RECOVERABLE_ERRORS as e:
                    attempts.append((name, e.reason))
                    if self.logger:
                        self.logger.log_strategy_attempt(request.seed_url, name, False, reason=e.reason)
                    continue

                if self.logger:
                    self.logger.log_strategy_attempt(request.seed_url, name, True, chars=len(content.text))
                return content

        if self.logger:
            self.logger.error("All acquisition strategies failed", url=request.seed_url, attempts=len(attempts))
        raise AcquisitionFailed(request.seed_url, attempts)

    def acquire_sync(self, request: AcquisitionRequest, deadline: Optional[Deadline] = None) -> AggregatedContent:
        """Synchronous wrapper around acquire()."""
        return run_sync(self.acquire(request, deadline))
