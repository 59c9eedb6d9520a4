"""
Base content-source interface for the acquisition phase.

Two sources exist: the direct page fetcher and the reader proxy. Both return
a PageFetchResult for HTTP-level outcomes and raise NetworkError for
transport-level failures, so the orchestrator can treat them uniformly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..utils.deadline import Deadline


class FetchStatus(str, Enum):
    SUCCESS = "success"
    BLOCKED = "blocked"  # 403/429/5xx or anti-bot interstitial
    EMPTY = "empty"  # text below the caller's floor
    ERROR = "error"  # any other non-2xx


@dataclass
class PageFetchResult:
    """Result of fetching one URL."""

    url: str
    status: FetchStatus
    text: str = ""  # normalized text (raw body for fetch_text)
    http_status: Optional[int] = None
    final_url: Optional[str] = None
    error: Optional[str] = None
    html: Optional[str] = None  # raw body, kept for link discovery

    @property
    def success(self) -> bool:
        return self.status == FetchStatus.SUCCESS

    @property
    def chars(self) -> int:
        return len(self.text)


class ContentSource(ABC):
    """
    A way of turning a URL into page text.

    Subclasses must implement:
    - source_name: short strategy label used in logs and AggregatedContent.strategy
    - read(url, timeout_s, min_chars, deadline) -> PageFetchResult
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        ...

    @abstractmethod
    async def read(
        self,
        url: str,
        timeout_s: float,
        min_chars: int = 0,
        deadline: Optional[Deadline] = None,
    ) -> PageFetchResult:
        """
        Fetch one URL and return its normalized text.

        Raises:
            NetworkError: DNS/TLS/connect/read failure or timeout
        """
        ...
