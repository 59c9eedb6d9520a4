"""
Value types for one acquisition run: the request, discovered pages and the
aggregated text handed to extraction.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..constants import (
    DEFAULT_DEADLINE_SECONDS,
    DETAIL_PAGE_CHAR_BUDGET,
    MAX_PAGES,
    PER_PAGE_CHAR_BUDGET,
    TOTAL_CHAR_BUDGET,
)

PAGE_LABEL_TEMPLATE = "\n\n========== PAGE: {label} ==========\n"


@dataclass(frozen=True)
class AcquisitionRequest:
    """Per-invocation acquisition parameters. Immutable once built."""

    seed_url: str
    max_pages: int = MAX_PAGES
    per_page_char_budget: int = PER_PAGE_CHAR_BUDGET
    detail_page_char_budget: int = DETAIL_PAGE_CHAR_BUDGET
    total_char_budget: int = TOTAL_CHAR_BUDGET
    deadline_seconds: float = DEFAULT_DEADLINE_SECONDS
    crawl_first: bool = False

    def __post_init__(self):
        if not self.seed_url:
            raise ValueError("seed_url is required")
        if self.max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {self.max_pages}")
        if self.per_page_char_budget <= 0 or self.detail_page_char_budget <= 0:
            raise ValueError("page char budgets must be positive")
        if self.per_page_char_budget > self.total_char_budget:
            raise ValueError(
                f"per_page_char_budget ({self.per_page_char_budget}) exceeds "
                f"total_char_budget ({self.total_char_budget})"
            )
        if self.deadline_seconds <= 0:
            raise ValueError(f"deadline_seconds must be positive, got {self.deadline_seconds}")


class SourceHint(str, Enum):
    """Where discovery found a page, in priority order."""

    SEED = "seed"
    SITEMAP = "sitemap"
    ROBOTS_SITEMAP = "robots_sitemap"
    NAV_LINK = "nav_link"
    COMMON_PATH = "common_path"


@dataclass(frozen=True)
class DiscoveredPage:
    """Candidate page URL, always same-origin as the seed."""

    url: str
    source_hint: SourceHint


@dataclass
class PageContribution:
    """One page's share of the aggregate, already truncated to its cap."""

    url: str
    label: str
    text: str
    is_detail: bool = False


@dataclass
class AggregatedContent:
    """
    Text handed to extraction.

    `text` is the rendered aggregate; for multi-page runs every page is
    preceded by a `========== PAGE: <label> ==========` header.
    """

    seed_url: str
    text: str
    strategy: str
    pages: List[PageContribution] = field(default_factory=list)
    partial: bool = False
    final_url: Optional[str] = None

    def __len__(self) -> int:
        return len(self.text)

    @property
    def page_count(self) -> int:
        return len(self.pages) or (1 if self.text else 0)
