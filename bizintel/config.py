"""
Runtime configuration from environment variables.

Entry points call `load_dotenv()` first, so a local `.env` file works too.

Variables:
  - BIZINTEL_DEADLINE_SECONDS (default: 60)
  - BIZINTEL_MAX_PAGES (default: 12)
  - BIZINTEL_PER_PAGE_CHARS / BIZINTEL_DETAIL_PAGE_CHARS / BIZINTEL_TOTAL_CHARS
  - BIZINTEL_READER_PROXY (default: jina; "firecrawl" needs FIRECRAWL_API_KEY)
  - BIZINTEL_READER_PROXY_URL (default: https://r.jina.ai)
  - FIRECRAWL_API_KEY
  - BIZINTEL_ROBOTS_POLICY (default: log; or "enforce")
  - BIZINTEL_LLM_MODEL (default: gpt-4o-mini)
  - BIZINTEL_ORACLE_TIMEOUT_SECONDS (default: 45)
  - BIZINTEL_LOG_LEVEL (default: INFO)
"""

import os
from dataclasses import dataclass
from typing import Optional

from .constants import (
    DEFAULT_DEADLINE_SECONDS,
    DETAIL_PAGE_CHAR_BUDGET,
    MAX_CRAWL_CONCURRENCY,
    MAX_PAGES,
    ORACLE_TIMEOUT_SECONDS,
    PER_PAGE_CHAR_BUDGET,
    TOTAL_CHAR_BUDGET,
)
from .models.acquisition import AcquisitionRequest
from .utils.robots_checker import RobotsPolicy

DEFAULT_LLM_MODEL = "gpt-4o-mini"
DEFAULT_JINA_BASE_URL = "https://r.jina.ai"
DEFAULT_FIRECRAWL_URL = "https://api.firecrawl.dev/v0/scrape"


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


@dataclass(frozen=True)
class PipelineSettings:
    """Immutable settings for one process."""

    deadline_seconds: float = DEFAULT_DEADLINE_SECONDS
    max_pages: int = MAX_PAGES
    per_page_char_budget: int = PER_PAGE_CHAR_BUDGET
    detail_page_char_budget: int = DETAIL_PAGE_CHAR_BUDGET
    total_char_budget: int = TOTAL_CHAR_BUDGET
    max_concurrency: int = MAX_CRAWL_CONCURRENCY
    reader_proxy: str = "jina"
    reader_proxy_url: str = DEFAULT_JINA_BASE_URL
    firecrawl_api_key: Optional[str] = None
    firecrawl_url: str = DEFAULT_FIRECRAWL_URL
    robots_policy: RobotsPolicy = RobotsPolicy.LOG
    llm_model: str = DEFAULT_LLM_MODEL
    oracle_timeout_seconds: float = ORACLE_TIMEOUT_SECONDS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from the process environment."""
        return cls(
            deadline_seconds=_env_float("BIZINTEL_DEADLINE_SECONDS", DEFAULT_DEADLINE_SECONDS),
            max_pages=_env_int("BIZINTEL_MAX_PAGES", MAX_PAGES),
            per_page_char_budget=_env_int("BIZINTEL_PER_PAGE_CHARS", PER_PAGE_CHAR_BUDGET),
            detail_page_char_budget=_env_int("BIZINTEL_DETAIL_PAGE_CHARS", DETAIL_PAGE_CHAR_BUDGET),
            total_char_budget=_env_int("BIZINTEL_TOTAL_CHARS", TOTAL_CHAR_BUDGET),
            max_concurrency=_env_int("BIZINTEL_MAX_CONCURRENCY", MAX_CRAWL_CONCURRENCY),
            reader_proxy=os.environ.get("BIZINTEL_READER_PROXY", "jina").strip().lower(),
            reader_proxy_url=os.environ.get("BIZINTEL_READER_PROXY_URL", DEFAULT_JINA_BASE_URL),
            firecrawl_api_key=os.environ.get("FIRECRAWL_API_KEY") or None,
            firecrawl_url=os.environ.get("BIZINTEL_FIRECRAWL_URL", DEFAULT_FIRECRAWL_URL),
            robots_policy=RobotsPolicy(os.environ.get("BIZINTEL_ROBOTS_POLICY", "log").strip().lower()),
            llm_model=os.environ.get("BIZINTEL_LLM_MODEL", DEFAULT_LLM_MODEL),
            oracle_timeout_seconds=_env_float("BIZINTEL_ORACLE_TIMEOUT_SECONDS", ORACLE_TIMEOUT_SECONDS),
            log_level=os.environ.get("BIZINTEL_LOG_LEVEL", "INFO"),
        )

    def to_request(self, url: str, crawl_first: bool = False) -> AcquisitionRequest:
        """Build an AcquisitionRequest for one seed URL."""
        return AcquisitionRequest(
            seed_url=url,
            max_pages=self.max_pages,
            per_page_char_budget=self.per_page_char_budget,
            detail_page_char_budget=self.detail_page_char_budget,
            total_char_budget=self.total_char_budget,
            deadline_seconds=self.deadline_seconds,
            crawl_first=crawl_first,
        )
