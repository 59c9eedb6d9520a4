"""
Page classifier for discovered business pages.

Decides, from the URL path alone:
- whether a discovered page is relevant enough to fetch
- whether it is a detail page (fleet, menu, services, team) that earns the
  larger character budget
- the label used in the aggregate's page header

And, from fetched text, whether a page is a soft 404.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..constants import DETAIL_KEYWORDS, NOT_FOUND_MARKERS, RELEVANT_KEYWORDS
from ..utils.url_helpers import page_path

PageKind = Literal["home", "detail", "relevant", "other"]


class PageClassification(BaseModel):
    """Classification of one discovered URL."""

    url: str
    path: str
    kind: PageKind
    matched_keywords: List[str] = Field(default_factory=list)

    @property
    def is_detail(self) -> bool:
        return self.kind == "detail"


class PageClassifier:
    """Keyword-based URL classification for crawl selection and budgeting."""

    def __init__(
        self,
        relevant_keywords: Optional[List[str]] = None,
        detail_keywords: Optional[List[str]] = None,
    ):
        self.relevant_keywords = relevant_keywords or RELEVANT_KEYWORDS
        self.detail_keywords = detail_keywords or DETAIL_KEYWORDS

    def classify(self, url: str) -> PageClassification:
        path = page_path(url)
        lowered = path.lower()

        if lowered in ("", "/"):
            return PageClassification(url=url, path="/", kind="home")

        detail_hits = [kw for kw in self.detail_keywords if kw in lowered]
        if detail_hits:
            return PageClassification(url=url, path=path, kind="detail", matched_keywords=detail_hits)

        relevant_hits = [kw for kw in self.relevant_keywords if kw in lowered]
        if relevant_hits:
            return PageClassification(url=url, path=path, kind="relevant", matched_keywords=relevant_hits)

        return PageClassification(url=url, path=path, kind="other")

    def is_relevant(self, url: str) -> bool:
        return self.classify(url).kind in ("home", "detail", "relevant")

    def is_detail_page(self, url: str) -> bool:
        return self.classify(url).is_detail

    def label_for(self, url: str) -> str:
        """Header label for the aggregate: the URL path, "/" for the home page."""
        return page_path(url)

    @staticmethod
    def looks_like_not_found(text: str) -> bool:
        """
        Detect soft-404 pages (HTTP 200 with a "page not found" body).

        Only the opening of the page is checked so a long page that merely
        mentions "not found" somewhere is kept.
        """
        if not text:
            return True
        head = text[:1500].lower()
        return any(marker in head for marker in NOT_FOUND_MARKERS)
