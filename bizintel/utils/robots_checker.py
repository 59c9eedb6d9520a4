"""
robots.txt parsing and policy for the crawler.

Discovery fetches robots.txt once per run (tier 2 needs its `Sitemap:`
directive anyway); this module turns that text into rules and applies the
configured policy to the seed and to discovered pages.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from urllib.robotparser import RobotFileParser

from ..constants import BOT_USER_AGENT
from ..errors import RobotsDisallowed

SITEMAP_DIRECTIVE = re.compile(r"^\s*sitemap:\s*(\S+)", re.IGNORECASE | re.MULTILINE)


class RobotsPolicy(str, Enum):
    """How Disallow rules affect a run."""

    LOG = "log"  # warn about disallowed URLs, fetch them anyway
    ENFORCE = "enforce"  # skip disallowed pages, refuse a disallowed seed


@dataclass
class RobotsRules:
    """Parsed robots.txt for one site."""

    sitemaps: List[str] = field(default_factory=list)
    parser: Optional[RobotFileParser] = None

    def allows(self, url: str, user_agent: str = BOT_USER_AGENT) -> bool:
        if self.parser is None:
            return True
        return self.parser.can_fetch(user_agent, url)


def parse_robots(text: Optional[str]) -> RobotsRules:
    """Parse robots.txt content. Empty or missing text allows everything."""
    if not text:
        return RobotsRules()

    parser = RobotFileParser()
    parser.parse(text.splitlines())
    sitemaps = [match.group(1).strip() for match in SITEMAP_DIRECTIVE.finditer(text)]
    return RobotsRules(sitemaps=sitemaps, parser=parser)


class RobotsChecker:
    """
    Apply a RobotsPolicy to URLs of one run.

    Never silently ignores a Disallow: under LOG every disallowed URL is
    reported as a warning, under ENFORCE it is dropped (or the seed refused).
    """

    def __init__(
        self,
        rules: Optional[RobotsRules] = None,
        policy: RobotsPolicy = RobotsPolicy.LOG,
        user_agent: str = BOT_USER_AGENT,
        logger=None,
    ):
        self.rules = rules or RobotsRules()
        self.policy = RobotsPolicy(policy)
        self.user_agent = user_agent
        self.logger = logger

    def can_fetch(self, url: str) -> bool:
        """
        Check if URL may be fetched under the active policy.

        Returns:
            True if allowed (or disallowed but policy is LOG), False otherwise
        """
        if self.rules.allows(url, self.user_agent):
            return True

        if self.policy == RobotsPolicy.ENFORCE:
            if self.logger:
                self.logger.info("robots.txt disallows URL, skipping", url=url)
            return False

        if self.logger:
            self.logger.warning("robots.txt disallows URL, fetching anyway (policy=log)", url=url)
        return True

    def check_seed(self, url: str) -> None:
        """Raise RobotsDisallowed for a disallowed seed under ENFORCE."""
        if not self.can_fetch(url):
            raise RobotsDisallowed(url, "robots.txt disallows the seed URL")

    def filter_urls(self, urls: List[str]) -> List[str]:
        """Keep the URLs the active policy lets through, in order."""
        return [url for url in urls if self.can_fetch(url)]
