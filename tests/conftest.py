"""Shared fixtures for bizintel tests.

HTTP is stubbed with httpx.MockTransport; nothing here touches the network.
The completion oracle is a scripted fake.
"""

import json
from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest

from bizintel.config import PipelineSettings
from bizintel.services.profile_store import InMemoryProfileStore

SEED = "https://acme-limo.com"

FILLER = (
    "Acme Limo has provided luxury chauffeured transportation across Austin for over 25 years. "
    "Our professional chauffeurs are licensed, insured and background checked. "
)

# ─── Helpers ──────────────────────────────────────────────────────────────────


def long_text(prefix: str = "", repeat: int = 8) -> str:
    """Page copy comfortably above the 500-char floors."""
    return (prefix + " " + FILLER * repeat).strip()


def page_html(
    body: str,
    title: str = "Acme Limo",
    footer: Optional[str] = None,
    links: tuple = (),
) -> str:
    """Minimal business page: nav links, <main> copy and an optional footer."""
    nav = "".join(f'<a href="{href}">{href}</a>' for href in links)
    footer_html = f"<footer>{footer}</footer>" if footer else ""
    return (
        f"<html><head><title>{title}</title><script>var tracking = 1;</script></head>"
        f"<body><nav>{nav}</nav><main><h1>{title}</h1><p>{body}</p></main>{footer_html}</body></html>"
    )


Route = Union[str, tuple, Callable[[httpx.Request], httpx.Response]]


class FakeSite:
    """
    Route table for httpx.MockTransport.

    Keys are "https://host/path" (no trailing slash; the home page is the bare
    origin). Values are an HTML string (200), a (status, body) tuple, or a
    callable taking the request. Reader-proxy requests are answered from
    `proxy_pages`, keyed by the target URL. Anything unrouted is a 404.
    """

    def __init__(
        self,
        pages: Optional[Dict[str, Route]] = None,
        proxy_pages: Optional[Dict[str, Route]] = None,
    ):
        self.pages = dict(pages or {})
        self.proxy_pages = dict(proxy_pages or {})
        self.requests: List[httpx.Request] = []

    @staticmethod
    def _key(url: httpx.URL) -> str:
        return f"{url.scheme}://{url.host}{url.path}".rstrip("/")

    @staticmethod
    def _respond(route: Route, request: httpx.Request) -> httpx.Response:
        if callable(route):
            return route(request)
        if isinstance(route, tuple):
            status, body = route
            return httpx.Response(status, text=body)
        return httpx.Response(200, text=route)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "r.jina.ai":
            target = str(request.url).split("r.jina.ai/", 1)[1].rstrip("/")
            route = self.proxy_pages.get(target)
        else:
            route = self.pages.get(self._key(request.url))
        if route is None:
            return httpx.Response(404, text="Not Found")
        return self._respond(route, request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requested_paths(self, host: str = "acme-limo.com") -> List[str]:
        return [r.url.path for r in self.requests if r.url.host == host]

    def proxy_requested(self) -> bool:
        return any(r.url.host == "r.jina.ai" for r in self.requests)


class FakeOracle:
    """
    Scripted CompletionOracle.

    Each call pops the next script item: a string is returned, a dict is
    returned as JSON, an exception is raised, a callable gets the prompt.
    """

    model_name = "fake-oracle"

    def __init__(self, *script):
        self.script = list(script)
        self.prompts: List[str] = []
        self.schema_hints: List[str] = []

    def complete(self, prompt: str, schema_hint: str) -> str:
        self.prompts.append(prompt)
        self.schema_hints.append(schema_hint)
        if not self.script:
            raise RuntimeError("FakeOracle script exhausted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(prompt)
        if isinstance(item, dict):
            return json.dumps(item)
        return item

    @property
    def calls(self) -> int:
        return len(self.prompts)


# ─── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def settings():
    """Default settings with a short deadline."""
    return PipelineSettings(deadline_seconds=10)


@pytest.fixture
def store():
    return InMemoryProfileStore()


@pytest.fixture
def flat_answer():
    """A complete flat-mode oracle answer for Acme Limo."""
    return {
        "businessName": "Acme Limo",
        "tagline": "Arrive in style",
        "industry": "Limousine Service",
        "phone": "(512) 555-0142",
        "email": "info@acme-limo.com",
        "address": "1200 Congress Ave",
        "city": "Austin",
        "state": "TX",
        "zipCode": "78701",
        "yearsInBusiness": "over 25 years",
        "serviceArea": "Greater Austin",
        "services": [
            {"name": "Airport Transfers", "description": "AUS pickups", "idealFor": "Business travelers"},
            {"name": "Wedding Limos", "description": None, "idealFor": "Couples"},
        ],
        "vehicles": ["Mercedes-S580", "32 Pax Party Bus"],
        "credentials": ["TxDOT licensed"],
        "uniqueValue": "Chauffeurs with 10+ years experience",
        "hasOnlineBooking": True,
        "hasBlog": False,
    }


@pytest.fixture
def acme_site():
    """
    Acme Limo with a sitemap, a home page and three inner pages.

    robots.txt is missing (404), so every URL is allowed.
    """
    sitemap = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"<url><loc>{SEED}/</loc></url>"
        f"<url><loc>{SEED}/fleet</loc></url>"
        f"<url><loc>{SEED}/about</loc></url>"
        f"<url><loc>{SEED}/contact</loc></url>"
        "</urlset>"
    )
    return FakeSite(
        pages={
            SEED: page_html(long_text("Welcome to Acme Limo."), footer="Call (512) 555-0142"),
            f"{SEED}/sitemap.xml": sitemap,
            f"{SEED}/fleet": page_html(long_text("Our fleet: Mercedes-S580 and a 32 Pax Party Bus."), title="Fleet"),
            f"{SEED}/about": page_html(long_text("About us."), title="About"),
            f"{SEED}/contact": page_html(long_text("Email info@acme-limo.com."), title="Contact"),
        }
    )
