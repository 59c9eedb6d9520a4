"""
URL helper utilities for page discovery and intake.

This module provides functions for URL normalization, origin checks and
deduplication keys.
"""

import re
from urllib.parse import urljoin, urlparse

from ..errors import InvalidUrlError

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}
NON_WEB_SCHEME = re.compile(r"^(?:mailto|tel|javascript|data|file|ftp|sms):", re.IGNORECASE)


def normalize_url(url: str, base_url: str | None = None) -> str:
    """
    Normalize URL by adding scheme if missing and resolving relative URLs.

    Args:
        url: URL to normalize
        base_url: Base URL for resolving relative URLs (optional)

    Returns:
        Normalized absolute URL with scheme

    Examples:
        >>> normalize_url("acme-limo.com")
        'https://acme-limo.com'
        >>> normalize_url("http://acme-limo.com")
        'http://acme-limo.com'
        >>> normalize_url("/fleet", "https://acme-limo.com")
        'https://acme-limo.com/fleet'
    """
    url = url.strip()

    if base_url and not url.startswith(("http://", "https://", "//")):
        url = urljoin(base_url, url)

    if url.startswith("//"):
        url = f"https:{url}"

    if "://" not in url:
        url = f"https://{url}"

    return url


def validate_seed_url(url: str) -> str:
    """
    Normalize a user-supplied URL and reject anything that cannot be fetched.

    Raises:
        InvalidUrlError: empty input, non-http(s) scheme, or no host
    """
    if url is None or not str(url).strip():
        raise InvalidUrlError(str(url), "URL is required")

    if "://" not in str(url) and NON_WEB_SCHEME.match(str(url).strip()):
        raise InvalidUrlError(url, "unsupported scheme")

    normalized = normalize_url(str(url))
    parsed = urlparse(normalized)

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidUrlError(url, f"unsupported scheme '{parsed.scheme}'")
    if not parsed.hostname or ("." not in parsed.hostname and parsed.hostname != "localhost"):
        raise InvalidUrlError(url, "missing or invalid host")
    if any(ch.isspace() for ch in parsed.netloc):
        raise InvalidUrlError(url, "host contains whitespace")

    return normalized


def _origin_parts(url: str) -> tuple:
    parsed = urlparse(normalize_url(url))
    scheme = parsed.scheme.lower()
    port = parsed.port
    if port == DEFAULT_PORTS.get(scheme):
        port = None
    return scheme, (parsed.hostname or "").lower(), port


def origin_of(url: str) -> str:
    """
    Return scheme://host[:port] for a URL, lower-cased, default port omitted.

    Examples:
        >>> origin_of("HTTPS://Acme-Limo.com:443/fleet")
        'https://acme-limo.com'
    """
    scheme, host, port = _origin_parts(url)
    return f"{scheme}://{host}" if port is None else f"{scheme}://{host}:{port}"


def is_same_origin(url: str, seed_url: str) -> bool:
    """
    Check if a URL has the same origin (scheme, host, port) as the seed.

    Scheme and host compare case-insensitively and a default port equals no
    port; a `www.` host or an http/https switch is a different origin.

    Examples:
        >>> is_same_origin("https://Acme-Limo.com:443/fleet", "https://acme-limo.com")
        True
        >>> is_same_origin("https://www.acme-limo.com/fleet", "https://acme-limo.com")
        False
    """
    if not url:
        return False
    return _origin_parts(url) == _origin_parts(seed_url)


def canonical_url(url: str) -> str:
    """
    Deduplication key: normalized origin, no fragment, no trailing slash.

    Examples:
        >>> canonical_url("HTTPS://Acme-Limo.com:443/Fleet/#top")
        'https://acme-limo.com/Fleet'
    """
    parsed = urlparse(normalize_url(url))
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{origin_of(url)}{path}{query}"


def page_path(url: str) -> str:
    """Path component used for page labels ("/" for the home page)."""
    path = urlparse(normalize_url(url)).path
    return path if path else "/"
