"""
Error taxonomy for the website intelligence pipeline.

Acquisition errors are recovered inside the orchestrator (each one moves the
run to the next strategy) until `AcquisitionFailed` ends it. Extraction never
raises past the extractor. Validation errors stop a profile write before any
store call is made.
"""

from typing import List, Optional, Tuple

ACQUISITION_FAILED_MESSAGE = "Could not access website. It may be blocking automated access."


class BizIntelError(Exception):
    """Base class for all pipeline errors."""


# =============================================================================
# Acquisition
# =============================================================================


class AcquisitionError(BizIntelError):
    """A single acquisition step failed; the orchestrator may fall through."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason} ({url})")


class NetworkError(AcquisitionError):
    """DNS, TLS, connect or read failure, or a request timeout/abort."""


class BlockedError(AcquisitionError):
    """The site answered with a block status or an anti-bot interstitial."""

    def __init__(self, url: str, reason: str, http_status: Optional[int] = None):
        super().__init__(url, reason)
        self.http_status = http_status


class EmptyContentError(AcquisitionError):
    """The fetched page normalized to less text than the strategy floor."""

    def __init__(self, url: str, chars: int, floor: int):
        super().__init__(url, f"only {chars} chars of text (floor {floor})")
        self.chars = chars
        self.floor = floor


class HttpStatusError(AcquisitionError):
    """A non-2xx response that is not a block status (404, 410, ...)."""

    def __init__(self, url: str, http_status: Optional[int]):
        super().__init__(url, f"HTTP {http_status}")
        self.http_status = http_status


class RobotsDisallowed(AcquisitionError):
    """robots.txt disallows the seed URL and the enforce policy is active."""


class AcquisitionFailed(AcquisitionError):
    """Every strategy was exhausted, or the deadline expired with nothing usable."""

    def __init__(self, url: str, attempts: List[Tuple[str, str]]):
        self.attempts = attempts
        detail = "; ".join(f"{strategy}: {reason}" for strategy, reason in attempts) or "no strategy attempted"
        super().__init__(url, f"all acquisition strategies failed - {detail}")

    @property
    def user_message(self) -> str:
        return ACQUISITION_FAILED_MESSAGE


# =============================================================================
# Extraction
# =============================================================================


class SchemaViolation(BizIntelError):
    """Oracle output was not parseable JSON or did not match the extraction schema."""

    def __init__(self, message: str, raw_output: Optional[str] = None):
        super().__init__(message)
        self.raw_output = raw_output


class BudgetExhausted(BizIntelError):
    """The invocation deadline left no time for another oracle call."""


# =============================================================================
# Validation and storage
# =============================================================================


class ValidationError(BizIntelError):
    """Input failed validation; nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ProfileValidationError(ValidationError):
    """Merge input or merged profile failed field validation."""


class InvalidUrlError(ValidationError):
    """A URL given at intake cannot be fetched (bad scheme, no host)."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Invalid URL {url!r}: {reason}", field="url")
        self.url = url


class ProfileStoreError(BizIntelError):
    """The profile store collaborator failed on read or write."""
