"""
Website intelligence service - the invocation surface of the pipeline.

`scrape_website` runs acquisition and extraction and reports the outcome as a
ScrapeResponse; `sync_profile` additionally merges the extraction into the
stored profile with exactly one store read and at most one store write.
Callers get responses, not exceptions, for every expected failure.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..config import PipelineSettings
from ..constants import DEFAULT_EXTRACTION_MODE
from ..collectors.orchestrator import AcquisitionOrchestrator
from ..errors import (
    AcquisitionError,
    AcquisitionFailed,
    InvalidUrlError,
    ProfileStoreError,
    ProfileValidationError,
)
from ..llm.extraction_schemas import get_schema
from ..llm.structured_extractor import StructuredExtractor
from ..models.business_profile import BusinessProfile, ExtractedProfile
from ..utils.async_helpers import run_sync
from ..utils.deadline import Deadline
from ..utils.url_helpers import validate_seed_url
from .profile_merge import ProfileMergeEngine, to_profile_update

ERROR_VALIDATION = "validation"
ERROR_ACQUISITION = "acquisition"
ERROR_EXTRACTION = "extraction"
ERROR_STORE = "store"


@dataclass
class ScrapeResponse:
    """Outcome of one scrape. `data` may be a degraded profile when success is True."""

    success: bool
    data: Optional[ExtractedProfile] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data.model_dump(mode="json") if self.data else None,
            "error": self.error,
            "error_kind": self.error_kind,
        }


@dataclass
class SyncResponse:
    """Outcome of scrape + merge + store write."""

    success: bool
    profile: Optional[BusinessProfile] = None
    extracted: Optional[ExtractedProfile] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "profile": self.profile.model_dump(mode="json") if self.profile else None,
            "extracted": self.extracted.model_dump(mode="json") if self.extracted else None,
            "error": self.error,
            "error_kind": self.error_kind,
            "created": self.created,
        }


class WebsiteIntelligenceService:
    """
    Scrape a business website into a profile and sync it to the profile store.

    Args:
        oracle: CompletionOracle used for extraction (injected, e.g. LLMClient)
        store: ProfileStore; only needed for sync_profile
        settings: PipelineSettings (defaults when omitted)
        transport: Optional httpx transport (tests inject httpx.MockTransport)
        logger: PipelineLogger instance
    """

    def __init__(
        self,
        oracle,
        store=None,
        settings: Optional[PipelineSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger=None,
        merge_engine: Optional[ProfileMergeEngine] = None,
    ):
        self.settings = settings or PipelineSettings()
        self.store = store
        self.logger = logger
        self.orchestrator = AcquisitionOrchestrator(self.settings, transport=transport, logger=logger)
        self.extractor = StructuredExtractor(
            oracle,
            logger=logger,
            oracle_timeout=self.settings.oracle_timeout_seconds,
        )
        self.merge_engine = merge_engine or ProfileMergeEngine(logger=logger)

    async def scrape_website(
        self,
        url: str,
        mode: str = DEFAULT_EXTRACTION_MODE,
        crawl_first: bool = False,
    ) -> ScrapeResponse:
        """
        Acquire and extract one website under one overall deadline.

        Acquisition and every extraction oracle call share
        `settings.deadline_seconds`; extraction that runs out of time returns
        a degraded profile.

        Args:
            url: Website URL; a missing scheme defaults to https
            mode: Extraction mode (flat, deep_dive, forensic)
            crawl_first: Run the multi-page crawl before single-page strategies

        Returns:
            ScrapeResponse; error_kind is "validation" or "acquisition" on failure
        """
        try:
            seed_url = validate_seed_url(url)
            schema = get_schema(mode)
            request = self.settings.to_request(seed_url, crawl_first=crawl_first)
        except (InvalidUrlError, ValueError) as e:
            if self.logger:
                self.logger.warning("Rejected scrape request", url=url, mode=mode, reason=str(e))
            return ScrapeResponse(success=False, error=str(e), error_kind=ERROR_VALIDATION)

        deadline = Deadline(request.deadline_seconds, clock=self.orchestrator.clock)
        try:
            content = await self.orchestrator.acquire(request, deadline)
        except AcquisitionFailed as e:
            return ScrapeResponse(success=False, error=e.user_message, error_kind=ERROR_ACQUISITION)
        except AcquisitionError as e:
            if self.logger:
                self.logger.warning("Acquisition stopped", url=seed_url, reason=e.reason)
            return ScrapeResponse(success=False, error=str(e), error_kind=ERROR_ACQUISITION)

        profile = await self.extractor.extract(content, schema, url=seed_url, deadline=deadline)
        return ScrapeResponse(success=True, data=profile)

    async def _store_call(self, operation: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            if self.logger:
                self.logger.error(f"Profile store {operation} failed", exception=e)
            raise ProfileStoreError(f"Profile store {operation} failed: {e}") from e

    async def sync_profile(
        self,
        owner_id: str,
        url: str,
        mode: str = DEFAULT_EXTRACTION_MODE,
        crawl_first: bool = False,
    ) -> SyncResponse:
        """
        Scrape a website and merge the result into the owner's stored profile.

        The store is read once and written once (create when no profile
        exists, update otherwise). Nothing is written when acquisition or
        extraction fails or the merge input is invalid.
        """
        if not owner_id or not owner_id.strip():
            return SyncResponse(success=False, error="owner_id is required", error_kind=ERROR_VALIDATION)
        if self.store is None:
            return SyncResponse(success=False, error="No profile store configured", error_kind=ERROR_STORE)

        scrape = await self.scrape_website(url, mode=mode, crawl_first=crawl_first)
        if not scrape.success:
            return SyncResponse(success=False, error=scrape.error, error_kind=scrape.error_kind)

        extracted = scrape.data
        if extracted.is_degraded:
            return SyncResponse(
                success=False,
                extracted=extracted,
                error=extracted.diagnostic,
                error_kind=ERROR_EXTRACTION,
            )

        try:
            existing = await self._store_call("read", self.store.get_profile, owner_id)
            profile = self.merge_engine.merge(existing, to_profile_update(extracted), owner_id=owner_id)
            payload = profile.model_dump(mode="json")
            if existing is None:
                await self._store_call("create", self.store.create_profile, owner_id, payload)
            else:
                await self._store_call("update", self.store.update_profile, owner_id, payload)
        except ProfileValidationError as e:
            if self.logger:
                self.logger.warning("Profile merge rejected", owner=owner_id, field=e.field, reason=str(e))
            return SyncResponse(success=False, extracted=extracted, error=str(e), error_kind=ERROR_VALIDATION)
        except ProfileStoreError as e:
            return SyncResponse(success=False, extracted=extracted, error=str(e), error_kind=ERROR_STORE)

        return SyncResponse(success=True, profile=profile, extracted=extracted, created=existing is None)

    def scrape_website_sync(
        self,
        url: str,
        mode: str = DEFAULT_EXTRACTION_MODE,
        crawl_first: bool = False,
    ) -> ScrapeResponse:
        return run_sync(self.scrape_website(url, mode=mode, crawl_first=crawl_first))

    def sync_profile_sync(
        self,
        owner_id: str,
        url: str,
        mode: str = DEFAULT_EXTRACTION_MODE,
        crawl_first: bool = False,
    ) -> SyncResponse:
        return run_sync(self.sync_profile(owner_id, url, mode=mode, crawl_first=crawl_first))
