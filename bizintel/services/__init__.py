"""
Services built on the acquisition and extraction layers.

- profile_store: ProfileStore protocol plus in-memory and JSON-file stores
- profile_merge: descriptor-driven merge of extractions into stored profiles
- website_intelligence: scrape_website / sync_profile invocation surface
"""

from .profile_merge import FIELD_POLICIES, FieldPolicy, MergeStrategy, ProfileMergeEngine, to_profile_update
from .profile_store import InMemoryProfileStore, JsonFileProfileStore, ProfileStore
from .website_intelligence import ScrapeResponse, SyncResponse, WebsiteIntelligenceService

__all__ = [
    "FIELD_POLICIES",
    "FieldPolicy",
    "InMemoryProfileStore",
    "JsonFileProfileStore",
    "MergeStrategy",
    "ProfileMergeEngine",
    "ProfileStore",
    "ScrapeResponse",
    "SyncResponse",
    "WebsiteIntelligenceService",
    "to_profile_update",
]
