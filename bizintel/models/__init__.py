"""
Data models for the website intelligence pipeline.

- acquisition: request, discovered pages and aggregated content (dataclasses)
- business_profile: extracted and stored profiles (pydantic)
"""

from .acquisition import (
    AcquisitionRequest,
    AggregatedContent,
    DiscoveredPage,
    PageContribution,
    SourceHint,
)
from .business_profile import (
    Asset,
    BrandVoice,
    BusinessHours,
    BusinessProfile,
    ContactInfo,
    Credential,
    CustomAttribute,
    ExtractedProfile,
    ExtractionMethod,
    Location,
    Service,
    SocialLink,
    StoredProfile,
)

__all__ = [
    "AcquisitionRequest",
    "AggregatedContent",
    "Asset",
    "BrandVoice",
    "BusinessHours",
    "BusinessProfile",
    "ContactInfo",
    "Credential",
    "CustomAttribute",
    "DiscoveredPage",
    "ExtractedProfile",
    "ExtractionMethod",
    "Location",
    "PageContribution",
    "Service",
    "SocialLink",
    "SourceHint",
    "StoredProfile",
]
