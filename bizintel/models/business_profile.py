"""
Pydantic models for extracted and stored business profiles.

`ExtractedProfile` is the transient output of one extraction run.
`BusinessProfile` is the stored record; it is only ever produced by the
merge engine.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BrandVoice(str, Enum):
    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"
    WITTY = "witty"
    FORMAL = "formal"


class ExtractionMethod(str, Enum):
    STRUCTURED_AI = "structured_ai"
    FAILED = "failed"


class Location(BaseModel):
    """Physical location. A service radius is not an address."""

    model_config = ConfigDict(extra="ignore")

    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    neighborhood: Optional[str] = None


class ContactInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None


class Service(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    description: Optional[str] = None
    price: Optional[str] = None
    ideal_for: Optional[str] = None


class Asset(BaseModel):
    """A concrete offering unit: a vehicle, a menu item, a room."""

    model_config = ConfigDict(extra="ignore")

    name: str
    type: Optional[str] = None
    description: Optional[str] = None
    capacity: Optional[int] = None


class Credential(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    description: Optional[str] = None


class SocialLink(BaseModel):
    model_config = ConfigDict(extra="ignore")

    platform: str
    url: str


class BusinessHours(BaseModel):
    model_config = ConfigDict(extra="ignore")

    day: str
    open: Optional[str] = None
    close: Optional[str] = None


class CustomAttribute(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str
    value: Optional[str] = None


class ExtractedProfile(BaseModel):
    """
    Business profile extracted from website content.

    A degraded profile (extraction_method="failed") still validates: it
    carries the placeholder name, confidence 0 and a diagnostic.
    """

    model_config = ConfigDict(extra="ignore")

    # Identity
    business_name: Optional[str] = None
    tagline: Optional[str] = None
    industry: Optional[str] = None
    years_in_business: Optional[str] = None
    owner_name: Optional[str] = None
    description: Optional[str] = None

    location: Location = Field(default_factory=Location)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)

    # Offerings
    services: List[Service] = Field(default_factory=list)
    assets: List[Asset] = Field(default_factory=list)
    credentials: List[Credential] = Field(default_factory=list)
    social_links: List[SocialLink] = Field(default_factory=list)
    hours: List[BusinessHours] = Field(default_factory=list)
    custom_attributes: List[CustomAttribute] = Field(default_factory=list)

    # Positioning
    service_area: Optional[str] = None
    unique_value: Optional[str] = None
    target_audience: Optional[str] = None
    has_online_booking: Optional[bool] = None
    has_blog: Optional[bool] = None

    # Extraction metadata
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    extraction_method: ExtractionMethod = ExtractionMethod.STRUCTURED_AI
    mode: Optional[str] = None
    missing_fields: List[str] = Field(default_factory=list)
    scraped_at: datetime = Field(default_factory=_utcnow)
    source_strategy: Optional[str] = None
    diagnostic: Optional[str] = None
    raw_content_preview: Optional[str] = None

    @property
    def is_degraded(self) -> bool:
        return self.extraction_method == ExtractionMethod.FAILED


class BusinessProfile(BaseModel):
    """Stored business profile, keyed by owner."""

    model_config = ConfigDict(extra="ignore")

    owner_id: str = Field(..., min_length=1)
    business_name: str
    industry: str

    tagline: Optional[str] = None
    years_in_business: Optional[str] = None
    description: Optional[str] = None
    service_area: Optional[str] = None
    unique_value: Optional[str] = None
    target_audience: Optional[str] = None
    brand_voice: BrandVoice = BrandVoice.PROFESSIONAL

    location: Location = Field(default_factory=Location)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)

    services: List[Service] = Field(default_factory=list)
    assets: List[Asset] = Field(default_factory=list)
    credentials: List[Credential] = Field(default_factory=list)
    social_links: List[SocialLink] = Field(default_factory=list)
    hours: List[BusinessHours] = Field(default_factory=list)
    custom_attributes: List[CustomAttribute] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


StoredProfile = BusinessProfile
