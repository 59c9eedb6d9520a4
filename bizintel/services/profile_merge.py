"""
Profile merge engine - reconcile a fresh extraction with the stored profile.

Merging is driven by one descriptor table (FIELD_POLICIES) and one generic
merge function:

- OVERWRITE: scalar; a non-empty incoming value wins
- SHALLOW_MERGE: nested group; key-by-key, non-empty incoming keys win
- UNION_BY_KEY: keyed list; items matched case/whitespace-insensitively by
  their key, matches updated, new keys appended, nothing ever removed

A merge of N stored items with M incoming items sharing K keys therefore
always yields N + M - K items, and re-merging the same input is a no-op.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import ProfileValidationError
from ..llm.extraction_schemas import is_empty
from ..models.business_profile import BrandVoice, BusinessProfile, ExtractedProfile

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15


class MergeStrategy(str, Enum):
    OVERWRITE = "overwrite"
    SHALLOW_MERGE = "shallow_merge"
    UNION_BY_KEY = "union_by_key"


@dataclass(frozen=True)
class FieldPolicy:
    """How one stored field absorbs incoming data."""

    key: str
    strategy: MergeStrategy
    merge_key: Optional[str] = None


FIELD_POLICIES = (
    FieldPolicy("business_name", MergeStrategy.OVERWRITE),
    FieldPolicy("industry", MergeStrategy.OVERWRITE),
    FieldPolicy("tagline", MergeStrategy.OVERWRITE),
    FieldPolicy("years_in_business", MergeStrategy.OVERWRITE),
    FieldPolicy("description", MergeStrategy.OVERWRITE),
    FieldPolicy("service_area", MergeStrategy.OVERWRITE),
    FieldPolicy("unique_value", MergeStrategy.OVERWRITE),
    FieldPolicy("target_audience", MergeStrategy.OVERWRITE),
    FieldPolicy("brand_voice", MergeStrategy.OVERWRITE),
    FieldPolicy("location", MergeStrategy.SHALLOW_MERGE),
    FieldPolicy("contact_info", MergeStrategy.SHALLOW_MERGE),
    FieldPolicy("services", MergeStrategy.UNION_BY_KEY, "name"),
    FieldPolicy("assets", MergeStrategy.UNION_BY_KEY, "name"),
    FieldPolicy("credentials", MergeStrategy.UNION_BY_KEY, "name"),
    FieldPolicy("social_links", MergeStrategy.UNION_BY_KEY, "platform"),
    FieldPolicy("hours", MergeStrategy.UNION_BY_KEY, "day"),
    FieldPolicy("custom_attributes", MergeStrategy.UNION_BY_KEY, "label"),
)


def normalize_key(value: Any) -> str:
    """'  Hair  Cut ' and 'hair cut' are the same key."""
    return " ".join(str(value).split()).lower()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_dict(value: Any, field: str = "profile") -> Dict[str, Any]:
    if _is_blank(value):
        return {}
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, Mapping):
        return dict(value)
    raise ProfileValidationError(f"{field} must be an object, got {type(value).__name__}", field=field)


def _as_items(value: Any, field: str) -> List[Dict[str, Any]]:
    if _is_blank(value):
        return []
    if not isinstance(value, (list, tuple)):
        raise ProfileValidationError(f"{field} must be a list, got {type(value).__name__}", field=field)
    return [_as_dict(item, f"{field}[{position}]") for position, item in enumerate(value)]


def check_shapes(data: Dict[str, Any], policies=None) -> None:
    """
    Reject nested groups that are not objects and keyed lists whose items are not objects.

    Raises:
        ProfileValidationError: naming the offending field, e.g. "services[0]"
    """
    for policy in policies or FIELD_POLICIES:
        value = data.get(policy.key)
        if policy.strategy == MergeStrategy.SHALLOW_MERGE:
            _as_dict(value, policy.key)
        elif policy.strategy == MergeStrategy.UNION_BY_KEY:
            _as_items(value, policy.key)


def _union_by_key(current: List[Any], incoming: List[Any], key: str, field: str = "items") -> List[Dict[str, Any]]:
    merged = _as_items(current, field)
    index: Dict[str, int] = {}
    for position, item in enumerate(merged):
        if not is_empty(item.get(key)):
            index.setdefault(normalize_key(item[key]), position)

    for item in _as_items(incoming, field):
        if is_empty(item.get(key)):
            continue
        item_key = normalize_key(item[key])
        if item_key in index:
            target = merged[index[item_key]]
            for field_name, value in item.items():
                if field_name != key and not is_empty(value):
                    target[field_name] = value
        else:
            index[item_key] = len(merged)
            merged.append(item)
    return merged


def merge_value(policy: FieldPolicy, current: Any, incoming: Any) -> Any:
    """Merge one field according to its policy."""
    if policy.strategy == MergeStrategy.OVERWRITE:
        return current if is_empty(incoming) else incoming

    if policy.strategy == MergeStrategy.SHALLOW_MERGE:
        merged = _as_dict(current, policy.key)
        for key, value in _as_dict(incoming, policy.key).items():
            if not is_empty(value):
                merged[key] = value
        return merged

    return _union_by_key(current, incoming, policy.merge_key, policy.key)


def validate_profile_fields(data: Dict[str, Any], creating: bool = False) -> None:
    """
    Check merge input before anything is written.

    Raises:
        ProfileValidationError: malformed groups or list items, empty
            name/industry on create, bad email, phone outside 10-15 digits,
            unknown brand voice
    """
    if creating:
        if is_empty(data.get("business_name")):
            raise ProfileValidationError("Business name is required", field="business_name")
        if is_empty(data.get("industry")):
            raise ProfileValidationError("Industry is required", field="industry")

    check_shapes(data)

    contact = _as_dict(data.get("contact_info"), "contact_info")
    email = contact.get("email")
    if not is_empty(email) and not EMAIL_PATTERN.match(str(email).strip()):
        raise ProfileValidationError(f"Invalid email format: {email}", field="contact_info.email")

    phone = contact.get("phone")
    if not is_empty(phone):
        digits = re.sub(r"\D", "", str(phone))
        if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            raise ProfileValidationError(
                f"Phone number must be between {MIN_PHONE_DIGITS}-{MAX_PHONE_DIGITS} digits: {phone}",
                field="contact_info.phone",
            )

    voice = data.get("brand_voice")
    if not is_empty(voice):
        allowed = [v.value for v in BrandVoice]
        if str(getattr(voice, "value", voice)).lower() not in allowed:
            raise ProfileValidationError(
                f"Invalid brand voice {voice!r}. Must be one of: {', '.join(allowed)}",
                field="brand_voice",
            )


def to_profile_update(extracted: ExtractedProfile) -> Dict[str, Any]:
    """
    Convert an extraction into merge input.

    Extraction metadata is dropped; a degraded profile contributes only its
    website, never the placeholder name.
    """
    if extracted.is_degraded:
        website = extracted.contact_info.website
        return {"contact_info": {"website": website}} if website else {}

    update: Dict[str, Any] = {}
    for name in (
        "business_name",
        "industry",
        "tagline",
        "years_in_business",
        "description",
        "service_area",
        "unique_value",
        "target_audience",
    ):
        value = getattr(extracted, name)
        if not is_empty(value):
            update[name] = value

    update["location"] = extracted.location.model_dump(exclude_none=True)
    update["contact_info"] = extracted.contact_info.model_dump(exclude_none=True)
    for name in ("services", "assets", "credentials", "social_links", "hours", "custom_attributes"):
        update[name] = [item.model_dump(exclude_none=True) for item in getattr(extracted, name)]

    extra = []
    if extracted.owner_name:
        extra.append({"label": "Owner", "value": extracted.owner_name})
    if extracted.has_online_booking is not None:
        extra.append({"label": "Online booking", "value": "yes" if extracted.has_online_booking else "no"})
    if extra:
        update["custom_attributes"] = update["custom_attributes"] + extra
    return update


class ProfileMergeEngine:
    """
    Merge incoming profile data into a stored profile without losing curated data.

    Usage:
        engine = ProfileMergeEngine()
        profile = engine.merge(existing, to_profile_update(extracted), owner_id="owner-1")
    """

    def __init__(self, policies=FIELD_POLICIES, logger=None):
        self.policies = policies
        self.logger = logger

    def merge(
        self,
        existing: Optional[Union[BusinessProfile, Dict[str, Any]]],
        incoming: Union[Dict[str, Any], ExtractedProfile],
        owner_id: Optional[str] = None,
    ) -> BusinessProfile:
        """
        Merge incoming data into the existing profile, or build a new one.

        Args:
            existing: Stored profile, or None to create
            incoming: Partial profile dict, or an ExtractedProfile
            owner_id: Owner key; required when existing is None

        Returns:
            The merged BusinessProfile (not yet written anywhere)

        Raises:
            ProfileValidationError: invalid input or merged result
        """
        if isinstance(incoming, ExtractedProfile):
            incoming = to_profile_update(incoming)
        incoming = _as_dict(incoming, "incoming")
        creating = existing is None

        validate_profile_fields(incoming, creating=creating)

        base = _as_dict(existing, "existing")
        check_shapes(base, self.policies)
        owner = owner_id or base.get("owner_id") or incoming.get("owner_id")
        if is_empty(owner):
            raise ProfileValidationError("owner_id is required", field="owner_id")

        merged: Dict[str, Any] = dict(base)
        for policy in self.policies:
            if policy.key not in incoming and policy.key in merged:
                continue
            merged[policy.key] = merge_value(policy, base.get(policy.key), incoming.get(policy.key))
            if merged[policy.key] is None:
                del merged[policy.key]

        now = datetime.now(timezone.utc)
        merged["owner_id"] = owner
        merged.setdefault("created_at", now)
        merged["updated_at"] = now
        if isinstance(merged.get("brand_voice"), str):
            merged["brand_voice"] = merged["brand_voice"].lower()

        try:
            profile = BusinessProfile.model_validate(merged)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise ProfileValidationError(f"Merged profile is invalid: {first.get('msg')}", field=field) from e

        if self.logger:
            self.logger.info(
                "Profile merged",
                owner=owner,
                created=creating,
                services=len(profile.services),
                assets=len(profile.assets),
            )
        return profile
