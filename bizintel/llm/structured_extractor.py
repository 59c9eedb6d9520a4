"""
Structured extraction of a business profile from aggregated website text.

One extractor serves every mode; the mode's ExtractionSchema decides the
prompt, the field list and the confidence weights. The oracle is called at
most twice per run (one regenerate with a stronger instruction), and any
failure produces a degraded profile instead of an exception.
"""

import asyncio
import json
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..constants import (
    FAILED_BUSINESS_NAME,
    ORACLE_INPUT_BUDGET,
    ORACLE_TIMEOUT_SECONDS,
    ORACLE_WORKERS,
    RAW_PREVIEW_CHARS,
)
from ..errors import BudgetExhausted, SchemaViolation
from ..extractors.deterministic import DeterministicExtractor
from ..models.acquisition import AggregatedContent
from ..models.business_profile import (
    Asset,
    BusinessHours,
    ContactInfo,
    Credential,
    CustomAttribute,
    ExtractedProfile,
    ExtractionMethod,
    Location,
    Service,
    SocialLink,
)
from ..utils.async_helpers import run_sync
from ..utils.deadline import Deadline
from .extraction_schemas import ExtractionSchema, get_schema, is_empty
from .prompt_loader import PromptInfo, load_prompt

CAPACITY_PATTERN = re.compile(r"(\d+)\s*-?\s*(?:pax|passengers?|seats?|seater|guests?|people)\b", re.IGNORECASE)
RADIUS_PATTERN = re.compile(r"\b(?:serving|within|miles?|radius|surrounding|nationwide|statewide)\b", re.IGNORECASE)

CONTACT_RULE = "If the content shows a phone number or an email address anywhere, include it in the answer."
CONTACT_PROBLEM = "the content contains a phone number or email address but your answer has neither"


def repair_json(json_str: str) -> str:
    """
    Attempt to repair common JSON syntax errors from LLM output.

    Handles:
    - Trailing commas before } or ]
    - Control characters in strings
    - Truncated JSON (attempts to close brackets)
    """
    json_str = json_str.strip()

    json_str = re.sub(r",\s*}", "}", json_str)
    json_str = re.sub(r",\s*]", "]", json_str)

    json_str = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f]", "", json_str)

    open_braces = json_str.count("{") - json_str.count("}")
    open_brackets = json_str.count("[") - json_str.count("]")

    if open_braces > 0 or open_brackets > 0:
        stripped = json_str.rstrip()
        if stripped and stripped[-1] not in '{}[],":\n':
            # Mid-value truncation: close the open string first
            quote_count = len(re.findall(r'(?<!\\)"', json_str))
            if quote_count % 2 == 1:
                json_str += '"'
        json_str = re.sub(r",\s*$", "", json_str)
        json_str += "]" * open_brackets
        json_str += "}" * open_braces

    return json_str


def strip_code_fences(text: str) -> str:
    """Return the JSON body of an oracle answer, without fences or surrounding prose."""
    text = (text or "").strip()
    if "```" in text:
        parts = text.split("```")
        if len(parts) > 1:
            text = parts[1]
            if text.lower().startswith("json"):
                text = text[4:]
            text = text.strip()

    start = text.find("{")
    if start > 0:
        end = text.rfind("}")
        text = text[start : end + 1] if end > start else text[start:]
    return text


def parse_oracle_output(raw: str) -> Dict[str, Any]:
    """
    Parse oracle text into a JSON object.

    Raises:
        SchemaViolation: empty, unparseable even after repair, or not an object
    """
    json_str = strip_code_fences(raw)
    if not json_str:
        raise SchemaViolation("empty response", raw_output=raw)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError:
        try:
            data = json.loads(repair_json(json_str))
        except json.JSONDecodeError as e:
            raise SchemaViolation(f"unparseable JSON: {e.msg}", raw_output=raw) from e

    if not isinstance(data, dict):
        raise SchemaViolation(f"expected a JSON object, got {type(data).__name__}", raw_output=raw)
    return data


def parse_capacity(value: Any) -> Optional[int]:
    """'32 Pax Party Bus' -> 32; plain numbers pass through."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value)
    match = CAPACITY_PATTERN.search(text)
    if match:
        return int(match.group(1))
    if text.strip().isdigit():
        return int(text.strip())
    return None


def _clean_str(value: Any) -> Optional[str]:
    if is_empty(value) or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value).strip()


def _clean_dict(value: Any) -> Dict[str, Optional[str]]:
    if not isinstance(value, dict):
        return {}
    return {key: _clean_str(val) for key, val in value.items()}


def _names(values: Iterable[Any]) -> List[str]:
    """Item names from a list of strings or {name: ...} objects."""
    names = []
    for value in values or []:
        if isinstance(value, dict):
            value = value.get("name") or value.get("label") or value.get("title")
        name = _clean_str(value)
        if name:
            names.append(name)
    return names


def _as_list(value: Any) -> List[Any]:
    if is_empty(value):
        return []
    if isinstance(value, list):
        return value
    return [value]


def _build_items(model: Type[BaseModel], items: Iterable[Any], key: str = "name") -> List[Any]:
    """Validate item dicts into models, skipping items without their key."""
    built = []
    for item in items or []:
        if isinstance(item, str):
            item = {key: item}
        if not isinstance(item, dict):
            continue
        cleaned = {}
        for field_name, value in item.items():
            if field_name == "capacity":
                cleaned[field_name] = parse_capacity(value)
            else:
                cleaned[field_name] = _clean_str(value)
        if not cleaned.get(key):
            continue
        try:
            built.append(model.model_validate(cleaned))
        except PydanticValidationError:
            continue
    return built


def _resolve(profile: ExtractedProfile, path: str) -> Any:
    value: Any = profile
    for part in path.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value


class StructuredExtractor:
    """
    Drive the completion oracle against aggregated text.

    Usage:
        extractor = StructuredExtractor(oracle=LLMClient(), logger=logger)
        profile = await extractor.extract(content, "flat")
    """

    def __init__(
        self,
        oracle,
        logger=None,
        oracle_timeout: float = ORACLE_TIMEOUT_SECONDS,
        input_budget: int = ORACLE_INPUT_BUDGET,
        prompts_dir=None,
    ):
        """
        Args:
            oracle: CompletionOracle (`complete(prompt, schema_hint) -> str`)
            logger: PipelineLogger instance
            oracle_timeout: Seconds allowed per oracle call
            input_budget: Max content characters shown to the oracle
            prompts_dir: Override for the prompt file directory (tests)
        """
        self.oracle = oracle
        self.logger = logger
        self.oracle_timeout = oracle_timeout
        self.input_budget = input_budget
        self.prompts_dir = prompts_dir
        self.signals = DeterministicExtractor()
        self._prompts: Dict[str, PromptInfo] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    def _prompt(self, name: str) -> PromptInfo:
        if name not in self._prompts:
            self._prompts[name] = load_prompt(name, self.prompts_dir)
        return self._prompts[name]

    # ─── Prompt ───────────────────────────────────────────────────────────

    def build_prompt(
        self,
        text: str,
        schema: ExtractionSchema,
        url: Optional[str],
        problem: Optional[str] = None,
    ) -> str:
        """Mode instructions, field schema and rules, then the URL and the truncated content."""
        sections = []
        if problem:
            sections.append(self._prompt("retry_instruction").render(problem=problem, contact_rule=CONTACT_RULE))
        sections.append(self._prompt(schema.prompt).render(field_schema=schema.render_field_block()))
        sections.append(self._prompt("extraction_rules").render())
        sections.append(f"URL: {url or 'unknown'}")
        sections.append(f"CONTENT:\n{text[: self.input_budget]}")
        return "\n\n".join(sections)

    def _ask(self, prompt: str, schema_hint: str):
        """Blocking oracle call; returns the text and the LLMResponse when the oracle exposes one."""
        generate = getattr(self.oracle, "generate", None)
        if callable(generate):
            response = generate(prompt, schema_hint=schema_hint)
            return response.text, response
        return self.oracle.complete(prompt, schema_hint), None

    async def _call_oracle(self, prompt: str, schema: ExtractionSchema, deadline: Optional[Deadline] = None):
        timeout = deadline.bound(self.oracle_timeout) if deadline else self.oracle_timeout
        if timeout <= 0:
            raise BudgetExhausted("no time left for the extraction oracle")

        # A timed-out call keeps its worker thread; the pool is not joined on return
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=ORACLE_WORKERS, thread_name_prefix="oracle")
        loop = asyncio.get_running_loop()
        call = loop.run_in_executor(self._executor, self._ask, prompt, schema.json_skeleton())
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            if deadline and deadline.expired:
                raise BudgetExhausted(f"overall deadline of {deadline.total_seconds}s reached during extraction")
            raise

    # ─── Mapping ──────────────────────────────────────────────────────────

    def _clean_address(self, address: Optional[str]) -> Optional[str]:
        """A service-radius phrase is not an address."""
        if address and RADIUS_PATTERN.search(address) and not self.signals.has_street_address(address):
            return None
        return address

    def _map_flat(self, data: Dict[str, Any], raw: Dict[str, Any]) -> Dict[str, Any]:
        vehicles = data.get("vehicles") or _names(_as_list(raw.get("fleet")))
        services = [
            {"name": s.get("name"), "description": s.get("description"), "ideal_for": s.get("idealFor")}
            for s in data.get("services") or []
        ]
        return {
            "business_name": data.get("businessName"),
            "tagline": data.get("tagline"),
            "industry": data.get("industry"),
            "years_in_business": data.get("yearsInBusiness"),
            "service_area": data.get("serviceArea"),
            "unique_value": data.get("uniqueValue"),
            "has_online_booking": data.get("hasOnlineBooking"),
            "has_blog": data.get("hasBlog"),
            "location": {
                "address": data.get("address"),
                "city": data.get("city"),
                "state": data.get("state"),
                "zip_code": data.get("zipCode"),
            },
            "contact_info": {"phone": data.get("phone"), "email": data.get("email")},
            "services": services,
            "assets": [{"name": v, "type": "vehicle", "capacity": v} for v in vehicles],
            "credentials": data.get("credentials") or [],
        }

    def _map_deep_dive(self, data: Dict[str, Any], raw: Dict[str, Any]) -> Dict[str, Any]:
        return dict(data)

    def _map_forensic(self, data: Dict[str, Any], raw: Dict[str, Any]) -> Dict[str, Any]:
        profile = data.get("profile") or {}
        assets = data.get("assets") or {}
        commercials = data.get("commercials") or {}

        owner = _clean_str(profile.get("principal_name"))
        credentials_note = _clean_str(profile.get("principal_credentials"))
        if owner and credentials_note:
            owner = f"{owner}, {credentials_note}"

        attributes = [{"label": "Legal entity", "value": profile.get("legal_entity")}]
        if isinstance(profile.get("operating_hours"), str):
            attributes.append({"label": "Operating hours", "value": profile.get("operating_hours")})
        for key, label in (
            ("pricing_model", "Pricing model"),
            ("booking_friction", "Booking friction"),
            ("pricing_anchors", "Pricing anchors"),
            ("payment_methods", "Payment methods"),
        ):
            value = commercials.get(key)
            if isinstance(value, list):
                value = ", ".join(_names(value))
            attributes.append({"label": label, "value": value})
        if data.get("gaps"):
            attributes.append({"label": "Information gaps", "value": "; ".join(data["gaps"])})

        hard_assets = _names(_as_list(assets.get("hard_assets"))) + _names(_as_list(assets.get("fleet_details")))
        return {
            "business_name": profile.get("business_name"),
            "industry": profile.get("industry_type"),
            "owner_name": owner,
            "location": {
                "address": profile.get("headquarters"),
                "city": profile.get("city"),
                "state": profile.get("state"),
                "zip_code": profile.get("zip"),
            },
            "contact_info": {
                "phone": profile.get("phone"),
                "email": profile.get("email"),
                "website": profile.get("website"),
            },
            "services": _names(_as_list(assets.get("core_services"))),
            "assets": [{"name": name, "capacity": name} for name in dict.fromkeys(hard_assets)],
            "credentials": _names(_as_list(assets.get("certifications"))) + _names(_as_list(assets.get("licenses"))),
            "custom_attributes": [a for a in attributes if not is_empty(a["value"])],
        }

    def to_profile(
        self,
        data: Dict[str, Any],
        schema: ExtractionSchema,
        raw: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
        text: str = "",
    ) -> ExtractedProfile:
        """Map a schema-checked oracle result into the nested ExtractedProfile shape."""
        mapper = {
            "flat": self._map_flat,
            "forensic": self._map_forensic,
        }.get(schema.mode, self._map_deep_dive)
        mapped = mapper(data, raw or data)

        location = _clean_dict(mapped.get("location"))
        location["address"] = self._clean_address(location.get("address"))
        contact = _clean_dict(mapped.get("contact_info"))
        if not contact.get("website"):
            contact["website"] = url

        social_links = _build_items(SocialLink, mapped.get("social_links"), key="platform")
        known_platforms = {link.platform.lower() for link in social_links}
        for platform, link in self.signals.extract_social_links(text).items():
            if platform not in known_platforms:
                social_links.append(SocialLink(platform=platform, url=link))

        return ExtractedProfile(
            business_name=_clean_str(mapped.get("business_name")),
            tagline=_clean_str(mapped.get("tagline")),
            industry=_clean_str(mapped.get("industry")),
            years_in_business=_clean_str(mapped.get("years_in_business")),
            owner_name=_clean_str(mapped.get("owner_name")),
            description=_clean_str(mapped.get("description")),
            location=Location.model_validate(location),
            contact_info=ContactInfo.model_validate(contact),
            services=_build_items(Service, mapped.get("services")),
            assets=_build_items(Asset, mapped.get("assets")),
            credentials=_build_items(Credential, mapped.get("credentials")),
            social_links=social_links,
            hours=_build_items(BusinessHours, mapped.get("hours"), key="day"),
            custom_attributes=_build_items(CustomAttribute, mapped.get("custom_attributes"), key="label"),
            service_area=_clean_str(mapped.get("service_area")),
            unique_value=_clean_str(mapped.get("unique_value")),
            target_audience=_clean_str(mapped.get("target_audience")),
            has_online_booking=mapped.get("has_online_booking"),
            has_blog=mapped.get("has_blog"),
            mode=schema.mode,
        )

    # ─── Checks and scoring ───────────────────────────────────────────────

    def misses_contact(self, text: str, profile: ExtractedProfile) -> bool:
        """Content shows a phone or email token but the result has neither."""
        if profile.contact_info.phone or profile.contact_info.email:
            return False
        return self.signals.has_phone(text) or self.signals.has_email(text)

    @staticmethod
    def score(profile: ExtractedProfile, schema: ExtractionSchema) -> ExtractedProfile:
        """Set confidence and missing_fields from the schema's required profile fields."""
        missing = [path for path in schema.required_profile_fields if is_empty(_resolve(profile, path))]
        confidence = schema.base_confidence - schema.missing_penalty * len(missing)
        profile.confidence = round(min(1.0, max(0.0, confidence)), 4)
        profile.missing_fields = missing
        return profile

    def degraded(
        self,
        schema: ExtractionSchema,
        url: Optional[str],
        text: str,
        diagnostic: str,
        strategy: Optional[str] = None,
    ) -> ExtractedProfile:
        """Placeholder profile for a failed extraction, ready for manual entry."""
        return ExtractedProfile(
            business_name=FAILED_BUSINESS_NAME,
            contact_info=ContactInfo(website=url),
            confidence=0.0,
            extraction_method=ExtractionMethod.FAILED,
            mode=schema.mode,
            missing_fields=list(schema.required_profile_fields),
            source_strategy=strategy,
            diagnostic=diagnostic,
            raw_content_preview=text[:RAW_PREVIEW_CHARS],
        )

    # ─── Extraction ───────────────────────────────────────────────────────

    def _log_call(self, schema: ExtractionSchema, attempt: int, response=None):
        if not self.logger:
            return
        model = getattr(response, "model", None) or getattr(self.oracle, "model_name", type(self.oracle).__name__)
        self.logger.log_llm_call(schema.mode, model, attempt, getattr(response, "cost_usd", 0.0) or 0.0)

    async def _run(
        self,
        text: str,
        schema: ExtractionSchema,
        url: Optional[str],
        deadline: Optional[Deadline] = None,
    ) -> ExtractedProfile:
        shown = text[: self.input_budget]
        problem = None
        first_result: Optional[ExtractedProfile] = None

        for attempt in (1, 2):
            prompt = self.build_prompt(text, schema, url, problem)
            try:
                raw, response = await self._call_oracle(prompt, schema, deadline)
            except BudgetExhausted:
                if first_result is None:
                    raise
                return first_result
            self._log_call(schema, attempt, response)

            try:
                data = parse_oracle_output(raw)
                checked = schema.check(data)
            except SchemaViolation as e:
                if first_result is not None:
                    # Retry broke the output; the first answer only lacked contact data
                    return first_result
                if attempt == 2:
                    raise
                if self.logger:
                    self.logger.warning("Oracle output rejected, retrying", mode=schema.mode, problem=str(e))
                problem = str(e)
                continue

            profile = self.to_profile(checked, schema, raw=data, url=url, text=shown)
            if attempt == 1 and self.misses_contact(shown, profile):
                if self.logger:
                    self.logger.warning("Oracle output has no contact data, retrying", mode=schema.mode)
                first_result = profile
                problem = CONTACT_PROBLEM
                continue
            return profile

        raise SchemaViolation("no usable oracle output")

    async def extract(
        self,
        content: Union[AggregatedContent, str],
        schema: Union[ExtractionSchema, str] = "flat",
        url: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> ExtractedProfile:
        """
        Extract a profile. Never raises for oracle or parsing failures.

        Args:
            content: Aggregated acquisition output, or plain text
            schema: ExtractionSchema or mode name
            url: Seed URL; defaults to the aggregate's seed
            deadline: Invocation deadline; each oracle call gets at most its remaining time

        Returns:
            Scored ExtractedProfile, or a degraded one (extraction_method="failed")

        Raises:
            ValueError: unknown mode name
        """
        if isinstance(schema, str):
            schema = get_schema(schema)

        if isinstance(content, AggregatedContent):
            text = content.text
            url = url or content.seed_url
            strategy = content.strategy
        else:
            text = content or ""
            strategy = None

        if not text.strip():
            return self.degraded(schema, url, text, "No content to extract from", strategy)

        try:
            profile = await self._run(text, schema, url, deadline)
        except BudgetExhausted as e:
            diagnostic = f"Extraction budget exhausted: {e}"
        except asyncio.TimeoutError:
            diagnostic = f"Extraction timed out after {self.oracle_timeout}s"
        except SchemaViolation as e:
            diagnostic = f"Extraction output unusable after retry: {e}"
        except Exception as e:
            diagnostic = f"Extraction oracle failed: {type(e).__name__}: {e}"
        else:
            profile.source_strategy = strategy
            self.score(profile, schema)
            if self.logger:
                self.logger.info(
                    "Extraction complete",
                    mode=schema.mode,
                    business=profile.business_name,
                    confidence=profile.confidence,
                    missing=len(profile.missing_fields),
                )
            return profile

        if self.logger:
            self.logger.error("Extraction degraded", mode=schema.mode, url=url, diagnostic=diagnostic)
        return self.degraded(schema, url, text, diagnostic, strategy)

    def extract_sync(
        self,
        content: Union[AggregatedContent, str],
        schema: Union[ExtractionSchema, str] = "flat",
        url: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> ExtractedProfile:
        return run_sync(self.extract(content, schema, url, deadline))
