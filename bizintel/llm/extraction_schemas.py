"""
Extraction schemas - declarative description of what each mode asks for.

Schemas are static configuration loaded from `extraction_schemas.yaml`.
Each one knows how to render its field list into the prompt and how to
type-check an oracle result against it.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from ..errors import SchemaViolation

logger = logging.getLogger(__name__)

FieldType = Literal["string", "boolean", "number", "string_list", "object", "object_list"]

SCHEMA_FILE = Path(__file__).parent / "extraction_schemas.yaml"

EMPTY_MARKERS = ("null", "none", "n/a", "unknown", "not found", "not available")


def is_empty(val: Any) -> bool:
    """Check if a value is empty, including LLM artifacts like the string 'null'."""
    if val is None or val == "" or val == [] or val == {}:
        return True
    if isinstance(val, str) and val.strip().lower() in EMPTY_MARKERS + ("",):
        return True
    return False


class FieldSpec(BaseModel):
    """One top-level key of the oracle's JSON answer."""

    model_config = ConfigDict(extra="forbid")

    name: str
    type: FieldType
    required: bool = False
    description: Optional[str] = None
    item_fields: List[str] = Field(default_factory=list)

    def template(self) -> str:
        if self.type == "object":
            inner = ", ".join(f'"{key}": ...' for key in self.item_fields)
            shape = "{" + inner + "}"
        elif self.type == "object_list":
            inner = ", ".join(f'"{key}": ...' for key in self.item_fields)
            shape = "[{" + inner + "}]"
        elif self.type == "string_list":
            shape = '["string"]'
        else:
            shape = self.type
        line = f'  "{self.name}": {shape}'
        if self.required:
            line += "  (required)"
        if self.description:
            line += f"  // {self.description}"
        return line

    def coerce(self, value: Any) -> Any:
        """
        Coerce a value to this field's type.

        Returns the coerced value, None for empty values.

        Raises:
            TypeError: value cannot be read as this type
        """
        if is_empty(value):
            return None

        if self.type == "string":
            if isinstance(value, bool) or isinstance(value, (dict, list)):
                raise TypeError(f"expected string, got {type(value).__name__}")
            return str(value).strip()

        if self.type == "number":
            if isinstance(value, bool):
                raise TypeError("expected number, got bool")
            if isinstance(value, (int, float)):
                return value
            try:
                return float(str(value).replace(",", ""))
            except ValueError as e:
                raise TypeError(f"expected number, got {value!r}") from e

        if self.type == "boolean":
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.strip().lower() in ("true", "yes"):
                return True
            if isinstance(value, str) and value.strip().lower() in ("false", "no"):
                return False
            raise TypeError(f"expected boolean, got {value!r}")

        if self.type == "string_list":
            if isinstance(value, str):
                return [value.strip()]
            if not isinstance(value, list):
                raise TypeError(f"expected list, got {type(value).__name__}")
            items = []
            for item in value:
                if isinstance(item, dict):
                    item = item.get("name") or item.get("label")
                if not is_empty(item) and not isinstance(item, (dict, list)):
                    items.append(str(item).strip())
            return items

        if self.type == "object":
            if not isinstance(value, dict):
                raise TypeError(f"expected object, got {type(value).__name__}")
            return value

        # object_list
        if isinstance(value, dict):
            value = [value]
        if not isinstance(value, list):
            raise TypeError(f"expected list of objects, got {type(value).__name__}")
        items = []
        for item in value:
            if isinstance(item, str) and not is_empty(item):
                items.append({"name": item.strip()})
            elif isinstance(item, dict):
                items.append(item)
        return items


class ExtractionSchema(BaseModel):
    """Declarative target shape for one extraction mode."""

    model_config = ConfigDict(extra="forbid")

    mode: str
    prompt: str
    description: Optional[str] = None
    base_confidence: float = Field(1.0, ge=0.0, le=1.0)
    missing_penalty: float = Field(0.1, ge=0.0, le=1.0)
    required_profile_fields: List[str] = Field(default_factory=list)
    fields: List[FieldSpec]

    def render_field_block(self) -> str:
        """Field list as shown to the oracle."""
        return "{\n" + ",\n".join(spec.template() for spec in self.fields) + "\n}"

    def json_skeleton(self) -> str:
        """Empty-valued JSON example, used as the oracle's schema hint."""
        skeleton: Dict[str, Any] = {}
        for spec in self.fields:
            if spec.type == "object":
                skeleton[spec.name] = {key: None for key in spec.item_fields}
            elif spec.type == "object_list":
                skeleton[spec.name] = [{key: None for key in spec.item_fields}]
            elif spec.type == "string_list":
                skeleton[spec.name] = []
            else:
                skeleton[spec.name] = None
        return json.dumps(skeleton)

    def check(self, data: Any) -> Dict[str, Any]:
        """
        Type-check an oracle result.

        Unknown keys are ignored; a wrong-typed optional field is dropped.

        Returns:
            Dict of coerced values for every schema field (None when absent)

        Raises:
            SchemaViolation: result is not an object, or a required field has the wrong type
        """
        if not isinstance(data, dict):
            raise SchemaViolation(f"expected a JSON object, got {type(data).__name__}")

        checked: Dict[str, Any] = {}
        problems = []
        for spec in self.fields:
            try:
                checked[spec.name] = spec.coerce(data.get(spec.name))
            except TypeError as e:
                if spec.required:
                    problems.append(f"{spec.name}: {e}")
                else:
                    logger.debug(f"Dropping wrong-typed optional field {spec.name}: {e}")
                checked[spec.name] = None

        if problems:
            raise SchemaViolation("; ".join(problems))
        return checked


@lru_cache(maxsize=1)
def load_schemas(path: Optional[str] = None) -> Dict[str, ExtractionSchema]:
    """Load and cache all extraction schemas from YAML."""
    schema_path = Path(path) if path else SCHEMA_FILE
    with open(schema_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults = raw.get("defaults", {})
    schemas = {}
    for mode, data in raw.get("modes", {}).items():
        merged = {**defaults, **data, "mode": mode}
        schemas[mode] = ExtractionSchema(**merged)

    logger.debug(f"Loaded {len(schemas)} extraction schemas from {schema_path}")
    return schemas


def get_schema(mode: str) -> ExtractionSchema:
    """
    Get the schema for an extraction mode.

    Raises:
        ValueError: unknown mode
    """
    schemas = load_schemas()
    if mode not in schemas:
        raise ValueError(f"Unknown extraction mode '{mode}'. Available: {sorted(schemas)}")
    return schemas[mode]


def available_modes() -> List[str]:
    return sorted(load_schemas())
