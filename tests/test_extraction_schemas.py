"""Tests for extraction schemas, prompt files and the LiteLLM-backed oracle."""

import json
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest

from bizintel.errors import SchemaViolation
from bizintel.llm import llm_client
from bizintel.llm.extraction_schemas import (
    ExtractionSchema,
    FieldSpec,
    available_modes,
    get_schema,
    is_empty,
    load_schemas,
)
from bizintel.llm.llm_client import CompletionOracle, LLMClient
from bizintel.llm.prompt_loader import load_prompt
from bizintel.llm.structured_extractor import StructuredExtractor
from bizintel.models.business_profile import ExtractedProfile

# ─── Schemas ──────────────────────────────────────────────────────────────────


class TestSchemaRegistry:
    """YAML-defined modes."""

    def test_modes(self):
        assert available_modes() == ["deep_dive", "flat", "forensic"]
        assert set(load_schemas()) == {"flat", "deep_dive", "forensic"}

    def test_defaults_merged_and_overridden(self):
        assert get_schema("flat").missing_penalty == 0.1
        assert get_schema("deep_dive").missing_penalty == 0.08
        assert get_schema("forensic").base_confidence == 1.0

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="Unknown extraction mode"):
            get_schema("haiku")

    def test_every_prompt_file_exists(self):
        for mode in available_modes():
            assert load_prompt(get_schema(mode).prompt).content


class TestFieldSpec:
    """Type coercion of oracle values."""

    def test_empty_markers(self):
        assert is_empty("N/A")
        assert is_empty(" null ")
        assert is_empty([])
        assert not is_empty(0)
        assert not is_empty(False)

    def test_boolean(self):
        spec = FieldSpec(name="hasBlog", type="boolean")
        assert spec.coerce("yes") is True
        assert spec.coerce(False) is False
        with pytest.raises(TypeError):
            spec.coerce("sometimes")

    def test_number(self):
        spec = FieldSpec(name="fleetSize", type="number")
        assert spec.coerce("1,200") == 1200.0
        assert spec.coerce(12) == 12
        with pytest.raises(TypeError):
            spec.coerce(True)

    def test_string_list(self):
        spec = FieldSpec(name="vehicles", type="string_list")
        assert spec.coerce("Party Bus") == ["Party Bus"]
        assert spec.coerce(["Sedan", {"name": "SUV"}, None, "unknown"]) == ["Sedan", "SUV"]

    def test_object_list(self):
        spec = FieldSpec(name="services", type="object_list", item_fields=["name"])
        assert spec.coerce(["Airport Transfers", {"name": "Weddings"}]) == [
            {"name": "Airport Transfers"},
            {"name": "Weddings"},
        ]
        assert spec.coerce({"name": "Proms"}) == [{"name": "Proms"}]


class TestSchemaCheck:
    def test_check_fills_absent_fields(self):
        checked = get_schema("flat").check({"businessName": "Acme Limo", "industry": "Limo", "extra": 1})
        assert checked["businessName"] == "Acme Limo"
        assert checked["phone"] is None
        assert "extra" not in checked

    def test_required_wrong_type_is_violation(self):
        with pytest.raises(SchemaViolation, match="industry"):
            get_schema("flat").check({"businessName": "Acme", "industry": {"name": "Limo"}})

    def test_not_an_object(self):
        with pytest.raises(SchemaViolation):
            get_schema("flat").check(["Acme"])

    def test_field_block_and_skeleton(self):
        schema = get_schema("flat")
        assert '"services": [{"name": ..., "description": ..., "idealFor": ...}]' in schema.render_field_block()
        skeleton = json.loads(schema.json_skeleton())
        assert skeleton["services"] == [{"name": None, "description": None, "idealFor": None}]
        assert skeleton["vehicles"] == []
        assert skeleton["businessName"] is None


class TestScore:
    """confidence = base - penalty x missing, clamped to [0, 1]."""

    def test_empty_flat_profile(self):
        profile = StructuredExtractor.score(ExtractedProfile(), get_schema("flat"))
        assert len(profile.missing_fields) == 6
        assert profile.confidence == pytest.approx(0.4)

    def test_clamped_at_zero(self):
        schema = ExtractionSchema(
            mode="strict",
            prompt="flat_extraction",
            base_confidence=0.3,
            missing_penalty=0.5,
            required_profile_fields=["business_name", "industry"],
            fields=[],
        )
        assert StructuredExtractor.score(ExtractedProfile(), schema).confidence == 0.0


# ─── Prompt files ─────────────────────────────────────────────────────────────

PROMPT_FILE = """# PROMPT: {name}
# VERSION: {version}
# LAST_UPDATED: 2026-10-12
# DESCRIPTION: Test prompt
# ---PROMPT_START---
Fields: {{{{field_schema}}}}
Example: {{"a": 1}} and {{{{unknown}}}}
"""


def _write_prompt(directory, name, version="1.0.0", extra=""):
    path = directory / f"{name}.txt"
    path.write_text(PROMPT_FILE.format(name=name, version=version) + extra, encoding="utf-8")
    return path


class TestPromptLoader:
    def test_frontmatter_and_render(self, tmp_path):
        _write_prompt(tmp_path, "render_check")
        prompt = load_prompt("render_check", tmp_path)
        assert prompt.version == "1.0.0"
        assert prompt.description == "Test prompt"
        assert not prompt.content.startswith("#")
        rendered = prompt.render(field_schema="{...}")
        assert "Fields: {...}" in rendered
        assert '{"a": 1}' in rendered
        assert "{{unknown}}" in rendered
        assert len(prompt.to_dict()["prompt_hash"]) == 16

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_prompt("does_not_exist", tmp_path)

    def test_strict_mode_rejects_silent_edit(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROMPT_VERSION_CHECK", "strict")
        name = f"strict_check_{tmp_path.name}"
        _write_prompt(tmp_path, name)
        load_prompt(name, tmp_path)
        _write_prompt(tmp_path, name, extra="Edited without a version bump.\n")
        with pytest.raises(ValueError, match="bump the VERSION"):
            load_prompt(name, tmp_path)

    def test_version_bump_accepted(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROMPT_VERSION_CHECK", "strict")
        name = f"bump_check_{tmp_path.name}"
        _write_prompt(tmp_path, name)
        load_prompt(name, tmp_path)
        _write_prompt(tmp_path, name, version="1.1.0", extra="New rule.\n")
        assert load_prompt(name, tmp_path).version == "1.1.0"


# ─── LLMClient ────────────────────────────────────────────────────────────────


def _fake_response(text):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=120, completion_tokens=30),
    )


@pytest.fixture
def fake_litellm(monkeypatch):
    """Replace litellm.completion with a scripted stand-in."""
    calls = []
    script = []

    def fake_completion(**kwargs):
        calls.append(kwargs)
        item = script.pop(0)
        if isinstance(item, Exception):
            raise item
        return _fake_response(item)

    monkeypatch.setattr(llm_client, "completion", fake_completion)
    monkeypatch.setattr(llm_client, "completion_cost", lambda completion_response: 0.0025)
    return SimpleNamespace(calls=calls, script=script)


class TestLLMClient:
    def test_is_a_completion_oracle(self):
        assert isinstance(LLMClient(), CompletionOracle)

    def test_json_mode_and_schema_hint(self, fake_litellm):
        fake_litellm.script.append('{"businessName": "Acme Limo"}')
        client = LLMClient(model="gpt-4o-mini")
        response = client.generate("Extract", schema_hint='{"businessName": null}')
        assert response.text == '{"businessName": "Acme Limo"}'

        kwargs = fake_litellm.calls[0]
        assert kwargs["response_format"] == {"type": "json_object"}
        assert '{"businessName": null}' in kwargs["messages"][0]["content"]
        assert response.input_tokens == 120
        assert client.total_cost_usd == pytest.approx(0.0025)

    def test_no_json_mode_for_anthropic(self, fake_litellm):
        fake_litellm.script.append("{}")
        LLMClient(model="claude-haiku-4-5", fallback_models=[]).complete("Extract", "{}")
        assert "response_format" not in fake_litellm.calls[0]
        assert fake_litellm.calls[0]["model"] == "anthropic/claude-haiku-4-5"

    def test_transient_error_falls_back(self, fake_litellm):
        fake_litellm.script.extend([Exception("429 Too Many Requests"), "{}"])
        response = LLMClient(model="gpt-4o-mini").generate("Extract", "{}")
        assert [c["model"] for c in fake_litellm.calls] == ["gpt-4o-mini", "gemini/gemini-2.5-flash"]
        assert response.model == "gemini-2.5-flash"

    def test_concurrent_calls_keep_their_own_response(self, fake_litellm):
        answers = [f'{{"businessName": "Shop {i}"}}' for i in range(8)]
        fake_litellm.script.extend(answers)
        client = LLMClient(model="gpt-4o-mini")

        with ThreadPoolExecutor(max_workers=4) as pool:
            responses = list(pool.map(lambda _: client.generate("Extract", "{}"), range(8)))

        assert sorted(r.text for r in responses) == sorted(answers)
        assert client.total_cost_usd == pytest.approx(8 * 0.0025)

    def test_permanent_error_raises_without_fallback(self, fake_litellm):
        fake_litellm.script.extend([Exception("AuthenticationError: invalid api key"), "{}"])
        with pytest.raises(Exception, match="invalid api key"):
            LLMClient(model="gpt-4o-mini").complete("Extract", "{}")
        assert len(fake_litellm.calls) == 1

    def test_last_model_error_is_raised(self, fake_litellm):
        fake_litellm.script.extend([Exception("503 overloaded"), Exception("503 overloaded")])
        with pytest.raises(Exception, match="overloaded"):
            LLMClient(model="gpt-4o-mini").complete("Extract", "{}")
        assert len(fake_litellm.calls) == 2
