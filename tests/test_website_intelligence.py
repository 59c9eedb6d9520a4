"""End-to-end tests for the service surface and the CLI, with HTTP and the oracle stubbed."""

import functools
import json
import time

import pytest

from bizintel import cli
from bizintel.config import PipelineSettings
from bizintel.errors import ACQUISITION_FAILED_MESSAGE
from bizintel.services.profile_store import InMemoryProfileStore, JsonFileProfileStore
from bizintel.services.website_intelligence import (
    ERROR_ACQUISITION,
    ERROR_EXTRACTION,
    ERROR_STORE,
    ERROR_VALIDATION,
    WebsiteIntelligenceService,
)
from bizintel.utils.robots_checker import RobotsPolicy

from .conftest import SEED, FakeOracle, FakeSite


def _service(site, oracle, store=None, settings=None):
    return WebsiteIntelligenceService(
        oracle,
        store=store,
        settings=settings or PipelineSettings(deadline_seconds=10),
        transport=site.transport,
    )


class BrokenStore(InMemoryProfileStore):
    def get_profile(self, owner_id):
        raise RuntimeError("connection reset by peer")


# ─── scrape_website ───────────────────────────────────────────────────────────


class TestScrapeWebsite:
    """Acquire + extract, reported as a response."""

    def test_success(self, acme_site, flat_answer):
        response = _service(acme_site, FakeOracle(flat_answer)).scrape_website_sync("acme-limo.com")
        assert response.success
        assert response.error_kind is None
        assert response.data.business_name == "Acme Limo"
        assert response.data.source_strategy == "direct"
        assert response.data.contact_info.website == SEED

    def test_response_is_json_serializable(self, acme_site, flat_answer):
        response = _service(acme_site, FakeOracle(flat_answer)).scrape_website_sync(SEED)
        document = json.loads(json.dumps(response.to_dict()))
        assert document["data"]["assets"][1]["capacity"] == 32

    def test_invalid_url_makes_no_requests(self, acme_site):
        oracle = FakeOracle()
        response = _service(acme_site, oracle).scrape_website_sync("mailto:info@acme-limo.com")
        assert not response.success
        assert response.error_kind == ERROR_VALIDATION
        assert acme_site.requests == []
        assert oracle.calls == 0

    def test_unknown_mode_is_validation(self, acme_site):
        response = _service(acme_site, FakeOracle()).scrape_website_sync(SEED, mode="haiku")
        assert response.error_kind == ERROR_VALIDATION

    def test_unreachable_site(self, flat_answer):
        oracle = FakeOracle(flat_answer)
        response = _service(FakeSite(), oracle).scrape_website_sync(SEED)
        assert not response.success
        assert response.error_kind == ERROR_ACQUISITION
        assert response.error == ACQUISITION_FAILED_MESSAGE
        assert oracle.calls == 0

    def test_robots_enforced(self, acme_site):
        acme_site.pages[f"{SEED}/robots.txt"] = "User-agent: *\nDisallow: /\n"
        settings = PipelineSettings(deadline_seconds=10, robots_policy=RobotsPolicy.ENFORCE)
        response = _service(acme_site, FakeOracle(), settings=settings).scrape_website_sync(SEED)
        assert response.error_kind == ERROR_ACQUISITION
        assert "robots.txt" in response.error

    def test_degraded_extraction_is_still_success(self, acme_site):
        response = _service(acme_site, FakeOracle(RuntimeError("provider down"))).scrape_website_sync(SEED)
        assert response.success
        assert response.data.is_degraded
        assert "provider down" in response.data.diagnostic

    def test_slow_oracle_bounded_by_overall_deadline(self, acme_site, flat_answer):
        def slow(prompt):
            time.sleep(2.5)
            return json.dumps(flat_answer)

        settings = PipelineSettings(deadline_seconds=1, oracle_timeout_seconds=5)
        started = time.monotonic()
        response = _service(acme_site, FakeOracle(slow), settings=settings).scrape_website_sync(SEED)
        elapsed = time.monotonic() - started

        assert response.success
        assert response.data.is_degraded
        assert "budget exhausted" in response.data.diagnostic.lower()
        assert elapsed < 2.0


# ─── sync_profile ─────────────────────────────────────────────────────────────


class TestSyncProfile:
    """One read, at most one write."""

    def test_creates_profile(self, acme_site, flat_answer, store):
        response = _service(acme_site, FakeOracle(flat_answer), store).sync_profile_sync("owner-1", SEED)
        assert response.success
        assert response.created
        assert (store.reads, store.writes) == (1, 1)
        stored = store.profiles["owner-1"]
        assert stored["business_name"] == "Acme Limo"
        assert stored["owner_id"] == "owner-1"
        assert {"label": "Online booking", "value": "yes"} in stored["custom_attributes"]

    def test_updates_profile_without_losing_services(self, acme_site, flat_answer):
        store = InMemoryProfileStore(
            {
                "owner-1": {
                    "owner_id": "owner-1",
                    "business_name": "Acme",
                    "industry": "Limousine Service",
                    "services": [{"name": "Prom Packages", "price": "$400"}],
                }
            }
        )
        response = _service(acme_site, FakeOracle(flat_answer), store).sync_profile_sync("owner-1", SEED)
        assert response.success
        assert not response.created
        assert (store.reads, store.writes) == (1, 1)
        names = [s["name"] for s in store.profiles["owner-1"]["services"]]
        assert names == ["Prom Packages", "Airport Transfers", "Wedding Limos"]
        assert store.profiles["owner-1"]["business_name"] == "Acme Limo"

    def test_degraded_extraction_writes_nothing(self, acme_site, store):
        response = _service(acme_site, FakeOracle("bad", "worse"), store).sync_profile_sync("owner-1", SEED)
        assert not response.success
        assert response.error_kind == ERROR_EXTRACTION
        assert response.extracted.is_degraded
        assert store.writes == 0

    def test_invalid_merge_input_writes_nothing(self, acme_site, flat_answer, store):
        flat_answer["email"] = "bookings-at-acme"
        response = _service(acme_site, FakeOracle(flat_answer), store).sync_profile_sync("owner-1", SEED)
        assert response.error_kind == ERROR_VALIDATION
        assert "email" in response.error
        assert store.writes == 0

    def test_malformed_stored_profile_is_validation(self, acme_site, flat_answer):
        store = InMemoryProfileStore(
            {"owner-1": {"owner_id": "owner-1", "business_name": "Acme", "services": ["Haircut"]}}
        )
        response = _service(acme_site, FakeOracle(flat_answer), store).sync_profile_sync("owner-1", SEED)
        assert not response.success
        assert response.error_kind == ERROR_VALIDATION
        assert "services[0]" in response.error
        assert store.writes == 0

    def test_store_failure(self, acme_site, flat_answer):
        response = _service(acme_site, FakeOracle(flat_answer), BrokenStore()).sync_profile_sync("owner-1", SEED)
        assert response.error_kind == ERROR_STORE
        assert "connection reset" in response.error

    def test_acquisition_failure_skips_store(self, store):
        response = _service(FakeSite(), FakeOracle(), store).sync_profile_sync("owner-1", SEED)
        assert response.error_kind == ERROR_ACQUISITION
        assert (store.reads, store.writes) == (0, 0)

    @pytest.mark.parametrize("owner_id", ["", "   "])
    def test_owner_required(self, acme_site, store, owner_id):
        response = _service(acme_site, FakeOracle(), store).sync_profile_sync(owner_id, SEED)
        assert response.error_kind == ERROR_VALIDATION
        assert acme_site.requests == []

    def test_no_store_configured(self, acme_site):
        response = _service(acme_site, FakeOracle()).sync_profile_sync("owner-1", SEED)
        assert response.error_kind == ERROR_STORE


class TestJsonFileProfileStore:
    def test_create_then_update(self, tmp_path):
        store = JsonFileProfileStore(tmp_path / "profiles" / "acme.json")
        assert store.get_profile("owner-1") is None
        store.create_profile("owner-1", {"business_name": "Acme Limo"})
        store.update_profile("owner-1", {"tagline": "Arrive in style"})
        assert store.get_profile("owner-1") == {
            "business_name": "Acme Limo",
            "tagline": "Arrive in style",
            "owner_id": "owner-1",
        }


# ─── CLI ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def cli_env(monkeypatch, tmp_path, acme_site, flat_answer):
    """Point the CLI at the fake site and a scripted oracle."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "LLMClient", lambda **kwargs: FakeOracle(flat_answer))
    monkeypatch.setattr(
        cli,
        "WebsiteIntelligenceService",
        functools.partial(WebsiteIntelligenceService, transport=acme_site.transport),
    )
    return tmp_path


class TestCli:
    def test_scrape_to_file(self, cli_env):
        output = cli_env / "acme.json"
        assert cli.main(["acme-limo.com", "--output", str(output)]) == cli.EXIT_OK
        document = json.loads(output.read_text())
        assert document["success"]
        assert document["data"]["business_name"] == "Acme Limo"

    def test_merge_into_file(self, cli_env):
        profile_path = cli_env / "profiles" / "acme.json"
        code = cli.main(["acme-limo.com", "--merge-into", str(profile_path), "--owner-id", "owner-9"])
        assert code == cli.EXIT_OK
        stored = json.loads(profile_path.read_text())
        assert stored["owner_id"] == "owner-9"
        assert stored["business_name"] == "Acme Limo"

    def test_invalid_url_exit_code(self, cli_env, capsys):
        assert cli.main(["javascript:alert(1)"]) == cli.EXIT_INVALID
        assert json.loads(capsys.readouterr().out)["error_kind"] == ERROR_VALIDATION

    def test_log_level_validated(self, cli_env):
        with pytest.raises(SystemExit):
            cli.main(["acme-limo.com", "--log-level", "chatty"])
