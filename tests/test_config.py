from __future__ import annotations

from pathlib import Path

import pytest

from zoneguard.config import DEFAULT_API_BASE_URL, Settings
from zoneguard.network.propeller import build_provider_url


def test_load_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in (
        "ZG_DB_PATH",
        "ZG_DEMO_MODE",
        "PROPELLER_API_BASE_URL",
        "PROPELLER_API_TOKEN",
        "PROPELLER_BLACKLIST_METHOD",
        "PROPELLER_BLACKLIST_PAYLOAD_KEY",
        "PROPELLER_MUTATION_DEADLINE_SEC",
    ):
        monkeypatch.delenv(key, raising=False)

    s = Settings.load()
    assert s.api_base_url == DEFAULT_API_BASE_URL
    assert s.api_token is None
    assert s.blacklist_method == "PATCH"
    assert s.payload_key == "zone_ids"
    assert s.mutation_deadline_sec == 60.0
    assert s.demo_mode is False


def test_load_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ZG_DB_PATH", str(tmp_path / "x.sqlite3"))
    monkeypatch.setenv("ZG_DEMO_MODE", "yes")
    monkeypatch.setenv("PROPELLER_API_TOKEN", "  tok  ")
    monkeypatch.setenv("PROPELLER_BLACKLIST_METHOD", "put")
    monkeypatch.setenv("PROPELLER_ADD_BLACKLIST_PATH", "/v5/x/{campaignId}")
    monkeypatch.setenv("PROPELLER_MUTATION_DEADLINE_SEC", "not-a-number")

    s = Settings.load()
    assert s.db_path == tmp_path / "x.sqlite3"
    assert s.demo_mode is True
    assert s.api_token == "tok"
    assert s.blacklist_method == "PUT"
    assert s.add_blacklist_path == "/v5/x/{campaignId}"
    assert s.mutation_deadline_sec == 60.0


def test_build_provider_url() -> None:
    assert (
        build_provider_url("https://ssp-api.propellerads.com/", "/v5/adv/campaigns/{campaignId}/x", "123")
        == "https://ssp-api.propellerads.com/v5/adv/campaigns/123/x"
    )
    # base already carries the version segment
    assert (
        build_provider_url("https://ssp-api.propellerads.com/v5", "/v5/adv/campaigns/{campaignId}/x", "123")
        == "https://ssp-api.propellerads.com/v5/adv/campaigns/123/x"
    )
    assert build_provider_url("https://h", "adv/{campaignId}", "a/b") == "https://h/adv/a%2Fb"
