from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from zoneguard.db import OptimizerDB
from zoneguard.network.base import NetworkResponse
from zoneguard.optimizer.resolver import CampaignResolver
from zoneguard.repo import Repo


class _SearchOnlyNetwork:
    provider = "propellerads"

    def __init__(self, items: list[dict], *, token: bool = True):
        self.items = items
        self.token = token
        self.queries: list[str] = []

    def has_token(self) -> bool:
        return self.token

    async def search_campaigns(self, query: str) -> NetworkResponse:
        self.queries.append(query)
        return NetworkResponse(url="https://x/v5/adv/campaigns", status=200, text=json.dumps({"data": self.items}))


def _repo(tmp_path: Path) -> Repo:
    db_path = tmp_path / "zg.sqlite3"
    OptimizerDB(db_path).init()
    return Repo(db_path)


def test_numeric_id_resolves_directly(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    res = asyncio.run(resolver.resolve("7101234"))
    assert res.provider_id == "7101234"
    assert res.source == "direct"


def test_configured_mapping_beats_name_heuristic(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    resolver = CampaignResolver(repo)
    resolver.set_mapping("camp-x", "5550001")

    res = asyncio.run(resolver.resolve("camp-x", "Push MY 20231101"))
    assert res.provider_id == "5550001"
    assert res.source == "configured"


def test_heuristic_pulls_digit_run_from_name(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    res = asyncio.run(resolver.resolve("camp-x", "Push MY 20231101"))
    assert res.provider_id == "20231101"
    assert res.source == "heuristic"
    assert res.is_numeric


def test_short_digit_runs_are_not_campaign_ids(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    res = asyncio.run(resolver.resolve("camp-x", "Push TH 2024"))
    assert res.source == "unresolved"
    assert res.provider_id == "camp-x"


def test_name_mapping_is_case_insensitive(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    resolver.set_mapping("Push MY Casino", "8000001")

    res = asyncio.run(resolver.resolve("camp-y", "push my casino"))
    assert res.provider_id == "8000001"
    assert res.source == "configured_name"


def test_set_mapping_also_maps_display_name(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    mapping = resolver.set_mapping("camp-z", "8000002", "Onclick TH")
    assert mapping == {"Onclick TH": "8000002", "camp-z": "8000002"}

    res = asyncio.run(resolver.resolve("other", "ONCLICK th"))
    assert res.provider_id == "8000002"


def test_set_mapping_rejects_non_numeric_provider_id(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    with pytest.raises(ValueError):
        resolver.set_mapping("camp-x", "abc")
    assert resolver.list_mappings() == {}


def test_delete_mapping(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    resolver.set_mapping("camp-x", "5550001")
    assert resolver.delete_mapping("camp-x") == {}
    res = asyncio.run(resolver.resolve("camp-x"))
    assert res.source == "unresolved"


def test_live_lookup_only_when_enabled(tmp_path: Path) -> None:
    net = _SearchOnlyNetwork([{"campaign_id": 9900001, "name": "Sweeps BR"}])

    off = CampaignResolver(_repo(tmp_path), net)
    assert asyncio.run(off.resolve("camp-q", "Sweeps BR")).source == "unresolved"
    assert net.queries == []

    on = CampaignResolver(_repo(tmp_path), net, live_lookup=True)
    res = asyncio.run(on.resolve("camp-q", "Sweeps BR"))
    assert res.provider_id == "9900001"
    assert res.source == "live"
    assert net.queries == ["Sweeps BR"]


def test_live_lookup_skipped_without_token(tmp_path: Path) -> None:
    net = _SearchOnlyNetwork([{"id": 9900001}], token=False)
    resolver = CampaignResolver(_repo(tmp_path), net, live_lookup=True)
    assert asyncio.run(resolver.resolve("camp-q", "Sweeps")).source == "unresolved"
    assert net.queries == []


def test_unresolved_returns_input_unchanged(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    res = asyncio.run(resolver.resolve("camp-unknown"))
    assert res.to_dict() == {"providerId": "camp-unknown", "source": "unresolved"}
    assert not res.is_numeric


def test_heuristic_ignores_non_ascii_digits(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    # Arabic-Indic digits
    res = asyncio.run(resolver.resolve("camp-x", "Push EG ٧١٠١٢٣٤"))
    assert res.source == "unresolved"
    assert res.provider_id == "camp-x"


def test_name_mapping_folds_non_ascii_case(tmp_path: Path) -> None:
    resolver = CampaignResolver(_repo(tmp_path))
    resolver.set_mapping("Égypte Push", "8000003")

    res = asyncio.run(resolver.resolve("camp-eg", "ÉGYPTE push"))
    assert res.provider_id == "8000003"
    assert res.source == "configured_name"

    res = asyncio.run(resolver.resolve("camp-de", "STRASSE"))
    assert res.source == "unresolved"
    resolver.set_mapping("Straße", "8000004")
    res = asyncio.run(resolver.resolve("camp-de", "STRASSE"))
    assert res.provider_id == "8000004"
