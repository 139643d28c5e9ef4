from __future__ import annotations

import pytest

from zoneguard.optimizer.preview import build_preview


def _dashboard() -> dict:
    return {
        "dateRange": "last7",
        "campaigns": [
            {
                "id": "camp-a",
                "name": "Push MY 7101234 casino",
                "trafficSource": "propellerads",
                "deposits": 0,
                "zones": [
                    {"id": "A", "visits": 1000, "conversions": 0, "revenue": 0, "cost": 50, "roi": -100},
                    {"id": "B", "visits": 100, "conversions": 1, "revenue": 1.5, "cost": 1, "roi": 50},
                    {"id": "C", "visits": 100, "conversions": 1, "revenue": 1.5, "cost": 1, "roi": 50},
                    {"id": "D", "visits": 100, "conversions": 1, "revenue": 1.5, "cost": 1, "roi": 50},
                ],
            }
        ],
    }


def test_flags_high_spend_zero_conversion_zone() -> None:
    out = build_preview(_dashboard())
    flagged = out["zonesToPauseNow"]
    assert [z["zoneId"] for z in flagged] == ["A"]
    assert flagged[0]["campaignId"] == "camp-a"
    assert "High spend with no conversions" in flagged[0]["reason"]
    assert out["meta"]["totalZones"] == 4
    assert out["meta"]["totalZonesFlagged"] == 1
    assert len(out["rules"]) == 4


def test_traffic_source_filter_with_no_match() -> None:
    out = build_preview(_dashboard(), "mgid")
    assert out["zonesToPauseNow"] == []
    assert out["meta"]["totalCampaigns"] == 0
    assert out["meta"]["trafficSourceFilter"] == "mgid"


def test_all_filter_means_no_filter() -> None:
    out = build_preview(_dashboard(), "all")
    assert out["meta"]["trafficSourceFilter"] is None
    assert out["meta"]["totalCampaigns"] == 1


def test_campaigns_without_zones() -> None:
    out = build_preview({"campaigns": [{"id": "c1", "zones": []}]})
    assert out["zonesToPauseNow"] == []
    assert "zone-level" in out["meta"]["notes"][0]


def test_missing_campaigns_is_an_error() -> None:
    with pytest.raises(ValueError):
        build_preview({"dateRange": "today"})
