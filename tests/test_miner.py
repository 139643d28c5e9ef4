from __future__ import annotations

from zoneguard.optimizer.miner import MAX_MINED_IDS, mine_zone_ids, normalize_id


def test_normalize_id_keeps_digits_only() -> None:
    assert normalize_id("Z-42") == "42"
    assert normalize_id(42) == "42"
    assert normalize_id(42.0) == "42"
    assert normalize_id("  abc ") == "abc"
    assert normalize_id("   ") is None
    assert normalize_id(None) is None
    assert normalize_id(True) is None
    assert normalize_id(float("nan")) is None


def test_mine_dedupes_across_shapes() -> None:
    payload = {"zone_id": "Z-42", "nested": {"id": 42}}
    assert mine_zone_ids(payload) == ["42"]


def test_mine_finds_ids_in_unknown_envelopes() -> None:
    payload = {
        "result": {
            "zone": [101, "102"],
            "rules": [{"zoneId": 103, "meta": {"placementId": "104"}}],
        }
    }
    mined = mine_zone_ids(payload)
    for z in ("101", "102", "103", "104"):
        assert z in mined


def test_mine_ignores_bools_and_nulls() -> None:
    payload = {"items": [None, True, False, {"zone": None}, 7]}
    assert mine_zone_ids(payload) == ["7"]


def test_mine_preserves_first_seen_order() -> None:
    assert mine_zone_ids([3, 1, 2, 1, 3]) == ["3", "1", "2"]


def test_mine_caps_result() -> None:
    payload = {"zones": list(range(1, 501))}
    mined = mine_zone_ids(payload)
    assert len(mined) == MAX_MINED_IDS
    assert mined[0] == "1"
    assert mined[-1] == str(MAX_MINED_IDS)


def test_mine_without_cap_and_with_zero_cap() -> None:
    payload = {"zones": list(range(1, 501))}
    assert len(mine_zone_ids(payload, limit=None)) == 500
    assert mine_zone_ids(payload, limit=0) == []


def test_mine_scalar_and_empty() -> None:
    assert mine_zone_ids("555") == ["555"]
    assert mine_zone_ids({}) == []
    assert mine_zone_ids([]) == []


def test_normalize_id_ignores_non_ascii_digits() -> None:
    arabic = "٤٢"
    assert normalize_id(arabic) == arabic
    assert normalize_id(f"Z-{arabic}-7") == "7"
