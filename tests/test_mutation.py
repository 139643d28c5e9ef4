from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx

from zoneguard.config import Settings
from zoneguard.network.propeller import PropellerClient
from zoneguard.optimizer.mutation import (
    DEFAULT_ADD_PATHS,
    MutationExecutor,
    method_candidates,
    path_candidates,
    payload_candidates,
)

BASE = "https://api.test"
CID = "7101234"


def _settings(**overrides) -> Settings:
    values = dict(
        db_path=Path("unused.sqlite3"),
        api_base_url=BASE,
        api_token="tok",
        mutation_deadline_sec=5.0,
    )
    values.update(overrides)
    return Settings(**values)


class _Recorder:
    """Scripted provider: `rule(method, path, payload)` returns (status, body)."""

    def __init__(self, rule):
        self.rule = rule
        self.calls: list[tuple[str, str, object]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, payload))
        status, body = self.rule(request.method, request.url.path, payload)
        return httpx.Response(status, json=body)


def _executor(rule, **overrides) -> tuple[MutationExecutor, _Recorder]:
    rec = _Recorder(rule)
    settings = _settings(**overrides)
    client = PropellerClient(settings, transport=httpx.MockTransport(rec))
    return MutationExecutor(settings, client), rec


def _path(i: int) -> str:
    return DEFAULT_ADD_PATHS[i].replace("{campaignId}", CID)


def test_candidate_lists() -> None:
    assert method_candidates("put") == ["PUT", "PATCH"]
    assert method_candidates(None) == ["PATCH", "PUT"]
    assert path_candidates("/custom/{campaignId}") == ["/custom/{campaignId}", *DEFAULT_ADD_PATHS]
    assert path_candidates(DEFAULT_ADD_PATHS[1]) == [
        DEFAULT_ADD_PATHS[1],
        DEFAULT_ADD_PATHS[0],
        DEFAULT_ADD_PATHS[2],
    ]
    assert payload_candidates("55", CID)[:3] == [
        {"zone_ids": ["55"]},
        {"zone_ids": "55"},
        {"zone": ["55"]},
    ]


def test_payload_template_goes_first_and_is_filled_in() -> None:
    out = payload_candidates("55", CID, template='{"campaign": "{campaignId}", "rules": {"zone": ["{zoneId}"]}}')
    assert out[0] == {"campaign": CID, "rules": {"zone": ["55"]}}


def test_invalid_template_is_skipped() -> None:
    out = payload_candidates("55", CID, template="{not json")
    assert out[0] == {"zone_ids": ["55"]}


def test_duplicate_payloads_are_dropped() -> None:
    out = payload_candidates("55", CID, payload_key="zone")
    assert out.count({"zone": ["55"]}) == 1


def test_success_stops_further_attempts() -> None:
    seen = {"n": 0}

    def rule(method, path, payload):
        seen["n"] += 1
        if seen["n"] == 2:
            return 200, {"result": "ok"}
        return 400, {"errors": {"zone": ["Empty data"]}}

    ex, rec = _executor(rule)
    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert res.success
    assert res.kind == "ok"
    assert len(rec.calls) == 2
    assert len(res.attempts) == 2
    assert res.payload == {"zone_ids": "55"}


def test_404_moves_to_next_path_same_method_first_payload() -> None:
    def rule(method, path, payload):
        if path == _path(0):
            return 404, {"message": "Not Found"}
        return 200, {}

    ex, rec = _executor(rule)
    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert res.success
    assert rec.calls == [
        ("PATCH", _path(0), {"zone_ids": ["55"]}),
        ("PATCH", _path(1), {"zone_ids": ["55"]}),
    ]


def test_405_moves_to_next_method() -> None:
    def rule(method, path, payload):
        if method == "PATCH":
            return 405, {"message": "Method Not Allowed"}
        return 200, {}

    ex, rec = _executor(rule)
    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert res.success
    assert res.method == "PUT"
    assert rec.calls == [
        ("PATCH", _path(0), {"zone_ids": ["55"]}),
        ("PUT", _path(0), {"zone_ids": ["55"]}),
    ]


def test_empty_data_moves_to_next_payload() -> None:
    def rule(method, path, payload):
        if payload == {"zone": ["55"]}:
            return 200, {}
        return 400, {"errors": {"zone": ["Empty data"]}}

    ex, rec = _executor(rule)
    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert res.success
    assert [c[2] for c in rec.calls] == [{"zone_ids": ["55"]}, {"zone_ids": "55"}, {"zone": ["55"]}]
    assert {c[1] for c in rec.calls} == {_path(0)}


def test_other_status_moves_to_next_path() -> None:
    def rule(method, path, payload):
        if path == _path(0):
            return 422, {"message": "Unprocessable"}
        return 200, {}

    ex, rec = _executor(rule)
    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert res.success
    assert rec.calls[0][1] == _path(0)
    assert rec.calls[1] == ("PATCH", _path(1), {"zone_ids": ["55"]})


def test_exhausted_reports_last_status_and_body() -> None:
    def rule(method, path, payload):
        return 500, {"message": "boom"}

    ex, rec = _executor(rule)
    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert not res.success
    assert res.kind == "exhausted"
    assert res.status == 500
    assert "boom" in res.message
    # one request per method x path
    assert len(rec.calls) == 2 * len(DEFAULT_ADD_PATHS)


def test_override_path_is_tried_first() -> None:
    def rule(method, path, payload):
        return 200, {}

    ex, rec = _executor(rule, add_blacklist_path="/v5/custom/{campaignId}/exclude")
    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert res.success
    assert rec.calls[0][1] == f"/v5/custom/{CID}/exclude"


def test_preferred_method_and_payload_key() -> None:
    def rule(method, path, payload):
        return 200, {}

    ex, rec = _executor(rule, blacklist_method="PUT", payload_key="zones_list")
    asyncio.run(ex.blacklist_zone(CID, "55"))
    assert rec.calls[0][0] == "PUT"
    assert rec.calls[0][2] == {"zones_list": ["55"]}


def test_deadline_bounds_the_whole_probe() -> None:
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.2)
        return httpx.Response(500, json={"message": "slow"})

    settings = _settings(mutation_deadline_sec=0.05)
    client = PropellerClient(settings, transport=httpx.MockTransport(slow))
    ex = MutationExecutor(settings, client)

    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert not res.success
    assert res.kind == "timeout"


def test_missing_token_sends_nothing() -> None:
    def rule(method, path, payload):
        return 200, {}

    ex, rec = _executor(rule, api_token=None)
    res = asyncio.run(ex.blacklist_zone(CID, "55"))
    assert not res.success
    assert res.kind == "not_configured"
    assert rec.calls == []


def test_transport_error_moves_to_next_path() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == _path(0):
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={})

    settings = _settings()
    client = PropellerClient(settings, transport=httpx.MockTransport(handler))
    res = asyncio.run(MutationExecutor(settings, client).blacklist_zone(CID, "55"))
    assert res.success
    assert calls == [_path(0), _path(1)]
    assert res.attempts[0].status is None
