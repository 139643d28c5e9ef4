from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from zoneguard.config import Settings
from zoneguard.executor import (
    ApplyError,
    Optimizer,
    ZonePause,
    apply_zone_pauses,
    debug_responses,
    list_provider_campaigns,
    probe_blacklist,
    provider_blacklist,
    revert_entries,
)
from zoneguard.network.base import AdNetwork
from zoneguard.optimizer.preview import build_preview
from zoneguard.repo import DuplicateEntryError


logger = logging.getLogger(__name__)


def _error(error: str, status_code: int, message: str | None = None) -> JSONResponse:
    body: dict[str, Any] = {"ok": False, "error": error}
    if message:
        body["message"] = message
    return JSONResponse(body, status_code=status_code)


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except Exception:  # noqa: BLE001
        return None


def create_app(settings: Settings, *, network: AdNetwork | None = None) -> FastAPI:
    opt = Optimizer.build(settings, network=network)

    app = FastAPI(title="zoneguard")
    app.state.optimizer = opt

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"ok": True, "demo": settings.demo_mode, "providerConfigured": opt.network.has_token()}

    @app.post("/api/optimizer/preview")
    async def preview(request: Request):
        body = await _json_body(request)
        if not isinstance(body, dict):
            return _error("Invalid body. Expected JSON.", 400)
        try:
            return build_preview(body.get("dashboard"), body.get("trafficSourceFilter"))
        except ValueError as e:
            return _error(str(e), 400)

    @app.post("/api/optimizer/apply")
    async def apply(request: Request):
        body = await _json_body(request)
        raw = body.get("zonesToPauseNow") if isinstance(body, dict) else None
        if not isinstance(raw, list) or not raw:
            return _error("No zonesToPauseNow provided", 400)
        try:
            suggestions = [ZonePause.from_dict(z) for z in raw if isinstance(z, dict)]
            return await apply_zone_pauses(
                opt,
                suggestions,
                dry_run=_flag(body.get("dryRun")),
                actor="web",
            )
        except ApplyError as e:
            return _error("invalid_body", 400, str(e))
        except Exception as e:  # noqa: BLE001
            logger.exception("optimizer apply failed")
            return _error("optimizer_apply_error", 500, f"{type(e).__name__}: {e}")

    @app.get("/api/optimizer/blacklist-log")
    def blacklist_log():
        try:
            return {"items": [e.to_dict() for e in opt.ledger.list_all()]}
        except Exception as e:  # noqa: BLE001
            return _error("ledger_read_failed", 500, str(e))

    @app.post("/api/optimizer/blacklist-log")
    async def blacklist_log_append(request: Request):
        body = await _json_body(request)
        if not isinstance(body, dict) or not body.get("zoneId") or not body.get("campaignId"):
            return _error("invalid_body", 400)
        try:
            entry = opt.ledger.append(
                zone_id=str(body["zoneId"]),
                campaign_id=str(body["campaignId"]),
                provider=str(body.get("provider") or opt.network.provider),
                reason=body.get("reason"),
                entry_id=body.get("id"),
                timestamp=body.get("timestamp"),
                provider_campaign_id=body.get("providerCampaignId"),
            )
        except DuplicateEntryError as e:
            return _error("duplicate_id", 409, str(e))
        except Exception as e:  # noqa: BLE001
            return _error("ledger_write_failed", 500, str(e))
        return {"ok": True, "entry": entry.to_dict()}

    @app.delete("/api/optimizer/blacklist-log")
    def blacklist_log_clear():
        try:
            removed = opt.ledger.clear_all()
        except Exception as e:  # noqa: BLE001
            return _error("ledger_clear_failed", 500, str(e))
        return {"ok": True, "removed": removed}

    @app.post("/api/optimizer/unblacklist")
    async def unblacklist(request: Request):
        body = await _json_body(request)
        items = body.get("items") if isinstance(body, dict) else None
        if not isinstance(items, list) or not items:
            return _error("invalid_body", 400)
        ids = [str(it.get("id") or "") for it in items if isinstance(it, dict)]
        try:
            return await revert_entries(opt, ids)
        except ApplyError as e:
            return _error("invalid_body", 400, str(e))

    @app.post("/api/optimizer/verify")
    async def verify(request: Request):
        if not opt.network.has_token():
            return {"ok": False, "error": "missing_token", "message": "Provider API token is not set."}
        body = await _json_body(request)
        items = body.get("items") if isinstance(body, dict) else None
        entries = None
        if isinstance(items, list) and items:
            wanted = [it for it in items if isinstance(it, dict)]
            entries = [
                e
                for e in opt.ledger.list_active()
                if any(
                    (not it.get("id") or it.get("id") == e.id)
                    and (not it.get("campaignId") or str(it.get("campaignId")) == e.campaign_id)
                    for it in wanted
                )
            ]
        try:
            report = await opt.reconciler.reconcile(entries)
        except Exception as e:  # noqa: BLE001
            logger.exception("verify failed")
            return _error("verify_error", 500, f"{type(e).__name__}: {e}")
        return report.to_dict()

    async def _drift(campaign_ids: list[str] | None):
        try:
            return await opt.reconciler.untracked_zones(campaign_ids)
        except Exception as e:  # noqa: BLE001
            logger.exception("sync-blacklist failed")
            return _error("sync_error", 500, f"{type(e).__name__}: {e}")

    @app.get("/api/optimizer/sync-blacklist")
    async def sync_blacklist_get(request: Request):
        ids = request.query_params.getlist("campaignId")
        return await _drift(ids or None)

    @app.post("/api/optimizer/sync-blacklist")
    async def sync_blacklist_post(request: Request):
        body = await _json_body(request)
        ids = body.get("campaignIds") if isinstance(body, dict) else None
        return await _drift([str(i) for i in ids] if isinstance(ids, list) and ids else None)

    @app.get("/api/optimizer/mappings")
    def mappings():
        try:
            return {"ok": True, "mapping": opt.resolver.list_mappings()}
        except Exception as e:  # noqa: BLE001
            return _error(str(e), 500)

    @app.post("/api/optimizer/mappings")
    async def mappings_set(request: Request):
        body = await _json_body(request)
        body = body if isinstance(body, dict) else {}
        dashboard_id = body.get("dashboardId") or body.get("key")
        provider_id = body.get("providerId") or body.get("value")
        if not dashboard_id or not provider_id:
            return _error("missing dashboardId or providerId", 400)
        try:
            mapping = opt.resolver.set_mapping(str(dashboard_id), str(provider_id), body.get("dashboardName"))
        except ValueError as e:
            return _error(str(e), 400)
        except Exception as e:  # noqa: BLE001
            return _error("mapping_write_failed", 500, str(e))
        return {"ok": True, "mapping": mapping}

    @app.delete("/api/optimizer/mappings")
    async def mappings_delete(request: Request):
        body = await _json_body(request)
        body = body if isinstance(body, dict) else {}
        dashboard_id = body.get("dashboardId") or body.get("key")
        if not dashboard_id:
            return _error("missing dashboardId", 400)
        try:
            mapping = opt.resolver.delete_mapping(str(dashboard_id))
        except Exception as e:  # noqa: BLE001
            return _error("mapping_delete_failed", 500, str(e))
        return {"ok": True, "mapping": mapping}

    @app.get("/api/optimizer/probe")
    async def probe(campaignId: str | None = None):
        if not campaignId:
            return _error("missing campaignId", 400)
        return await probe_blacklist(opt, campaignId)

    @app.get("/api/optimizer/debug-responses")
    def debug(campaignId: str | None = None):
        if not campaignId:
            return _error("missing_campaignId", 400)
        try:
            return debug_responses(opt.repo, campaignId)
        except Exception as e:  # noqa: BLE001
            return _error("debug_read_failed", 500, str(e))

    @app.get("/api/optimizer/propeller/campaigns")
    async def propeller_campaigns(q: str = ""):
        return await list_provider_campaigns(opt, q)

    @app.get("/api/optimizer/propeller/blacklist")
    async def propeller_blacklist(dashboardId: str | None = None, providerId: str | None = None):
        if not opt.network.has_token():
            return {"ok": False, "error": "missing_token"}
        try:
            res = await provider_blacklist(opt, internal_id=dashboardId, provider_id=providerId)
        except ApplyError as e:
            return _error(str(e), 400)
        if not res["ok"]:
            return JSONResponse(res, status_code=502)
        return res

    return app


def run_web(settings: Settings) -> None:
    app = create_app(settings)
    uvicorn.run(app, host=settings.web_host, port=settings.web_port, log_level=settings.log_level.lower())
