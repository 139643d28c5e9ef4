from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from zoneguard.config import Settings
from zoneguard.db import OptimizerDB
from zoneguard.network.base import AdNetwork
from zoneguard.network.propeller import campaign_items
from zoneguard.optimizer.ledger import Ledger
from zoneguard.optimizer.mutation import MutationExecutor
from zoneguard.optimizer.reconciler import Reconciler, fetch_provider_zones
from zoneguard.optimizer.miner import MAX_MINED_IDS
from zoneguard.optimizer.resolver import CampaignResolver
from zoneguard.registry import build_network
from zoneguard.repo import Repo
from zoneguard.util import now_utc_iso, truncate


logger = logging.getLogger(__name__)

DEBUG_RESPONSES_KEY = "debug:propeller:responses:{campaignId}"
PROBE_SNIPPET_CHARS = 16_384


class ApplyError(ValueError):
    pass


@dataclass(frozen=True)
class ZonePause:
    campaign_id: str
    zone_id: str
    campaign_name: str | None = None
    reason: str | None = None

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "ZonePause":
        campaign_id = str(raw.get("campaignId") or raw.get("campaign_id") or "").strip()
        zone_id = str(raw.get("zoneId") or raw.get("zone_id") or "").strip()
        if not campaign_id or not zone_id:
            raise ApplyError("each suggestion needs campaignId and zoneId")
        name = raw.get("campaignName") or raw.get("campaign_name")
        return ZonePause(
            campaign_id=campaign_id,
            zone_id=zone_id,
            campaign_name=str(name) if name else None,
            reason=str(raw["reason"]) if raw.get("reason") else None,
        )


@dataclass
class Optimizer:
    """Everything the optimizer flows need, wired from one Settings object."""

    settings: Settings
    repo: Repo
    network: AdNetwork
    resolver: CampaignResolver
    executor: MutationExecutor
    ledger: Ledger
    reconciler: Reconciler

    @staticmethod
    def build(settings: Settings, *, network: AdNetwork | None = None, repo: Repo | None = None) -> "Optimizer":
        OptimizerDB(settings.db_path).init()
        repo = repo or Repo(settings.db_path)
        network = network or build_network(settings)
        resolver = CampaignResolver(repo, network, live_lookup=settings.live_resolve)
        ledger = Ledger(repo, network=network, resolver=resolver, max_entries=settings.ledger_max_entries)
        return Optimizer(
            settings=settings,
            repo=repo,
            network=network,
            resolver=resolver,
            executor=MutationExecutor(settings, network),
            ledger=ledger,
            reconciler=Reconciler(ledger, resolver, network),
        )


def _store_attempts(repo: Repo, campaign_id: str, record: dict[str, Any]) -> None:
    try:
        repo.set_meta(
            DEBUG_RESPONSES_KEY.format(campaignId=campaign_id),
            json.dumps(record, ensure_ascii=True),
        )
    except Exception as e:  # noqa: BLE001
        logger.warning("Could not store debug responses for %s: %s", campaign_id, e)


async def apply_zone_pauses(
    opt: Optimizer,
    suggestions: list[ZonePause],
    *,
    dry_run: bool = False,
    actor: str = "api",
) -> dict[str, Any]:
    """
    Blacklist each suggested zone and record successes in the ledger.

    Dry run sends nothing and writes nothing. Failures are per suggestion and
    reported in the result; one bad zone does not stop the others.
    """
    if not suggestions:
        raise ApplyError("No zonesToPauseNow provided")

    results: list[dict[str, Any]] = []
    for s in suggestions:
        if dry_run:
            results.append(
                {"campaignId": s.campaign_id, "zoneId": s.zone_id, "ok": True, "dryRun": True, "message": "Dry run"}
            )
            continue

        resolution = await opt.resolver.resolve(s.campaign_id, s.campaign_name)
        outcome = await opt.executor.blacklist_zone(resolution.provider_id, s.zone_id)
        _store_attempts(
            opt.repo,
            s.campaign_id,
            {
                "at": now_utc_iso(),
                "actor": actor,
                "zoneId": s.zone_id,
                "resolution": resolution.to_dict(),
                "result": outcome.to_dict(),
            },
        )

        entry_id = None
        message = outcome.message
        ok = outcome.success
        if outcome.success:
            try:
                entry = opt.ledger.append(
                    zone_id=s.zone_id,
                    campaign_id=s.campaign_id,
                    provider=opt.network.provider,
                    reason=s.reason,
                    provider_campaign_id=resolution.provider_id,
                )
                entry_id = entry.id
            except Exception as e:  # noqa: BLE001
                logger.error("Ledger append failed for zone %s campaign %s: %s", s.zone_id, s.campaign_id, e)
                ok = False
                message = f"{message} (ledger write failed: {type(e).__name__}: {e})"

        results.append(
            {
                "campaignId": s.campaign_id,
                "zoneId": s.zone_id,
                "ok": ok,
                "dryRun": False,
                "resolution": resolution.to_dict(),
                "kind": outcome.kind,
                "status": outcome.status,
                "message": message,
                "entryId": entry_id,
            }
        )

    paused = sum(1 for r in results if r["ok"] and not r["dryRun"])
    logger.info(
        "%s %d zones (%d paused) by %s",
        "DRY RUN" if dry_run else "APPLY",
        len(suggestions),
        paused,
        actor,
    )
    return {
        "ok": True,
        "dryRun": dry_run,
        "pausedCount": len(suggestions) if dry_run else paused,
        "failedCount": 0 if dry_run else len(results) - paused,
        "results": results,
    }


async def revert_entries(opt: Optimizer, entry_ids: list[str]) -> dict[str, Any]:
    ids = [str(i).strip() for i in entry_ids if str(i).strip()]
    if not ids:
        raise ApplyError("no entry ids given")
    results = []
    for entry_id in ids:
        try:
            res = await opt.ledger.revert(entry_id)
            results.append(res.to_dict())
        except Exception as e:  # noqa: BLE001
            logger.error("Revert of %s failed: %s", entry_id, e)
            results.append({"id": entry_id, "ok": False, "error": f"{type(e).__name__}: {e}"})
    return {"ok": True, "results": results}


def debug_responses(repo: Repo, campaign_id: str) -> dict[str, Any]:
    key = DEBUG_RESPONSES_KEY.format(campaignId=campaign_id)
    raw = repo.get_meta(key)
    value = None
    if raw:
        try:
            value = json.loads(raw)
        except ValueError:
            value = raw
    return {"ok": True, "key": key, "value": value}


async def probe_blacklist(opt: Optimizer, provider_campaign_id: str) -> dict[str, Any]:
    """Raw look at the read endpoint, for operators tuning path/env overrides."""
    if not opt.network.has_token():
        return {"ok": False, "error": "missing_token"}
    resp = await opt.network.get_blacklist(provider_campaign_id)
    return {
        "ok": True,
        "url": resp.url,
        "status": resp.status,
        "snippet": truncate(resp.text, PROBE_SNIPPET_CHARS) if resp.text else resp.error,
        "parsed": resp.json(),
    }


async def provider_blacklist(
    opt: Optimizer,
    *,
    internal_id: str | None = None,
    provider_id: str | None = None,
) -> dict[str, Any]:
    if provider_id:
        pid, source = provider_id, "direct"
    elif internal_id:
        resolution = await opt.resolver.resolve(internal_id)
        pid, source = resolution.provider_id, resolution.source
    else:
        raise ApplyError("missing_campaign")
    full = await fetch_provider_zones(opt.network, pid, limit=None)
    if not full.ok:
        return {"ok": False, "providerCampaignId": pid, "status": full.status, "error": full.error}
    zones = full.zones or []
    return {
        "ok": True,
        "providerCampaignId": pid,
        "resolution": source,
        "total": len(zones),
        "items": zones[:MAX_MINED_IDS],
    }


async def list_provider_campaigns(opt: Optimizer, query: str = "") -> dict[str, Any]:
    if not opt.network.has_token():
        return {"ok": False, "error": "missing_token"}
    resp = await opt.network.search_campaigns(query)
    if not resp.ok:
        return {"ok": False, "error": f"provider_{resp.status}", "message": truncate(resp.text or resp.error, 400)}
    return {"ok": True, "items": campaign_items(resp.json())}
