from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from zoneguard.network.base import AdNetwork
from zoneguard.optimizer.ledger import BlacklistEntry, Ledger
from zoneguard.optimizer.miner import mine_zone_ids, normalize_id
from zoneguard.optimizer.resolver import CampaignResolver
from zoneguard.util import truncate


logger = logging.getLogger(__name__)

# provenance for a provider id stored on the ledger entry at mutation time
SOURCE_RECORDED = "recorded"


@dataclass
class ProviderZones:
    provider_campaign_id: str
    zones: list[str] | None
    status: int | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.zones is not None


async def fetch_provider_zones(
    network: AdNetwork,
    provider_campaign_id: str,
    *,
    limit: int | None = None,
) -> ProviderZones:
    """Read and mine one campaign's exclusion list. Never raises."""
    if not network.has_token():
        return ProviderZones(provider_campaign_id, None, None, "missing_token")
    try:
        resp = await network.get_blacklist(provider_campaign_id)
    except Exception as e:  # noqa: BLE001
        return ProviderZones(provider_campaign_id, None, None, f"{type(e).__name__}: {e}")
    if not resp.ok:
        return ProviderZones(
            provider_campaign_id,
            None,
            resp.status,
            truncate(resp.text or resp.error, 200) or "provider_error",
        )
    payload = resp.json()
    if payload is None:
        return ProviderZones(provider_campaign_id, None, resp.status, "invalid_json")
    return ProviderZones(provider_campaign_id, mine_zone_ids(payload, limit=limit), resp.status)


@dataclass
class CampaignCheck:
    campaign_id: str
    provider_campaign_id: str
    source: str
    status: int | None
    provider_zones: int
    entries: int
    verified_true: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaignId": self.campaign_id,
            "providerCampaignId": self.provider_campaign_id,
            "resolution": self.source,
            "status": self.status,
            "providerZones": self.provider_zones,
            "entries": self.entries,
            "verifiedTrue": self.verified_true,
            "error": self.error,
        }


@dataclass
class ReconcileReport:
    campaigns: list[CampaignCheck] = field(default_factory=list)
    flags: dict[str, bool] = field(default_factory=dict)

    @property
    def campaigns_failed(self) -> int:
        return sum(1 for c in self.campaigns if c.error)

    @property
    def campaigns_processed(self) -> int:
        return len(self.campaigns) - self.campaigns_failed

    @property
    def verified_true(self) -> int:
        return sum(1 for v in self.flags.values() if v)

    @property
    def verified_false(self) -> int:
        return sum(1 for v in self.flags.values() if not v)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "campaigns": {
                "processed": self.campaigns_processed,
                "failed": self.campaigns_failed,
                "total": len(self.campaigns),
            },
            "entries": {
                "checked": len(self.flags),
                "verifiedTrue": self.verified_true,
                "verifiedFalse": self.verified_false,
            },
            "flags": dict(self.flags),
            "details": [c.to_dict() for c in self.campaigns],
        }


class Reconciler:
    """
    Compare the ledger's active entries with what the provider reports.

    Per campaign: resolve, read the exclusion list, mine it, then set
    verified = zone in mined set. A campaign whose read fails gets all its
    entries marked unverified; the others carry on.
    """

    def __init__(self, ledger: Ledger, resolver: CampaignResolver, network: AdNetwork):
        self.ledger = ledger
        self.resolver = resolver
        self.network = network

    async def reconcile(self, entries: Iterable[BlacklistEntry] | None = None) -> ReconcileReport:
        targets = self.ledger.list_active() if entries is None else [e for e in entries if not e.reverted]

        # entries recorded with the provider id they were sent to are checked
        # against that id; older ones are resolved again
        by_campaign: dict[tuple[str, str | None], list[BlacklistEntry]] = {}
        for e in targets:
            by_campaign.setdefault((e.campaign_id, e.provider_campaign_id), []).append(e)

        report = ReconcileReport()
        for (campaign_id, recorded), bucket in by_campaign.items():
            check = await self._check_campaign(campaign_id, bucket, report.flags, recorded=recorded)
            report.campaigns.append(check)

        self.ledger.verify_many(report.flags)
        logger.info(
            "Reconciled %d entries across %d campaigns (%d verified, %d campaigns failed)",
            len(report.flags),
            len(report.campaigns),
            report.verified_true,
            report.campaigns_failed,
        )
        return report

    async def _check_campaign(
        self,
        campaign_id: str,
        bucket: list[BlacklistEntry],
        flags: dict[str, bool],
        *,
        recorded: str | None = None,
    ) -> CampaignCheck:
        provider_cid = campaign_id
        source = "unresolved"
        try:
            if recorded:
                provider_cid, source = recorded, SOURCE_RECORDED
            else:
                resolution = await self.resolver.resolve(campaign_id)
                provider_cid, source = resolution.provider_id, resolution.source
            fetched = await fetch_provider_zones(self.network, provider_cid)
        except Exception as e:  # noqa: BLE001
            logger.warning("Reconcile of campaign %s failed: %s", campaign_id, e)
            fetched = ProviderZones(provider_cid, None, None, f"{type(e).__name__}: {e}")

        mined = set(fetched.zones or [])
        verified_true = 0
        for entry in bucket:
            present = normalize_id(entry.zone_id) in mined
            flags[entry.id] = present
            verified_true += int(present)

        if not fetched.ok:
            logger.warning(
                "Provider blacklist read failed for campaign %s (%s): status=%s error=%s",
                campaign_id,
                provider_cid,
                fetched.status,
                fetched.error,
            )
        return CampaignCheck(
            campaign_id=campaign_id,
            provider_campaign_id=provider_cid,
            source=source,
            status=fetched.status,
            provider_zones=len(mined),
            entries=len(bucket),
            verified_true=verified_true,
            error=fetched.error,
        )

    async def untracked_zones(self, campaign_ids: Iterable[str] | None = None) -> dict[str, Any]:
        """
        Report zones the provider excludes that have no active ledger entry.

        Read-only: the ledger only ever records this system's own mutations.
        """
        active = self.ledger.list_active()
        if campaign_ids is None:
            ids = list(dict.fromkeys(e.campaign_id for e in self.ledger.list_all()))
        else:
            ids = list(dict.fromkeys(str(c).strip() for c in campaign_ids if str(c).strip()))

        tracked: dict[str, set[str]] = {}
        recorded: dict[str, str] = {}
        for e in active:
            if e.provider_campaign_id:
                recorded.setdefault(e.campaign_id, e.provider_campaign_id)
            norm = normalize_id(e.zone_id)
            if norm:
                tracked.setdefault(e.campaign_id, set()).add(norm)

        campaigns: list[dict[str, Any]] = []
        total_untracked = 0
        for cid in ids:
            if cid in recorded:
                pid, source = recorded[cid], SOURCE_RECORDED
            else:
                resolution = await self.resolver.resolve(cid)
                pid, source = resolution.provider_id, resolution.source
            fetched = await fetch_provider_zones(self.network, pid)
            known = tracked.get(cid, set()) | tracked.get(pid, set())
            untracked = [z for z in (fetched.zones or []) if z not in known]
            total_untracked += len(untracked)
            campaigns.append(
                {
                    "campaignId": cid,
                    "providerCampaignId": pid,
                    "resolution": source,
                    "status": fetched.status,
                    "fetched": len(fetched.zones) if fetched.zones is not None else None,
                    "untracked": untracked,
                    "error": fetched.error,
                }
            )
        return {"ok": True, "campaigns": len(ids), "untracked": total_untracked, "diagnostics": campaigns}
