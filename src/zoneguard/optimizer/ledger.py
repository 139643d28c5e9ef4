from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from zoneguard.network.base import AdNetwork
from zoneguard.optimizer.resolver import CampaignResolver
from zoneguard.repo import Repo
from zoneguard.util import new_id, now_utc_iso, truncate


logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "propellerads"


@dataclass(frozen=True)
class BlacklistEntry:
    id: str
    zone_id: str
    campaign_id: str
    provider: str
    reason: str | None
    timestamp: str
    reverted: bool = False
    reverted_at: str | None = None
    verified: bool = False
    verified_at: str | None = None
    provider_campaign_id: str | None = None

    @staticmethod
    def from_row(row: dict[str, Any]) -> "BlacklistEntry":
        return BlacklistEntry(
            id=str(row["id"]),
            zone_id=str(row["zone_id"]),
            campaign_id=str(row["campaign_id"]),
            provider=str(row["provider"]),
            reason=row.get("reason"),
            timestamp=str(row["timestamp"]),
            reverted=bool(row.get("reverted")),
            reverted_at=row.get("reverted_at"),
            verified=bool(row.get("verified")),
            verified_at=row.get("verified_at"),
            provider_campaign_id=row.get("provider_campaign_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "zoneId": self.zone_id,
            "campaignId": self.campaign_id,
            "provider": self.provider,
            "reason": self.reason,
            "timestamp": self.timestamp,
            "reverted": self.reverted,
            "revertedAt": self.reverted_at,
            "verified": self.verified,
            "verifiedAt": self.verified_at,
            "providerCampaignId": self.provider_campaign_id,
        }


@dataclass(frozen=True)
class RevertResult:
    id: str
    found: bool
    changed: bool
    entry: BlacklistEntry | None
    remote_ok: bool | None = None
    remote_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.found

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ok": self.ok,
            "found": self.found,
            "changed": self.changed,
            "entry": self.entry.to_dict() if self.entry else None,
            "remoteOk": self.remote_ok,
            "remoteMessage": self.remote_message,
        }


class Ledger:
    """
    Durable record of zone blacklist actions.

    One row per entry keyed by id; revert and verify update that row alone,
    so concurrent appends and edits cannot overwrite each other. Entries are
    never deduplicated by content and only disappear through clear_all() or
    the retention cap.
    """

    def __init__(
        self,
        repo: Repo,
        *,
        network: AdNetwork | None = None,
        resolver: CampaignResolver | None = None,
        max_entries: int | None = 1000,
    ):
        self.repo = repo
        self.network = network
        self.resolver = resolver
        self.max_entries = max_entries

    def append(
        self,
        *,
        zone_id: str,
        campaign_id: str,
        provider: str = DEFAULT_PROVIDER,
        reason: str | None = None,
        entry_id: str | None = None,
        timestamp: str | None = None,
        provider_campaign_id: str | None = None,
    ) -> BlacklistEntry:
        zone = str(zone_id or "").strip()
        campaign = str(campaign_id or "").strip()
        if not zone or not campaign:
            raise ValueError("zone_id and campaign_id are required")
        entry = BlacklistEntry(
            id=entry_id or new_id("bl"),
            zone_id=zone,
            campaign_id=campaign,
            provider=provider or DEFAULT_PROVIDER,
            reason=reason or None,
            timestamp=timestamp or now_utc_iso(),
            provider_campaign_id=str(provider_campaign_id or "").strip() or None,
        )
        self.repo.insert_blacklist_entry(
            entry_id=entry.id,
            zone_id=entry.zone_id,
            campaign_id=entry.campaign_id,
            provider=entry.provider,
            reason=entry.reason,
            timestamp=entry.timestamp,
            provider_campaign_id=entry.provider_campaign_id,
            keep_last=self.max_entries,
        )
        return entry

    def get(self, entry_id: str) -> BlacklistEntry | None:
        row = self.repo.get_blacklist_entry(entry_id)
        return BlacklistEntry.from_row(row) if row else None

    def list_all(self) -> list[BlacklistEntry]:
        return [BlacklistEntry.from_row(r) for r in self.repo.list_blacklist_entries()]

    def list_active(self) -> list[BlacklistEntry]:
        return [BlacklistEntry.from_row(r) for r in self.repo.list_blacklist_entries(include_reverted=False)]

    async def revert(self, entry_id: str) -> RevertResult:
        """
        Mark an entry reverted and ask the provider to drop the zone again.

        The local flag flips once; later calls leave reverted_at as it was and
        send nothing. A failed provider call is reported, not raised.
        """
        changed = self.repo.mark_blacklist_reverted(entry_id, now_utc_iso())
        entry = self.get(entry_id)
        if entry is None:
            return RevertResult(id=entry_id, found=False, changed=False, entry=None)
        if not changed:
            return RevertResult(id=entry_id, found=True, changed=False, entry=entry)

        remote_ok, remote_message = await self._remove_remote(entry)
        return RevertResult(
            id=entry_id,
            found=True,
            changed=True,
            entry=entry,
            remote_ok=remote_ok,
            remote_message=remote_message,
        )

    async def _remove_remote(self, entry: BlacklistEntry) -> tuple[bool | None, str]:
        if self.network is None or not self.network.has_token():
            return None, "Provider not configured; local revert only."
        try:
            if entry.provider_campaign_id:
                provider_cid = entry.provider_campaign_id
            elif self.resolver is not None:
                provider_cid = await self.resolver.resolve_provider_campaign_id(entry.campaign_id)
            else:
                provider_cid = entry.campaign_id
            resp = await self.network.remove_zone(provider_cid, entry.zone_id)
        except Exception as e:  # noqa: BLE001
            logger.warning("Remote unblacklist failed for entry %s: %s", entry.id, e)
            return False, f"Provider call failed: {type(e).__name__}: {e}"
        if resp.ok:
            return True, "Zone removed from provider blacklist."
        logger.warning(
            "Remote unblacklist for entry %s returned %s: %s",
            entry.id,
            resp.status,
            truncate(resp.text or resp.error, 200),
        )
        return False, f"Provider error ({resp.status}): {truncate(resp.text or resp.error, 200)}"

    def verify(self, entry_id: str, present: bool) -> BlacklistEntry | None:
        self.repo.set_blacklist_verified({entry_id: bool(present)}, now_utc_iso())
        return self.get(entry_id)

    def verify_many(self, flags: dict[str, bool]) -> int:
        return self.repo.set_blacklist_verified({k: bool(v) for k, v in flags.items()}, now_utc_iso())

    def clear_all(self) -> int:
        removed = self.repo.clear_blacklist_entries()
        logger.info("Cleared %d blacklist ledger entries", removed)
        return removed
