from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from zoneguard.network.base import AdNetwork
from zoneguard.network.propeller import campaign_items
from zoneguard.repo import Repo


logger = logging.getLogger(__name__)

# Provider campaign ids are long numeric tokens, often embedded in display names.
_EMBEDDED_ID = re.compile(r"\d{6,}", re.ASCII)

SOURCE_DIRECT = "direct"
SOURCE_CONFIGURED = "configured"
SOURCE_CONFIGURED_NAME = "configured_name"
SOURCE_HEURISTIC = "heuristic"
SOURCE_LIVE = "live"
SOURCE_UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class Resolution:
    provider_id: str
    source: str

    @property
    def is_numeric(self) -> bool:
        return self.provider_id.isdigit()

    def to_dict(self) -> dict[str, str]:
        return {"providerId": self.provider_id, "source": self.source}


def _is_digits(value: str) -> bool:
    return bool(value) and value.isascii() and value.isdigit()


class CampaignResolver:
    """
    Map an internal campaign reference to the provider's numeric campaign id.

    First match wins: already numeric, stored mapping, stored mapping by
    display name (case-insensitive), digit run embedded in the display name,
    optional live search, then the input unchanged. `source` on the result
    says which tier answered; `heuristic` and `live` are guesses and must not
    be treated as configured ids.
    """

    def __init__(self, repo: Repo, network: AdNetwork | None = None, *, live_lookup: bool = False):
        self.repo = repo
        self.network = network
        self.live_lookup = live_lookup

    def _mapped(self, key: str, *, casefold: bool) -> str | None:
        try:
            if casefold:
                return self.repo.find_mapping_casefold(key)
            return self.repo.get_mapping(key)
        except Exception as e:  # noqa: BLE001
            logger.warning("Campaign mapping lookup failed for %r: %s", key, e)
            return None

    async def _live(self, display_name: str) -> str | None:
        if self.network is None or not self.network.has_token():
            return None
        try:
            resp = await self.network.search_campaigns(display_name)
        except Exception as e:  # noqa: BLE001
            logger.warning("Live campaign search failed for %r: %s", display_name, e)
            return None
        if not resp.ok:
            logger.warning("Live campaign search for %r returned %s", display_name, resp.status)
            return None
        items = campaign_items(resp.json())
        if not items or not items[0]["id"]:
            return None
        return items[0]["id"]

    async def resolve(self, internal_id: str, display_name: str | None = None) -> Resolution:
        raw = "" if internal_id is None else str(internal_id)
        internal_id = raw.strip()
        name = (display_name or "").strip()

        if _is_digits(internal_id):
            return Resolution(internal_id, SOURCE_DIRECT)

        if internal_id:
            hit = self._mapped(internal_id, casefold=False)
            if hit:
                return Resolution(hit, SOURCE_CONFIGURED)

        if name:
            hit = self._mapped(name, casefold=True)
            if hit:
                return Resolution(hit, SOURCE_CONFIGURED_NAME)

            m = _EMBEDDED_ID.search(name)
            if m:
                return Resolution(m.group(0), SOURCE_HEURISTIC)

            if self.live_lookup:
                hit = await self._live(name)
                if hit:
                    return Resolution(hit, SOURCE_LIVE)

        logger.info("Could not resolve provider campaign id for %r (name=%r)", internal_id, name or None)
        return Resolution(raw, SOURCE_UNRESOLVED)

    async def resolve_provider_campaign_id(self, internal_id: str, name: str | None = None) -> str:
        return (await self.resolve(internal_id, name)).provider_id

    # -- mapping management -------------------------------------------------

    def set_mapping(self, internal_id: str, provider_id: str, display_name: str | None = None) -> dict[str, str]:
        key = str(internal_id or "").strip()
        pid = str(provider_id or "").strip()
        if not key:
            raise ValueError("missing internal campaign id")
        if not _is_digits(pid):
            raise ValueError(f"provider campaign id must be digits: {provider_id!r}")
        self.repo.set_mapping(key, pid)
        name = (display_name or "").strip()
        if name and name != key:
            self.repo.set_mapping(name, pid)
        return self.repo.list_mappings()

    def delete_mapping(self, internal_id: str) -> dict[str, str]:
        key = str(internal_id or "").strip()
        if not key:
            raise ValueError("missing internal campaign id")
        self.repo.delete_mapping(key)
        return self.repo.list_mappings()

    def list_mappings(self) -> dict[str, str]:
        return self.repo.list_mappings()
