from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import quote

import httpx

from zoneguard.config import Settings
from zoneguard.network.base import NetworkResponse


logger = logging.getLogger(__name__)

_VERSION_IN_BASE = re.compile(r"/v\d+(?:$|/)")
_VERSION_PREFIX = re.compile(r"^/v\d+(?=/)")


def build_provider_url(base_url: str, path_template: str, campaign_id: str = "") -> str:
    """
    Join base URL and a `{campaignId}` path template.

    Operators paste base URLs both with and without the API version segment,
    so a leading `/vN` in the template is dropped when the base already has one.
    """
    base = (base_url or "").strip().rstrip("/")
    path = (path_template or "").strip().replace("{campaignId}", quote(str(campaign_id), safe=""))
    if not path.startswith("/"):
        path = f"/{path}"
    if _VERSION_IN_BASE.search(base) and _VERSION_PREFIX.match(path):
        path = _VERSION_PREFIX.sub("", path, count=1)
    return f"{base}{path}"


class PropellerClient:
    """
    PropellerAds SSP API client.

    The endpoint contract is not stable; callers decide
    what a status code means. Transport errors come back as a NetworkResponse
    with status=None instead of raising.
    """

    provider = "propellerads"

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    def has_token(self) -> bool:
        return bool(self.settings.api_token)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.api_token or ''}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def build_url(self, path_template: str, campaign_id: str = "") -> str:
        return build_provider_url(self.settings.api_base_url, path_template, campaign_id)

    async def send(
        self,
        method: str,
        url: str,
        *,
        payload: Any = None,
        params: dict[str, Any] | None = None,
    ) -> NetworkResponse:
        timeout = float(self.settings.http_timeout_sec)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                r = await client.request(
                    method.upper(),
                    url,
                    headers=self._headers(),
                    json=payload,
                    params=params,
                )
                return NetworkResponse(url=str(r.request.url), status=r.status_code, text=r.text)
        except httpx.HTTPError as e:
            logger.warning("Provider %s %s failed: %s", method.upper(), url, e)
            return NetworkResponse(url=url, status=None, error=f"{type(e).__name__}: {e}")

    async def get_blacklist(self, campaign_id: str) -> NetworkResponse:
        url = self.build_url(self.settings.get_blacklist_path, campaign_id)
        return await self.send("GET", url)

    async def search_campaigns(self, query: str) -> NetworkResponse:
        url = self.build_url(self.settings.list_campaigns_path)
        params = {"search": query} if query else None
        return await self.send("GET", url, params=params)

    async def remove_zone(self, campaign_id: str, zone_id: str) -> NetworkResponse:
        url = self.build_url(self.settings.remove_blacklist_path, campaign_id)
        return await self.send("DELETE", url, payload={self.settings.payload_key: [zone_id]})


def campaign_items(payload: Any) -> list[dict[str, Any]]:
    """Normalize a campaign listing response into [{id, name, status}]."""
    raw: Any = payload
    if isinstance(payload, dict):
        for key in ("data", "items", "campaigns"):
            if isinstance(payload.get(key), list):
                raw = payload[key]
                break
    if not isinstance(raw, list):
        return []
    out: list[dict[str, Any]] = []
    for c in raw:
        if not isinstance(c, dict):
            continue
        cid = c.get("id")
        if cid is None:
            cid = c.get("campaign_id")
        if cid is None:
            cid = c.get("campaignId")
        out.append(
            {
                "id": "" if cid is None else str(cid),
                "name": str(c.get("name") or c.get("title") or "Campaign"),
                "status": c.get("status"),
            }
        )
    return out
