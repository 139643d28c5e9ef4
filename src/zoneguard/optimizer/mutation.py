from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from zoneguard.config import Settings
from zoneguard.network.base import AdNetwork, NetworkResponse
from zoneguard.util import truncate


logger = logging.getLogger(__name__)

PARTIAL_UPDATE_METHODS = ("PATCH", "PUT")

DEFAULT_ADD_PATHS = (
    "/v5/adv/campaigns/{campaignId}/targeting/exclude/zone",
    "/v5/adv/campaigns/{campaignId}/targeting/exclude/zones",
    # legacy route, still answered by older accounts
    "/v5/adv/campaigns/{campaignId}/zones/blacklist",
)

KIND_OK = "ok"
KIND_EXHAUSTED = "exhausted"
KIND_TIMEOUT = "timeout"
KIND_NOT_CONFIGURED = "not_configured"

BODY_SNIPPET_CHARS = 500


@dataclass(frozen=True)
class Attempt:
    method: str
    url: str
    payload: Any
    status: int | None
    body: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "payload": self.payload,
            "status": self.status,
            "body": self.body,
        }


@dataclass
class MutationResult:
    success: bool
    message: str
    kind: str
    status: int | None = None
    method: str | None = None
    url: str | None = None
    payload: Any = None
    attempts: list[Attempt] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "kind": self.kind,
            "status": self.status,
            "method": self.method,
            "url": self.url,
            "payload": self.payload,
            "attempts": [a.to_dict() for a in self.attempts],
        }


def _dedupe(items: list[Any]) -> list[Any]:
    out: list[Any] = []
    seen: set[str] = set()
    for it in items:
        key = json.dumps(it, sort_keys=True, ensure_ascii=True)
        if key in seen:
            continue
        seen.add(key)
        out.append(it)
    return out


def _substitute(node: Any, values: dict[str, str]) -> Any:
    if isinstance(node, dict):
        return {_substitute(k, values): _substitute(v, values) for k, v in node.items()}
    if isinstance(node, list):
        return [_substitute(v, values) for v in node]
    if isinstance(node, str):
        for placeholder, value in values.items():
            if node == placeholder:
                return value
        for placeholder, value in values.items():
            node = node.replace(placeholder, value)
        return node
    return node


def method_candidates(preferred: str | None) -> list[str]:
    first = (preferred or "").strip().upper() or PARTIAL_UPDATE_METHODS[0]
    return _dedupe([first, *PARTIAL_UPDATE_METHODS])


def path_candidates(override: str | None) -> list[str]:
    paths = [override.strip()] if override and override.strip() else []
    return _dedupe([*paths, *DEFAULT_ADD_PATHS])


def payload_candidates(
    zone_id: str,
    campaign_id: str,
    *,
    payload_key: str = "zone_ids",
    template: str | None = None,
) -> list[Any]:
    """Body shapes in the order they are tried."""
    out: list[Any] = []
    if template:
        try:
            parsed = json.loads(template)
        except ValueError as e:
            logger.warning("Ignoring invalid blacklist payload template: %s", e)
        else:
            out.append(_substitute(parsed, {"{zoneId}": zone_id, "{campaignId}": campaign_id}))
    key = (payload_key or "").strip() or "zone_ids"
    out.extend(
        [
            {key: [zone_id]},
            {key: zone_id},
            {"zone": [zone_id]},
            {"zones": [zone_id]},
            {"exclude": {"zone": [zone_id]}},
            {"targeting": {"exclude": {"zone": [zone_id]}}},
        ]
    )
    return _dedupe(out)


def _is_empty_data(resp: NetworkResponse) -> bool:
    return resp.status == 400 and "empty data" in (resp.text or "").lower()


class MutationExecutor:
    """
    Push "exclude this zone" to the provider.

    The write endpoint is undocumented and has moved between API revisions,
    so a bounded matrix of method x path x payload is probed in order, and
    the HTTP status decides how far to skip:

    - 2xx: done, nothing else is sent.
    - 405: this method is wrong everywhere, next method.
    - 404: this path is wrong for this method, next path.
    - 400 with "empty data": right endpoint, wrong body, next payload.
    - anything else (incl. transport errors): next path.

    Attempts run one at a time; an early success must stop the rest.
    """

    def __init__(self, settings: Settings, network: AdNetwork):
        self.settings = settings
        self.network = network

    async def blacklist_zone(self, provider_campaign_id: str, zone_id: str) -> MutationResult:
        campaign_id = str(provider_campaign_id).strip()
        zone = str(zone_id).strip()
        if not self.network.has_token():
            return MutationResult(
                success=False,
                message="Provider API token is not configured; nothing was sent.",
                kind=KIND_NOT_CONFIGURED,
            )

        attempts: list[Attempt] = []
        deadline = float(self.settings.mutation_deadline_sec)
        try:
            if deadline > 0:
                result = await asyncio.wait_for(self._probe(campaign_id, zone, attempts), timeout=deadline)
            else:
                result = await self._probe(campaign_id, zone, attempts)
        except asyncio.TimeoutError:
            last = attempts[-1] if attempts else None
            logger.warning(
                "Blacklist zone %s on campaign %s timed out after %.1fs (%d attempts)",
                zone,
                campaign_id,
                deadline,
                len(attempts),
            )
            return MutationResult(
                success=False,
                message=f"Timed out after {deadline:g}s and {len(attempts)} attempts",
                kind=KIND_TIMEOUT,
                status=last.status if last else None,
                method=last.method if last else None,
                url=last.url if last else None,
                payload=last.payload if last else None,
                attempts=attempts,
            )
        return result

    async def _probe(self, campaign_id: str, zone_id: str, attempts: list[Attempt]) -> MutationResult:
        methods = method_candidates(self.settings.blacklist_method)
        paths = path_candidates(self.settings.add_blacklist_path)
        payloads = payload_candidates(
            zone_id,
            campaign_id,
            payload_key=self.settings.payload_key,
            template=self.settings.payload_template,
        )

        for method in methods:
            method_rejected = False
            for path in paths:
                url = self.network.build_url(path, campaign_id)
                for payload in payloads:
                    resp = await self.network.send(method, url, payload=payload)
                    body = truncate(resp.text or resp.error, BODY_SNIPPET_CHARS)
                    attempts.append(Attempt(method=method, url=url, payload=payload, status=resp.status, body=body))

                    if resp.ok:
                        logger.info(
                            "Blacklisted zone %s on campaign %s via %s %s (attempt %d)",
                            zone_id,
                            campaign_id,
                            method,
                            url,
                            len(attempts),
                        )
                        return MutationResult(
                            success=True,
                            message=f"Zone {zone_id} excluded via {method} {url}",
                            kind=KIND_OK,
                            status=resp.status,
                            method=method,
                            url=url,
                            payload=payload,
                            attempts=attempts,
                        )
                    if resp.status == 405:
                        method_rejected = True
                        break
                    if resp.status == 404:
                        break
                    if _is_empty_data(resp):
                        continue
                    break
                if method_rejected:
                    break

        last = attempts[-1] if attempts else None
        status = last.status if last else None
        logger.warning(
            "Blacklist zone %s on campaign %s failed after %d attempts (last status %s)",
            zone_id,
            campaign_id,
            len(attempts),
            status,
        )
        return MutationResult(
            success=False,
            message=f"All {len(attempts)} attempts failed; last status {status}: {last.body if last else ''}",
            kind=KIND_EXHAUSTED,
            status=status,
            method=last.method if last else None,
            url=last.url if last else None,
            payload=last.payload if last else None,
            attempts=attempts,
        )
