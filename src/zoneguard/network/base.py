from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class NetworkResponse:
    """One HTTP exchange with the provider. `status` is None when the request never completed."""

    url: str
    status: int | None
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300

    def json(self) -> Any:
        """Parsed body or None (empty or invalid JSON)."""
        if not self.text:
            return None
        try:
            return json.loads(self.text)
        except ValueError:
            return None


class AdNetwork(Protocol):
    provider: str

    def has_token(self) -> bool:
        """True when the client has credentials to talk to the provider."""

    def build_url(self, path_template: str, campaign_id: str) -> str:
        """Absolute URL for a campaign-scoped path template."""

    async def send(
        self,
        method: str,
        url: str,
        *,
        payload: Any = None,
        params: dict[str, Any] | None = None,
    ) -> NetworkResponse:
        """Perform one request. Must never raise on transport errors."""

    async def get_blacklist(self, campaign_id: str) -> NetworkResponse:
        """Read the provider's current zone exclusion list for a campaign."""

    async def search_campaigns(self, query: str) -> NetworkResponse:
        """Campaign listing filtered by free text."""

    async def remove_zone(self, campaign_id: str, zone_id: str) -> NetworkResponse:
        """Compensating call: take one zone back out of the exclusion list."""
