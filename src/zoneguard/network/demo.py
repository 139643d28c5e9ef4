from __future__ import annotations

import json
import re
from typing import Any

import httpx


_CAMPAIGN_PATH = re.compile(r"/campaigns/(?P<cid>[^/]+)(?P<rest>/.*)?$")


class DemoProvider:
    """
    In-process stand-in for the ad network so the optimizer flows can be
    exercised without real API keys.

    Behaves like the provider revision the probe defaults were tuned against:
    only the singular `targeting/exclude/zone` route accepts writes, it wants
    `{"zone": [...]}` and answers anything else with 400 "Empty data".
    """

    def __init__(self, campaigns: list[dict[str, Any]] | None = None):
        self.campaigns: list[dict[str, Any]] = list(campaigns or [])
        self.blacklists: dict[str, list[str]] = {}
        self.requests: list[httpx.Request] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def _json(self, status: int, body: Any) -> httpx.Response:
        return httpx.Response(status, json=body)

    def _body(self, request: httpx.Request) -> Any:
        if not request.content:
            return None
        try:
            return json.loads(request.content)
        except ValueError:
            return None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method.upper()

        if path.rstrip("/").endswith("/campaigns"):
            if method != "GET":
                return self._json(405, {"message": "Method Not Allowed"})
            q = (request.url.params.get("search") or "").lower()
            items = [c for c in self.campaigns if q in str(c.get("name") or "").lower()]
            return self._json(200, {"data": items})

        m = _CAMPAIGN_PATH.search(path)
        if not m or not m.group("cid").isdigit():
            return self._json(404, {"message": "Not Found"})
        cid = m.group("cid")
        rest = m.group("rest") or ""
        zones = self.blacklists.setdefault(cid, [])

        if rest == "/targeting/exclude/zone":
            if method == "GET":
                return self._json(200, {"result": {"zone": [int(z) if z.isdigit() else z for z in zones]}})
            if method not in {"PATCH", "PUT"}:
                return self._json(405, {"message": "Method Not Allowed"})
            body = self._body(request)
            wanted = body.get("zone") if isinstance(body, dict) else None
            if not isinstance(wanted, list) or not wanted:
                return self._json(400, {"errors": {"zone": ["Empty data"]}})
            for z in wanted:
                if str(z) not in zones:
                    zones.append(str(z))
            return self._json(200, {"result": "ok"})

        if rest == "/zones/blacklist" and method == "DELETE":
            body = self._body(request)
            drop: list[Any] = []
            if isinstance(body, dict):
                for v in body.values():
                    if isinstance(v, list):
                        drop.extend(v)
            self.blacklists[cid] = [z for z in zones if z not in {str(d) for d in drop}]
            return self._json(200, {"result": "ok"})

        return self._json(404, {"message": "Not Found"})
