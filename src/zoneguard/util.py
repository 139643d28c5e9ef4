from __future__ import annotations

import json
import secrets
from datetime import datetime, timezone
from typing import Any


def now_utc_iso() -> str:
    return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()


def new_id(prefix: str) -> str:
    # URL-safe, reasonably short, no external deps
    return f"{prefix}_{secrets.token_urlsafe(10)}"


def truncate(text: str | None, limit: int = 500) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=True, indent=2)
