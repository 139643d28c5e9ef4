from __future__ import annotations

import re
from typing import Any, Iterator


# Keys that usually carry a zone identifier in provider payloads.
ZONE_ID_KEYS = (
    "zone_id",
    "zoneId",
    "publisher_zone_id",
    "publisherZoneId",
    "placement_id",
    "placementId",
    "id",
    "zone",
    "value",
    "key",
)

MAX_MINED_IDS = 100

_NON_DIGITS = re.compile(r"\D+", re.ASCII)


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (int, str)):
        return str(value)
    return None


def normalize_id(value: Any) -> str | None:
    """
    Canonical form used for every zone-id comparison.

    Digits only when the value has any ("Z-42" -> "42"), otherwise the trimmed
    text. Returns None for values that cannot be an identifier.
    """
    text = _as_text(value)
    if text is None:
        return None
    digits = _NON_DIGITS.sub("", text)
    if digits:
        return digits
    return text.strip() or None


def _candidates(node: Any) -> Iterator[Any]:
    # Iterative depth-first walk; parsed JSON is a finite tree.
    stack: list[Any] = [node]
    while stack:
        cur = stack.pop()
        if isinstance(cur, dict):
            for key in ZONE_ID_KEYS:
                if key in cur and not isinstance(cur[key], (dict, list)):
                    yield cur[key]
            stack.extend(reversed(list(cur.values())))
        elif isinstance(cur, list):
            stack.extend(reversed(cur))
        else:
            yield cur


def mine_zone_ids(payload: Any, *, limit: int | None = MAX_MINED_IDS) -> list[str]:
    """
    Harvest zone-id candidates from an arbitrary JSON document.

    The read endpoint's envelope differs between accounts and API revisions,
    so nothing here depends on its shape: every scalar leaf and every value of
    a likely-identifier key is a candidate. The result keeps first-seen order,
    has no duplicates and holds at most `limit` ids (None for no cap).
    Callers filter noise by exact comparison against normalize_id().
    """
    if limit is not None and limit <= 0:
        return []
    seen: dict[str, None] = {}
    for raw in _candidates(payload):
        norm = normalize_id(raw)
        if norm is None or norm in seen:
            continue
        seen[norm] = None
        if limit is not None and len(seen) >= limit:
            break
    return list(seen)
