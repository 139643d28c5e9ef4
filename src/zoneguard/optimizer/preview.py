from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any


def _num(v: Any) -> float:
    try:
        n = float(v)
    except (TypeError, ValueError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _median(values: list[float]) -> float:
    arr = sorted(values)
    n = len(arr)
    if not n:
        return 0.0
    mid = n // 2
    return (arr[mid - 1] + arr[mid]) / 2 if n % 2 == 0 else arr[mid]


def _percentile(values: list[float], p: float) -> float:
    # linear interpolation between closest ranks
    arr = sorted(values)
    if not arr:
        return 0.0
    rank = (p / 100.0) * (len(arr) - 1)
    lo, hi = math.floor(rank), math.ceil(rank)
    if lo == hi:
        return arr[lo]
    w = rank - lo
    return arr[lo] * (1 - w) + arr[hi] * w


def _js_round(x: float) -> int:
    return int(math.floor(x + 0.5))


def _rule(name: str, ts: str | None, condition: str, thresholds: dict[str, Any], applies: str, why: str) -> dict[str, Any]:
    return {
        "name": name,
        "scope": "zone",
        "trafficSource": ts,
        "country": None,
        "condition": condition,
        "suggestedThresholds": thresholds,
        "action": "pause_zone",
        "appliesTo": applies,
        "rationale": why,
    }


def _empty(meta: dict[str, Any], notes: list[str], campaigns: int) -> dict[str, Any]:
    return {
        "rules": [],
        "zonesToPauseNow": [],
        "meta": {**meta, "totalCampaigns": campaigns, "totalZones": 0, "totalZonesFlagged": 0, "notes": notes},
    }


def build_preview(dashboard: dict[str, Any], traffic_source_filter: str | None = None) -> dict[str, Any]:
    """
    Suggest zones to pause from a dashboard snapshot.

    Thresholds adapt to the traffic in the snapshot (medians and p75 of zone
    visits and cost) so the same rules work for small and large accounts.
    The returned `zonesToPauseNow` is the input of the apply flow.
    """
    if not isinstance(dashboard, dict) or not isinstance(dashboard.get("campaigns"), list):
        raise ValueError("Missing 'dashboard' field with campaigns.")

    ts = traffic_source_filter if traffic_source_filter and traffic_source_filter != "all" else None
    meta: dict[str, Any] = {
        "generatedAt": datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat(),
        "dateRange": dashboard.get("dateRange") or "custom",
        "from": dashboard.get("from"),
        "to": dashboard.get("to"),
        "trafficSourceFilter": ts,
    }

    campaigns = [
        c for c in dashboard["campaigns"] if isinstance(c, dict) and (ts is None or c.get("trafficSource") == ts)
    ]
    if not campaigns:
        return _empty(
            meta,
            [
                "No campaigns found for this traffic source filter.",
                "Try switching the traffic source in the dashboard and regenerate preview.",
            ],
            0,
        )

    zones: list[dict[str, Any]] = []
    for c in campaigns:
        for z in c.get("zones") or []:
            if not isinstance(z, dict):
                continue
            zones.append(
                {
                    "id": str(z.get("id") if z.get("id") is not None else ""),
                    "visits": _num(z.get("visits")),
                    "conversions": _num(z.get("conversions")),
                    "revenue": _num(z.get("revenue")),
                    "cost": _num(z.get("cost")),
                    "roi": _num(z.get("roi")),
                    "campaignId": str(c.get("id") or ""),
                    "campaignName": str(c.get("name") or ""),
                    "campaignDeposits": _num(c.get("deposits")),
                }
            )
    if not zones:
        return _empty(
            meta,
            [
                "No zone-level data found in the current dashboard.",
                "Make sure your report includes zone/placement breakdown.",
            ],
            len(campaigns),
        )

    visits = [z["visits"] for z in zones]
    costs = [z["cost"] for z in zones]
    med_visits = _median(visits)
    med_cost = _median(costs)
    p75_visits = _percentile(visits, 75)
    p75_cost = _percentile(costs, 75)
    mean_roi = _mean([z["roi"] for z in zones])

    min_visits = max(50, _js_round(med_visits), _js_round(p75_visits * 0.5))
    min_cost = max(5, _js_round(med_cost), _js_round(p75_cost * 0.5))
    high_spend = max(min_cost * 2, p75_cost or min_cost * 2, 10)

    campaign_stats: dict[str, dict[str, float]] = {}
    for c in campaigns:
        cid = str(c.get("id") or "")
        cz = [z for z in zones if z["campaignId"] == cid]
        if cz:
            campaign_stats[cid] = {
                "avgROI": _mean([z["roi"] for z in cz]),
                "medianCost": _median([z["cost"] for z in cz]),
            }

    rules = [
        _rule(
            "High-spend, zero-conversion zones",
            ts,
            "IF zone has >= minVisits visits AND cost >= minCost AND conversions == 0 AND ROI <= maxROI",
            {"minVisits": min_visits, "minCost": high_spend, "maxROI": -100},
            "All zones in the current dashboard view (filtered by traffic source & date range).",
            "These zones spend meaningful budget without producing conversions.",
        ),
        _rule(
            "Terrible-ROI zones (even with conversions)",
            ts,
            "IF zone has >= minVisits visits AND cost >= minCost AND conversions > 0 AND ROI <= maxROI",
            {"minVisits": min_visits, "minCost": min_cost, "maxROI": -150},
            "Zones that technically convert but are heavily unprofitable in the current report.",
            "A few conversions at a very bad CPA still destroy ROI.",
        ),
        _rule(
            "Campaign outlier burn zones",
            ts,
            "IF zone cost >= campaign median zone cost AND ROI is at least 80 points lower than campaign average ROI.",
            {"minVisits": min_visits, "minCost": min_cost, "maxROI": None},
            "Zones that are much worse than siblings in the same campaign.",
            "Detects pockets inside a good campaign that quietly burn budget.",
        ),
        _rule(
            "Deposit-aware non-contributor zones",
            ts,
            "IF campaign has deposits > 0 AND zone cost >= 0.8 * high-spend threshold AND zone conversions == 0.",
            {"minVisits": min_visits, "minCost": _js_round(high_spend * 0.8), "maxROI": -80},
            "Zones inside campaigns that already generated deposits but show no conversions.",
            "Once a campaign proves it converts, non-contributing zones can be trimmed.",
        ),
    ]

    flagged: list[dict[str, Any]] = []
    for z in zones:
        if not z["id"].strip():
            continue
        v, cost, conv, roi = z["visits"], z["cost"], z["conversions"], z["roi"]
        # too little data to judge
        if v < min_visits * 0.5 and cost < min_cost:
            continue

        reasons: list[str] = []
        if v >= min_visits and cost >= high_spend and conv == 0 and roi <= -100:
            reasons.append(f"High spend with no conversions: visits={v:g}, cost={cost:.2f}, ROI={roi:.1f}%.")
        if v >= min_visits and cost >= min_cost and conv > 0 and roi <= -150:
            reasons.append(
                f"Extremely bad ROI despite conversions: cost={cost:.2f}, conversions={conv:g}, ROI={roi:.1f}%."
            )
        stats = campaign_stats.get(z["campaignId"])
        if stats and cost >= stats["medianCost"] and roi <= stats["avgROI"] - 80 and v >= min_visits * 0.8:
            reasons.append(
                f"Outlier vs campaign peers: zone ROI={roi:.1f}% vs campaign avg ROI={stats['avgROI']:.1f}%, "
                "cost>=median zone cost."
            )
        if z["campaignDeposits"] > 0 and cost >= high_spend * 0.8 and conv == 0:
            reasons.append(
                f"Campaign has deposits ({z['campaignDeposits']:g}) but this zone has 0 conversions "
                f"and significant cost={cost:.2f}."
            )
        if roi <= mean_roi - 100 and cost >= min_cost and v >= min_visits:
            reasons.append(f"Global underperformer: ROI={roi:.1f}% vs global mean ROI={mean_roi:.1f}%.")
        if not reasons:
            continue

        flagged.append(
            {
                "campaignId": z["campaignId"],
                "campaignName": z["campaignName"],
                "zoneId": z["id"],
                "reason": " ".join(reasons),
                "metrics": {"visits": v, "conversions": conv, "revenue": z["revenue"], "cost": cost, "roi": roi},
            }
        )

    # worst offenders first: highest cost, then most negative ROI
    flagged.sort(key=lambda f: (-round(f["metrics"]["cost"], 2), f["metrics"]["roi"]))

    notes = [
        f"Dynamic thresholds: minVisitsForDecision={min_visits}, minCostForDecision={min_cost}, "
        f"highSpendNoConvCost={high_spend:g}.",
        f"Global stats: medianVisits={med_visits:.1f}, medianCost={med_cost:.2f}, meanROI={mean_roi:.1f}%.",
    ]
    if not flagged:
        notes.append("No zones met the strict criteria. Data might still be early or reasonably balanced.")

    return {
        "rules": rules,
        "zonesToPauseNow": flagged,
        "meta": {
            **meta,
            "totalCampaigns": len(campaigns),
            "totalZones": len(zones),
            "totalZonesFlagged": len(flagged),
            "notes": notes,
        },
    }
