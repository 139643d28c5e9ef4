"""Live API check: blacklist one zone, confirm it on the read endpoint, then revert."""
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[1] / ".env")

from zoneguard.config import Settings
from zoneguard.executor import Optimizer, ZonePause, apply_zone_pauses, revert_entries
from zoneguard.optimizer.reconciler import fetch_provider_zones


async def main(campaign_id: str, zone_id: str) -> int:
    opt = Optimizer.build(Settings.load())
    if not opt.network.has_token():
        print("PROPELLER_API_TOKEN is not set")
        return 2

    # 1) blacklist
    res = await apply_zone_pauses(opt, [ZonePause(campaign_id=campaign_id, zone_id=zone_id)], actor="live-script")
    print(f"Apply: {json.dumps(res, ensure_ascii=False, indent=2)}")
    item = res["results"][0]
    if not item["ok"]:
        return 1

    # 2) read back
    zones = await fetch_provider_zones(opt.network, item["resolution"]["providerId"], limit=None)
    print(f"Provider lists zone: {zone_id in (zones.zones or [])} (status={zones.status}, error={zones.error})")

    # 3) revert
    rev = await revert_entries(opt, [item["entryId"]])
    print(f"Reverted: {json.dumps(rev, ensure_ascii=False, indent=2)}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("usage: live_blacklist_roundtrip.py <campaign_id> <zone_id>")
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2])))
