from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

from dotenv import load_dotenv


DEFAULT_API_BASE_URL = "https://ssp-api.propellerads.com"
DEFAULT_GET_BLACKLIST_PATH = "/v5/adv/campaigns/{campaignId}/targeting/exclude/zone"
DEFAULT_LIST_CAMPAIGNS_PATH = "/v5/adv/campaigns"
DEFAULT_REMOVE_BLACKLIST_PATH = "/v5/adv/campaigns/{campaignId}/zones/blacklist"


def _truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _optional(v: str | None) -> str | None:
    v = (v or "").strip()
    return v or None


def _float(v: str | None, default: float) -> float:
    try:
        return float(v) if v is not None and v.strip() else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    db_path: Path
    web_host: str = "127.0.0.1"
    web_port: int = 8020
    demo_mode: bool = False
    log_level: str = "INFO"
    ledger_max_entries: int = 1000

    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: str | None = None
    get_blacklist_path: str = DEFAULT_GET_BLACKLIST_PATH
    list_campaigns_path: str = DEFAULT_LIST_CAMPAIGNS_PATH
    add_blacklist_path: str | None = None
    remove_blacklist_path: str = DEFAULT_REMOVE_BLACKLIST_PATH
    blacklist_method: str = "PATCH"
    payload_key: str = "zone_ids"
    payload_template: str | None = None
    http_timeout_sec: float = 20.0
    mutation_deadline_sec: float = 60.0
    live_resolve: bool = False

    @staticmethod
    def load() -> "Settings":
        load_dotenv()

        db_path = Path(os.getenv("ZG_DB_PATH", "./data/zoneguard.sqlite3"))
        web_host = os.getenv("ZG_WEB_HOST", "127.0.0.1")
        web_port = int(os.getenv("ZG_WEB_PORT", "8020"))
        demo_mode = _truthy(os.getenv("ZG_DEMO_MODE", "0"))
        log_level = os.getenv("ZG_LOG_LEVEL", "INFO").strip().upper() or "INFO"
        ledger_max_entries = int(os.getenv("ZG_LEDGER_MAX_ENTRIES", "1000"))

        method = (os.getenv("PROPELLER_BLACKLIST_METHOD") or "PATCH").strip().upper() or "PATCH"

        return Settings(
            db_path=db_path,
            web_host=web_host,
            web_port=web_port,
            demo_mode=demo_mode,
            log_level=log_level,
            ledger_max_entries=ledger_max_entries,
            api_base_url=_optional(os.getenv("PROPELLER_API_BASE_URL")) or DEFAULT_API_BASE_URL,
            api_token=_optional(os.getenv("PROPELLER_API_TOKEN")),
            get_blacklist_path=_optional(os.getenv("PROPELLER_GET_BLACKLIST_PATH")) or DEFAULT_GET_BLACKLIST_PATH,
            list_campaigns_path=_optional(os.getenv("PROPELLER_LIST_CAMPAIGNS_PATH")) or DEFAULT_LIST_CAMPAIGNS_PATH,
            add_blacklist_path=_optional(os.getenv("PROPELLER_ADD_BLACKLIST_PATH")),
            remove_blacklist_path=(
                _optional(os.getenv("PROPELLER_REMOVE_BLACKLIST_PATH")) or DEFAULT_REMOVE_BLACKLIST_PATH
            ),
            blacklist_method=method,
            payload_key=_optional(os.getenv("PROPELLER_BLACKLIST_PAYLOAD_KEY")) or "zone_ids",
            payload_template=_optional(os.getenv("PROPELLER_BLACKLIST_PAYLOAD_TEMPLATE")),
            http_timeout_sec=_float(os.getenv("PROPELLER_HTTP_TIMEOUT_SEC"), 20.0),
            mutation_deadline_sec=_float(os.getenv("PROPELLER_MUTATION_DEADLINE_SEC"), 60.0),
            live_resolve=_truthy(os.getenv("PROPELLER_LIVE_RESOLVE", "0")),
        )
