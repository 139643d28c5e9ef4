from __future__ import annotations

import sqlite3
from pathlib import Path


SCHEMA_VERSION = 2


class OptimizerDB:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL;")
        return conn

    def init(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            current_version = self._get_schema_version(conn)

            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS campaign_mappings (
                  internal_id TEXT PRIMARY KEY,
                  provider_id TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS blacklist_entries (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  id TEXT NOT NULL UNIQUE,
                  zone_id TEXT NOT NULL,
                  campaign_id TEXT NOT NULL,
                  provider TEXT NOT NULL,
                  reason TEXT,
                  timestamp TEXT NOT NULL,
                  reverted INTEGER NOT NULL DEFAULT 0,
                  reverted_at TEXT,
                  verified INTEGER NOT NULL DEFAULT 0,
                  verified_at TEXT,
                  provider_campaign_id TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_blacklist_entries_campaign
                ON blacklist_entries(campaign_id, reverted);
                """
            )
            if current_version < 2:
                self._migrate_to_v2(conn)
            if current_version < SCHEMA_VERSION:
                conn.execute(
                    "INSERT OR REPLACE INTO meta(key, value) VALUES(?, ?)",
                    ("schema_version", str(SCHEMA_VERSION)),
                )

    def _column_exists(self, conn: sqlite3.Connection, table: str, column: str) -> bool:
        rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
        return any(str(r["name"]) == column for r in rows)

    def _migrate_to_v2(self, conn: sqlite3.Connection) -> None:
        # v2: provider campaign id the mutation was sent to
        if not self._column_exists(conn, "blacklist_entries", "provider_campaign_id"):
            conn.execute("ALTER TABLE blacklist_entries ADD COLUMN provider_campaign_id TEXT")

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        row = conn.execute(
            "SELECT value FROM meta WHERE key='schema_version'"
        ).fetchone()
        if not row:
            return 0
        try:
            return int(row["value"])
        except Exception:
            return 0

    def schema_version(self) -> int:
        with self._connect() as conn:
            return self._get_schema_version(conn)
