from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from zoneguard.util import now_utc_iso


class DuplicateEntryError(ValueError):
    pass


class Repo:
    """
    Lightweight repository for the optimizer layer.
    Keeps DB access centralized while staying dependency-free (sqlite3 only).

    Every write touches the rows it changes and nothing else, inside one
    transaction per call.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL;")
        return conn

    # -- meta ---------------------------------------------------------------

    def get_meta(self, key: str) -> str | None:
        with self.connect() as conn:
            row = conn.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
            return str(row["value"]) if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO meta(key, value) VALUES(?, ?)",
                (key, value),
            )

    # -- campaign mappings --------------------------------------------------

    def get_mapping(self, internal_id: str) -> str | None:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT provider_id FROM campaign_mappings WHERE internal_id=?",
                (internal_id,),
            ).fetchone()
            return str(row["provider_id"]) if row else None

    def find_mapping_casefold(self, key: str) -> str | None:
        # sqlite lower() folds ASCII only
        wanted = key.casefold()
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT internal_id, provider_id FROM campaign_mappings ORDER BY updated_at DESC, rowid DESC"
            ).fetchall()
        for r in rows:
            if str(r["internal_id"]).casefold() == wanted:
                return str(r["provider_id"])
        return None

    def set_mapping(self, internal_id: str, provider_id: str) -> None:
        now = now_utc_iso()
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO campaign_mappings(internal_id, provider_id, updated_at)
                VALUES(?, ?, ?)
                ON CONFLICT(internal_id) DO UPDATE SET
                  provider_id=excluded.provider_id,
                  updated_at=excluded.updated_at
                """,
                (internal_id, provider_id, now),
            )

    def delete_mapping(self, internal_id: str) -> bool:
        with self.connect() as conn:
            cur = conn.execute(
                "DELETE FROM campaign_mappings WHERE internal_id=?",
                (internal_id,),
            )
            return cur.rowcount > 0

    def list_mappings(self) -> dict[str, str]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT internal_id, provider_id FROM campaign_mappings ORDER BY internal_id"
            ).fetchall()
            return {str(r["internal_id"]): str(r["provider_id"]) for r in rows}

    # -- blacklist ledger ---------------------------------------------------

    def insert_blacklist_entry(
        self,
        *,
        entry_id: str,
        zone_id: str,
        campaign_id: str,
        provider: str,
        reason: str | None,
        timestamp: str,
        provider_campaign_id: str | None = None,
        keep_last: int | None = None,
    ) -> None:
        with self.connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO blacklist_entries(
                      id, zone_id, campaign_id, provider, reason, timestamp, provider_campaign_id
                    ) VALUES(?, ?, ?, ?, ?, ?, ?)
                    """,
                    (entry_id, zone_id, campaign_id, provider, reason, timestamp, provider_campaign_id),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateEntryError(f"duplicate blacklist entry id: {entry_id}") from e
            if keep_last is not None and keep_last > 0:
                conn.execute(
                    """
                    DELETE FROM blacklist_entries
                    WHERE seq NOT IN (
                      SELECT seq FROM blacklist_entries ORDER BY seq DESC LIMIT ?
                    )
                    """,
                    (keep_last,),
                )

    def get_blacklist_entry(self, entry_id: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM blacklist_entries WHERE id=?",
                (entry_id,),
            ).fetchone()
            return dict(row) if row else None

    def list_blacklist_entries(self, *, include_reverted: bool = True) -> list[dict[str, Any]]:
        sql = "SELECT * FROM blacklist_entries"
        if not include_reverted:
            sql += " WHERE reverted=0"
        sql += " ORDER BY seq DESC"
        with self.connect() as conn:
            rows = conn.execute(sql).fetchall()
            return [dict(r) for r in rows]

    def mark_blacklist_reverted(self, entry_id: str, reverted_at: str) -> bool:
        """Flip reverted 0 -> 1. Returns False when the entry was already reverted or is missing."""
        with self.connect() as conn:
            cur = conn.execute(
                "UPDATE blacklist_entries SET reverted=1, reverted_at=? WHERE id=? AND reverted=0",
                (reverted_at, entry_id),
            )
            return cur.rowcount > 0

    def set_blacklist_verified(self, updates: dict[str, bool], verified_at: str) -> int:
        if not updates:
            return 0
        changed = 0
        with self.connect() as conn:
            for entry_id, present in updates.items():
                cur = conn.execute(
                    "UPDATE blacklist_entries SET verified=?, verified_at=? WHERE id=?",
                    (1 if present else 0, verified_at, entry_id),
                )
                changed += cur.rowcount
        return changed

    def clear_blacklist_entries(self) -> int:
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM blacklist_entries")
            return cur.rowcount
