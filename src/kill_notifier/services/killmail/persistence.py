"""
SQLite Killmail Persistence.

Stores enriched killmails for later inspection. Writes are idempotent
(keyed on killmail id) and best-effort from the pipeline's point of view.
Uses WAL mode so readers never block the writer.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiosqlite

from ...core.errors import StoreError
from ...core.logging import get_logger
from .models import Killmail

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS killmails (
    killmail_id INTEGER PRIMARY KEY,
    kill_time TEXT,
    solar_system_id INTEGER,
    system_name TEXT,
    total_value REAL,
    zkb_hash TEXT,
    victim_character_id INTEGER,
    victim_corporation_id INTEGER,
    victim_ship_type_id INTEGER,
    attacker_count INTEGER NOT NULL,
    data_json TEXT NOT NULL,
    saved_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_killmails_system ON killmails(solar_system_id);
"""


@runtime_checkable
class KillmailStore(Protocol):
    async def save(self, killmail: Killmail) -> None: ...


class SQLiteKillmailStore:
    """
    aiosqlite-backed killmail store.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize the store.

        Args:
            db_path: Path to database file (parent directories are created)
        """
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None
        self.saved = 0

    async def initialize(self) -> None:
        """
        Open the database and create the schema.

        Must be called before any other operations.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)

        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await self._db.execute("PRAGMA synchronous=NORMAL")
        await self._db.executescript(SCHEMA)
        await self._db.commit()

        self._db.row_factory = aiosqlite.Row
        logger.info("Killmail store initialized: %s", self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Killmail store closed")

    async def __aenter__(self) -> SQLiteKillmailStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection, raising if not initialized."""
        if self._db is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._db

    async def save(self, killmail: Killmail) -> None:
        """
        Insert or replace a killmail record (idempotent).

        Raises:
            StoreError: If the write fails
        """
        try:
            await self._write(killmail)
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to save kill {killmail.killmail_id}: {e}") from e
        self.saved += 1

    async def _write(self, killmail: Killmail) -> None:
        await self.db.execute(
            """
            INSERT OR REPLACE INTO killmails (
                killmail_id, kill_time, solar_system_id, system_name, total_value,
                zkb_hash, victim_character_id, victim_corporation_id,
                victim_ship_type_id, attacker_count, data_json, saved_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                killmail.killmail_id,
                killmail.kill_time.isoformat() if killmail.kill_time else None,
                killmail.solar_system_id,
                killmail.system_name.name if killmail.system_name else None,
                killmail.total_value,
                killmail.zkb_hash,
                killmail.victim.character_id,
                killmail.victim.corporation_id,
                killmail.victim.ship_type_id,
                killmail.attacker_count,
                json.dumps(killmail.to_dict()),
                int(time.time()),
            ),
        )
        await self.db.commit()

    async def get(self, killmail_id: int) -> dict[str, Any] | None:
        """
        Load a stored killmail.

        Returns:
            The serialized killmail dict, or None if not stored
        """
        async with self.db.execute(
            "SELECT data_json FROM killmails WHERE killmail_id = ?",
            (killmail_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row["data_json"])

    async def count(self) -> int:
        async with self.db.execute("SELECT COUNT(*) FROM killmails") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
