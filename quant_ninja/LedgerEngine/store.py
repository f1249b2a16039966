import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from . import config
from .models import Ledger

logger = logging.getLogger("LedgerStore")

SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshots (
    storage_key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""


class LedgerStore:
    """
    Single-snapshot persistence for the ledger.

    The whole position collection is serialized under one fixed key and
    rewritten after every mutation. Anything unreadable loads as empty.
    """

    def __init__(self, db_path: Optional[str] = None, storage_key: str = config.STORAGE_KEY):
        self.db_path = Path(db_path) if db_path is not None else config.DB_PATH
        self.storage_key = storage_key
        self._init_db()

    def _init_db(self):
        """Initialize database schema if not exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as con:
            con.execute(SCHEMA)

    def load(self) -> Ledger:
        with sqlite3.connect(self.db_path) as con:
            row = con.execute(
                "SELECT payload FROM snapshots WHERE storage_key = ?", (self.storage_key,)
            ).fetchone()

        if row is None:
            return Ledger()

        try:
            bets = json.loads(row[0])
            return Ledger.model_validate({"bets": bets})
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(f"Discarding unreadable ledger snapshot '{self.storage_key}': {e}")
            return Ledger()

    def save(self, ledger: Ledger):
        payload = json.dumps(ledger.model_dump(mode="json")["bets"])
        with sqlite3.connect(self.db_path) as con:
            con.execute("""
                INSERT INTO snapshots (storage_key, payload, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(storage_key) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = CURRENT_TIMESTAMP
            """, (self.storage_key, payload))

    def clear(self):
        with sqlite3.connect(self.db_path) as con:
            con.execute("DELETE FROM snapshots WHERE storage_key = ?", (self.storage_key,))
        logger.info(f"Cleared ledger snapshot '{self.storage_key}'")
