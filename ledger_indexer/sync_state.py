"""Backfill cursor persisted by the command line between runs."""

from typing import Optional

from .store import LedgerStore


class SyncStateStore:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def ensure_schema(self) -> None:
        async with self.store.db_lock:
            self.store.cursor().execute(
                """
                CREATE TABLE IF NOT EXISTS sync_state (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    last_processed_block INTEGER NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            self.store.conn.commit()

    async def load(self) -> Optional[int]:
        async with self.store.db_lock:
            row = self.store.cursor().execute(
                "SELECT last_processed_block FROM sync_state WHERE id = 1"
            ).fetchone()
        return int(row["last_processed_block"]) if row else None

    async def save(self, block_number: int) -> None:
        async with self.store.db_lock:
            self.store.cursor().execute(
                """
                INSERT INTO sync_state (id, last_processed_block) VALUES (1, ?)
                ON CONFLICT(id) DO UPDATE SET
                    last_processed_block = MAX(last_processed_block, excluded.last_processed_block),
                    updated_at = CURRENT_TIMESTAMP
                """,
                (block_number,),
            )
            self.store.conn.commit()
