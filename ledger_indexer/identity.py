"""Account / project lookups used to correlate mirrored records.

The ``accounts`` and ``projects`` tables belong to the surrounding
application. The resolver only reads them, apart from
``mark_project_verified``.
"""

from typing import Optional, Protocol

from ._util import db_addr, project_id_hash, utc_now
from .store import LedgerStore


class IdentityResolver(Protocol):
    async def find_account_by_address(self, address: str) -> Optional[str]:
        ...

    async def find_project_by_external_id(self, project_id: str) -> Optional[str]:
        ...

    async def find_project_by_id_hash(self, project_hash: str) -> Optional[str]:
        ...

    async def mark_project_verified(self, project_id: str) -> bool:
        ...


class SqliteIdentityResolver:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def ensure_schema(self) -> None:
        async with self.store.db_lock:
            cur = self.store.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    wallet_address TEXT UNIQUE
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    external_id TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL DEFAULT 'draft',
                    verified_at TIMESTAMP
                )
                """
            )
            self.store.conn.commit()

    async def find_account_by_address(self, address: str) -> Optional[str]:
        if not address:
            return None
        async with self.store.db_lock:
            row = self.store.cursor().execute(
                "SELECT id FROM accounts WHERE lower(wallet_address) = ?", (db_addr(address),)
            ).fetchone()
        return row["id"] if row else None

    async def find_project_by_external_id(self, project_id: str) -> Optional[str]:
        if not project_id:
            return None
        async with self.store.db_lock:
            row = self.store.cursor().execute(
                "SELECT id FROM projects WHERE external_id = ?", (project_id,)
            ).fetchone()
        return row["id"] if row else None

    async def find_project_by_id_hash(self, project_hash: str) -> Optional[str]:
        """Return the external id whose keccak hash is ``project_hash``."""
        if not project_hash:
            return None
        wanted = project_hash.lower()
        async with self.store.db_lock:
            rows = self.store.cursor().execute("SELECT external_id FROM projects").fetchall()
        for row in rows:
            if project_id_hash(row["external_id"]) == wanted:
                return row["external_id"]
        return None

    async def mark_project_verified(self, project_id: str) -> bool:
        async with self.store.db_lock:
            cur = self.store.cursor()
            # a redelivered verification keeps the first timestamp
            cur.execute(
                """
                UPDATE projects
                SET verified_at = CASE
                        WHEN status = 'verified' AND verified_at IS NOT NULL THEN verified_at
                        ELSE ?
                    END,
                    status = 'verified'
                WHERE external_id = ?
                """,
                (utc_now(), project_id),
            )
            self.store.conn.commit()
            return cur.rowcount == 1
