"""SQLite-backed ledger record store.

One row per transaction hash. Writers go through ``insert_if_absent`` and
``advance_status``; everything else is a read-only projection.
"""

import asyncio
import json
import sqlite3
from typing import Any, Dict, List, Optional, Union

from ._util import db_addr, decimal_text, normalize_timestamp, utc_now
from .events import RecordKind, RecordStatus, TERMINAL_STATUSES


MAX_PAGE_SIZE = 100

RECORD_COLUMNS = (
    "tx_hash",
    "kind",
    "status",
    "from_address",
    "to_address",
    "amount",
    "credit_id",
    "block_number",
    "gas_used",
    "gas_price",
    "transaction_fee",
    "metadata",
    "error_message",
    "account_id",
    "project_id",
    "created_at",
    "confirmed_at",
)


def _page_args(page: int, limit: int) -> tuple:
    page = max(int(page), 1)
    limit = min(max(int(limit), 1), MAX_PAGE_SIZE)
    return page, limit


def _enum_value(value: Union[str, RecordKind, RecordStatus, None]) -> Optional[str]:
    if value is None:
        return None
    return value.value if hasattr(value, "value") else str(value).lower()


class LedgerStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self.db_lock = asyncio.Lock()

    async def init_db(self) -> None:
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS ledger_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tx_hash TEXT NOT NULL UNIQUE,
                kind TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                from_address TEXT NOT NULL,
                to_address TEXT NOT NULL,
                amount TEXT NOT NULL,
                credit_id TEXT,
                block_number INTEGER,
                gas_used TEXT,
                gas_price TEXT,
                transaction_fee TEXT,
                metadata TEXT,
                error_message TEXT,
                account_id TEXT,
                project_id TEXT,
                created_at TIMESTAMP NOT NULL,
                confirmed_at TIMESTAMP
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_records_kind_status ON ledger_records(kind, status)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_records_created ON ledger_records(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_records_account ON ledger_records(account_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_records_project ON ledger_records(project_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_records_block ON ledger_records(block_number)")
        self.conn.commit()

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def cursor(self) -> sqlite3.Cursor:
        if not self.conn:
            raise RuntimeError("DB not initialized")
        return self.conn.cursor()

    async def insert_if_absent(self, record: Dict[str, Any]) -> bool:
        """Insert a pending record unless one with the same hash exists.

        Returns True when this call created the row. A concurrent or repeated
        insert for the same hash returns False and leaves the row untouched.
        """
        row = {
            "tx_hash": record["tx_hash"].lower(),
            "kind": _enum_value(record["kind"]),
            "status": RecordStatus.PENDING.value,
            "from_address": db_addr(record["from_address"]),
            "to_address": db_addr(record["to_address"]),
            "amount": decimal_text(record["amount"]),
            "credit_id": record.get("credit_id"),
            "block_number": record.get("block_number"),
            "gas_used": None,
            "gas_price": None,
            "transaction_fee": None,
            "metadata": record.get("metadata"),
            "error_message": None,
            "account_id": record.get("account_id"),
            "project_id": record.get("project_id"),
            "created_at": record.get("created_at") or utc_now(),
            "confirmed_at": None,
        }
        if row["kind"] not in {k.value for k in RecordKind}:
            raise ValueError(f"unknown record kind: {record['kind']}")
        if row["metadata"] is not None and not isinstance(row["metadata"], str):
            row["metadata"] = json.dumps(row["metadata"], sort_keys=True)

        columns = ", ".join(RECORD_COLUMNS)
        placeholders = ", ".join("?" for _ in RECORD_COLUMNS)
        async with self.db_lock:
            cur = self.cursor()
            cur.execute(
                f"INSERT INTO ledger_records ({columns}) VALUES ({placeholders}) "
                "ON CONFLICT(tx_hash) DO NOTHING",
                tuple(row[c] for c in RECORD_COLUMNS),
            )
            self.conn.commit()
            return cur.rowcount == 1

    async def advance_status(
        self,
        tx_hash: str,
        status: Union[str, RecordStatus],
        gas_used: Optional[Any] = None,
        gas_price: Optional[Any] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """Move a pending record to a terminal status.

        Returns False without touching anything when the record is missing,
        already terminal, or ``status`` is not a terminal status.
        """
        target = _enum_value(status)
        if target not in {s.value for s in TERMINAL_STATUSES}:
            return False
        gas_used = decimal_text(gas_used) if gas_used is not None else None
        gas_price = decimal_text(gas_price) if gas_price is not None else None

        async with self.db_lock:
            cur = self.cursor()
            row = cur.execute(
                "SELECT status, gas_used, gas_price FROM ledger_records WHERE tx_hash = ?",
                (tx_hash.lower(),),
            ).fetchone()
            if row is None or row["status"] != RecordStatus.PENDING.value:
                return False
            gas_used = gas_used if gas_used is not None else row["gas_used"]
            gas_price = gas_price if gas_price is not None else row["gas_price"]
            fee = None
            if gas_used is not None and gas_price is not None:
                fee = str(int(gas_used) * int(gas_price))
            cur.execute(
                """
                UPDATE ledger_records
                SET status = ?, gas_used = ?, gas_price = ?, transaction_fee = ?,
                    error_message = COALESCE(?, error_message), confirmed_at = ?
                WHERE tx_hash = ? AND status = 'pending'
                """,
                (target, gas_used, gas_price, fee, error_message, utc_now(), tx_hash.lower()),
            )
            self.conn.commit()
            return cur.rowcount == 1

    async def find_by_hash(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        async with self.db_lock:
            row = self.cursor().execute(
                "SELECT * FROM ledger_records WHERE tx_hash = ?", (tx_hash.lower(),)
            ).fetchone()
        return _row_to_record(row) if row else None

    async def list_pending(self, max_block: Optional[int] = None, limit: int = 500) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM ledger_records WHERE status = 'pending'"
        params: List[Any] = []
        if max_block is not None:
            sql += " AND block_number IS NOT NULL AND block_number <= ?"
            params.append(max_block)
        sql += " ORDER BY block_number ASC, id ASC LIMIT ?"
        params.append(limit)
        async with self.db_lock:
            rows = self.cursor().execute(sql, params).fetchall()
        return [_row_to_record(row) for row in rows]

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        kind: Optional[Union[str, RecordKind]] = None,
        status: Optional[Union[str, RecordStatus]] = None,
        account_id: Optional[str] = None,
        project_id: Optional[str] = None,
        from_address: Optional[str] = None,
        to_address: Optional[str] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        page, limit = _page_args(page, limit)
        clauses = []
        params: List[Any] = []
        if kind:
            clauses.append("kind = ?")
            params.append(_enum_value(kind))
        if status:
            clauses.append("status = ?")
            params.append(_enum_value(status))
        if account_id:
            clauses.append("account_id = ?")
            params.append(account_id)
        if project_id:
            clauses.append("project_id = ?")
            params.append(project_id)
        if from_address:
            clauses.append("from_address = ?")
            params.append(db_addr(from_address))
        if to_address:
            clauses.append("to_address = ?")
            params.append(db_addr(to_address))
        if from_date:
            clauses.append("created_at >= ?")
            params.append(normalize_timestamp(from_date))
        if to_date:
            clauses.append("created_at <= ?")
            params.append(normalize_timestamp(to_date))

        where = " AND ".join(clauses)
        if where:
            where = "WHERE " + where
        async with self.db_lock:
            cur = self.cursor()
            total = cur.execute(f"SELECT COUNT(*) FROM ledger_records {where}", params).fetchone()[0]
            rows = cur.execute(
                f"SELECT * FROM ledger_records {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                params + [limit, (page - 1) * limit],
            ).fetchall()
        return {
            "transactions": [_row_to_record(row) for row in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }

    async def find_by_account(self, account_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return await self.find_all(page=page, limit=limit, account_id=account_id)

    async def find_by_project(self, project_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return await self.find_all(page=page, limit=limit, project_id=project_id)

    async def stats(self, account_id: Optional[str] = None) -> Dict[str, Any]:
        where = "WHERE account_id = ?" if account_id else ""
        params: List[Any] = [account_id] if account_id else []
        async with self.db_lock:
            cur = self.cursor()
            by_status = {
                row["status"]: row["n"]
                for row in cur.execute(
                    f"SELECT status, COUNT(*) AS n FROM ledger_records {where} GROUP BY status", params
                )
            }
            by_kind = [
                {"type": row["kind"], "count": row["n"]}
                for row in cur.execute(
                    f"SELECT kind, COUNT(*) AS n FROM ledger_records {where} GROUP BY kind ORDER BY kind",
                    params,
                )
            ]
            # SUM() would go through floating point for 256-bit amounts
            confirmed_clause = f"{where} AND" if where else "WHERE"
            volume = sum(
                int(row["amount"])
                for row in cur.execute(
                    f"SELECT amount FROM ledger_records {confirmed_clause} status = 'confirmed'", params
                )
            )
        return {
            "total_transactions": sum(by_status.values()),
            "pending_transactions": by_status.get(RecordStatus.PENDING.value, 0),
            "confirmed_transactions": by_status.get(RecordStatus.CONFIRMED.value, 0),
            "failed_transactions": by_status.get(RecordStatus.FAILED.value, 0),
            "total_volume": str(volume),
            "transactions_by_type": by_kind,
        }

    async def prune_pending(self, older_than_hours: int = 24) -> int:
        async with self.db_lock:
            cur = self.cursor()
            cur.execute(
                "DELETE FROM ledger_records WHERE status = 'pending' AND created_at < datetime('now', ?)",
                (f"-{int(older_than_hours)} hours",),
            )
            self.conn.commit()
            return cur.rowcount


def _row_to_record(row: sqlite3.Row) -> Dict[str, Any]:
    record = {key: row[key] for key in RECORD_COLUMNS}
    if record["metadata"]:
        try:
            record["metadata"] = json.loads(record["metadata"])
        except json.JSONDecodeError:
            pass
    return record
