"""Command line for the ledger indexer.

Usage:
  ledger-indexer --config config.json run
  ledger-indexer --config config.json backfill --from-block 0
  ledger-indexer --config config.json backfill --resume
  ledger-indexer --config config.json confirm
  ledger-indexer --config config.json tx 0xabc...
  ledger-indexer --config config.json txs --type mint --status pending --page 2
  ledger-indexer --config config.json stats --account acct-1
  ledger-indexer --config config.json prune --older-than-hours 48
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

from ._util import json_dumps, log
from .abi import load_event_abi
from .backfill import BackfillEngine
from .chain import Web3ChainClient
from .confirm import ReceiptConfirmer
from .config import load_config, require
from .decoder import EventDecoder
from .errors import BackfillInterrupted, IndexerError
from .events import RecordKind, RecordStatus
from .identity import SqliteIdentityResolver
from .live import LiveSubscriptionManager
from .mirror import LedgerMirror
from .store import LedgerStore
from .sync_state import SyncStateStore


class Indexer:
    def __init__(self, config: Dict[str, Any], chain: Any = None):
        self.config = config
        self.store = LedgerStore(config["db_path"])
        self.resolver = SqliteIdentityResolver(self.store)
        self.sync_state = SyncStateStore(self.store)
        self.chain = chain
        self.decoder: Optional[EventDecoder] = None
        self.mirror: Optional[LedgerMirror] = None

    async def init_db(self) -> None:
        await self.store.init_db()
        await self.resolver.ensure_schema()
        await self.sync_state.ensure_schema()

    def connect_chain(self) -> None:
        if self.chain is None:
            self.chain = Web3ChainClient(
                require(self.config, "rpc_http"),
                require(self.config, "contract_address"),
                rpc_ws=self.config.get("rpc_ws"),
                reconnect_delay=self.config["reconnect_delay"],
            )
        self.decoder = EventDecoder(load_event_abi(self.config.get("abi")))
        self.mirror = LedgerMirror(self.store, self.resolver, self.decoder)

    def backfill_engine(self, batch_size: Optional[int] = None) -> BackfillEngine:
        return BackfillEngine(
            self.chain, self.mirror, self.decoder, batch_size=batch_size or self.config["batch_size"]
        )

    def confirmer(self) -> ReceiptConfirmer:
        return ReceiptConfirmer(
            self.chain,
            self.store,
            self.mirror,
            confirmations=self.config["confirmations"],
            interval=self.config["confirm_interval"],
        )

    async def resume_block(self) -> int:
        last = await self.sync_state.load()
        if last is None:
            return self.config["start_block"]
        return max(last + 1, self.config["start_block"])

    async def backfill(self, from_block: Optional[int] = None, batch_size: Optional[int] = None,
                       cancel: Optional[asyncio.Event] = None) -> int:
        if from_block is None:
            from_block = await self.resume_block()
        engine = self.backfill_engine(batch_size)
        return await engine.backfill(from_block, cancel=cancel, on_chunk=self.sync_state.save)

    async def run(self) -> None:
        """Live sync, catch-up backfill and receipt polling until cancelled.

        Live sync does not advance the stored cursor, so logs emitted while
        the websocket is reconnecting are picked up by the next
        ``backfill --resume`` or ``run``, not by the live path.
        """
        live = LiveSubscriptionManager(self.chain, self.mirror, self.decoder)
        stop = asyncio.Event()
        await live.start()
        try:
            try:
                await self.backfill(cancel=stop)
            except BackfillInterrupted as exc:
                log(f"ERROR: {exc}; live sync continues, rerun backfill --resume to catch up")
            await self.confirmer().run(stop)
        finally:
            stop.set()
            await live.stop()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Carbon credit ledger indexer")
    parser.add_argument("--config", default="config.json", help="Path to config JSON")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser(
        "run",
        help="Backfill, then follow live events and receipts; "
        "logs missed during a websocket reconnect need backfill --resume",
    )

    backfill_parser = sub.add_parser("backfill", help="Replay historical events")
    start = backfill_parser.add_mutually_exclusive_group(required=True)
    start.add_argument("--from-block", type=int)
    start.add_argument("--resume", action="store_true", help="Continue after the stored cursor")
    backfill_parser.add_argument("--batch-size", type=int, default=None)

    sub.add_parser("confirm", help="Check receipts for pending records once")

    tx_parser = sub.add_parser("tx", help="Show one record by transaction hash")
    tx_parser.add_argument("tx_hash")

    txs_parser = sub.add_parser("txs", help="List records")
    txs_parser.add_argument("--account", default=None)
    txs_parser.add_argument("--project", default=None)
    txs_parser.add_argument("--type", choices=[k.value for k in RecordKind], default=None)
    txs_parser.add_argument("--status", choices=[s.value for s in RecordStatus], default=None)
    txs_parser.add_argument("--from-address", default=None)
    txs_parser.add_argument("--to-address", default=None)
    txs_parser.add_argument("--from-date", default=None)
    txs_parser.add_argument("--to-date", default=None)
    txs_parser.add_argument("--page", type=int, default=1)
    txs_parser.add_argument("--limit", type=int, default=10)

    stats_parser = sub.add_parser("stats", help="Aggregate counts and confirmed volume")
    stats_parser.add_argument("--account", default=None)

    prune_parser = sub.add_parser("prune", help="Delete stale pending records")
    prune_parser.add_argument("--older-than-hours", type=int, default=24)
    return parser


async def _dispatch(args: argparse.Namespace, cfg: Dict[str, Any]) -> Any:
    indexer = Indexer(cfg)
    await indexer.init_db()
    try:
        if args.command in ("run", "backfill", "confirm"):
            indexer.connect_chain()

        if args.command == "run":
            await indexer.run()
            return None
        if args.command == "backfill":
            from_block = None if args.resume else args.from_block
            last = await indexer.backfill(from_block, batch_size=args.batch_size)
            return {"last_block": last}
        if args.command == "confirm":
            return await indexer.confirmer().confirm_pending()
        if args.command == "tx":
            record = await indexer.store.find_by_hash(args.tx_hash)
            if record is None:
                raise IndexerError(f"Transaction with hash {args.tx_hash} not found")
            return record
        if args.command == "txs":
            return await indexer.store.find_all(
                page=args.page,
                limit=args.limit,
                kind=args.type,
                status=args.status,
                account_id=args.account,
                project_id=args.project,
                from_address=args.from_address,
                to_address=args.to_address,
                from_date=args.from_date,
                to_date=args.to_date,
            )
        if args.command == "stats":
            return await indexer.store.stats(args.account)
        if args.command == "prune":
            return {"deleted": await indexer.store.prune_pending(args.older_than_hours)}
        raise IndexerError(f"unknown command {args.command}")
    finally:
        indexer.store.close()


def main(argv: Optional[list] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        cfg = load_config(args.config)
        result = asyncio.run(_dispatch(args, cfg))
    except BackfillInterrupted as exc:
        log(f"ERROR: {exc}")
        print(json_dumps({"last_block": exc.last_block, "error": str(exc.cause)}))
        return 2
    except IndexerError as exc:
        log(f"ERROR: {exc}")
        return 1
    except KeyboardInterrupt:
        return 130
    if result is not None:
        print(json_dumps(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
