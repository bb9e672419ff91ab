"""Receipt polling that drives pending records to a terminal status."""

import asyncio
from typing import Any, Dict, Optional

from ._util import log, parse_int
from .events import RecordStatus
from .mirror import LedgerMirror
from .store import LedgerStore


class ReceiptConfirmer:
    def __init__(
        self,
        chain: Any,
        store: LedgerStore,
        mirror: LedgerMirror,
        confirmations: int = 1,
        interval: int = 15,
    ):
        self.chain = chain
        self.store = store
        self.mirror = mirror
        self.confirmations = max(int(confirmations), 1)
        self.interval = interval

    async def confirm_pending(self) -> Dict[str, int]:
        head = await self.chain.get_chain_head()
        # confirmations=1 means the block holding the tx is enough
        deepest = head - self.confirmations + 1
        counts = {"confirmed": 0, "failed": 0, "waiting": 0, "error": 0}
        for record in await self.store.list_pending(max_block=deepest):
            tx_hash = record["tx_hash"]
            try:
                receipt = await self.chain.get_transaction_receipt(tx_hash)
                if receipt is None:
                    counts["waiting"] += 1
                    continue
                succeeded = parse_int(receipt.get("status", 0)) == 1
                advanced = await self.mirror.advance_status(
                    tx_hash,
                    RecordStatus.CONFIRMED if succeeded else RecordStatus.FAILED,
                    gas_used=_optional_int(receipt.get("gasUsed")),
                    gas_price=_optional_int(receipt.get("effectiveGasPrice")),
                    error_message=None if succeeded else "transaction reverted",
                )
                if advanced:
                    counts["confirmed" if succeeded else "failed"] += 1
            except Exception as exc:
                log(f"ERROR: receipt check failed for {tx_hash}: {exc}")
                counts["error"] += 1
        return counts

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        while stop is None or not stop.is_set():
            try:
                counts = await self.confirm_pending()
                if counts["confirmed"] or counts["failed"]:
                    log(f"Receipts: {counts}")
            except Exception as exc:
                log(f"Confirmation pass error: {exc}")
            if stop is None:
                await asyncio.sleep(self.interval)
                continue
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass


def _optional_int(value: Any) -> Optional[int]:
    return parse_int(value) if value is not None else None
