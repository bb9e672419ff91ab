"""Chunked historical replay of ledger events."""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ._util import log, log_sort_key
from .decoder import EventDecoder
from .errors import BackfillInterrupted
from .mirror import LedgerMirror


DEFAULT_BATCH_SIZE = 1000


@dataclass
class SyncCursor:
    last_block: int

    def advance(self, block_number: int) -> None:
        if block_number > self.last_block:
            self.last_block = block_number


def iter_chunks(from_block: int, to_block: int, batch_size: int) -> Iterator[Tuple[int, int]]:
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    current = from_block
    while current <= to_block:
        batch_to = min(current + batch_size - 1, to_block)
        yield current, batch_to
        current = batch_to + 1


class BackfillEngine:
    def __init__(
        self,
        chain: Any,
        mirror: LedgerMirror,
        decoder: Optional[EventDecoder] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.chain = chain
        self.mirror = mirror
        self.decoder = decoder or mirror.decoder
        self.batch_size = batch_size

    async def backfill(
        self,
        from_block: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
        on_chunk: Optional[Callable[[int], Any]] = None,
    ) -> int:
        """Replay ``[from_block, head]`` and return the last block processed.

        Raises ``BackfillInterrupted`` carrying the last completed block when
        a chunk fails. ``cancel`` is only checked between chunks.
        """
        start = from_block if from_block is not None else 0
        cursor = SyncCursor(start - 1)
        try:
            head = await self.chain.get_chain_head()
        except Exception as exc:
            log(f"ERROR: could not read chain head: {exc}")
            raise BackfillInterrupted(cursor.last_block, exc) from exc

        if start > head:
            log(f"Backfill: nothing to do (from {start}, head {head})")
            return cursor.last_block

        log(f"Syncing past events from block {start} to {head}...")
        for chunk_from, chunk_to in iter_chunks(start, head, self.batch_size):
            if cancel is not None and cancel.is_set():
                log(f"Backfill cancelled after block {cursor.last_block}")
                return cursor.last_block
            try:
                outcomes = await self.process_chunk(chunk_from, chunk_to)
                cursor.advance(chunk_to)
                if on_chunk is not None:
                    result = on_chunk(cursor.last_block)
                    if inspect.isawaitable(result):
                        await result
            except Exception as exc:
                log(f"ERROR: backfill failed in blocks {chunk_from}-{chunk_to}: {exc}")
                raise BackfillInterrupted(cursor.last_block, exc) from exc
            summary = ", ".join(f"{k}={v}" for k, v in sorted(outcomes.items())) or "no logs"
            log(f"Processed blocks {chunk_from} to {chunk_to} ({summary})")

        log(f"Past events sync completed up to block {cursor.last_block}")
        return cursor.last_block

    async def process_chunk(self, from_block: int, to_block: int) -> Dict[str, int]:
        logs = await self.fetch_chunk(from_block, to_block)
        outcomes: Dict[str, int] = {}
        for raw in logs:
            outcome = await self.mirror.ingest(raw)
            outcomes[outcome] = outcomes.get(outcome, 0) + 1
        return outcomes

    async def fetch_chunk(self, from_block: int, to_block: int) -> List[Dict[str, Any]]:
        groups = await asyncio.gather(
            *(
                self.chain.query_logs(self.decoder.topic_for(name), from_block, to_block)
                for name in self.decoder.event_names
            )
        )
        flattened = [entry for group in groups for entry in group]
        return sorted(flattened, key=log_sort_key)
