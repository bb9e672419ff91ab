"""Live log subscription: one push subscription per event signature."""

import asyncio
from functools import partial
from typing import Any, Callable, Dict, Optional, Set

from ._util import log
from .decoder import EventDecoder
from .mirror import LedgerMirror


class LiveSubscriptionManager:
    """Stopped -> Listening -> Stopped.

    ``start`` and ``stop`` are idempotent: calling either in the state it
    would produce logs a warning and returns False.
    """

    def __init__(self, chain: Any, mirror: LedgerMirror, decoder: Optional[EventDecoder] = None):
        self.chain = chain
        self.mirror = mirror
        self.decoder = decoder or mirror.decoder
        self.handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            name: partial(self._dispatch, name) for name in self.decoder.event_names
        }
        self._listening = False
        self._accepting = False
        self._inflight: Set[asyncio.Task] = set()
        self.outcomes: Dict[str, int] = {}

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    async def start(self) -> bool:
        if self._listening:
            log("WARN: Event listeners are already running")
            return False
        self._listening = True
        self._accepting = True
        log("Starting blockchain event listeners...")
        try:
            for name, handler in self.handlers.items():
                await self.chain.subscribe(self.decoder.topic_for(name), handler)
        except Exception:
            self._accepting = False
            await self.chain.unsubscribe_all()
            self._listening = False
            raise
        log(f"Listening for {', '.join(self.handlers)}")
        return True

    async def stop(self) -> bool:
        if not self._listening:
            log("WARN: Event listeners are not running")
            return False
        self._accepting = False
        await self.chain.unsubscribe_all()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        self._listening = False
        log("Blockchain event listeners stopped")
        return True

    def _dispatch(self, event_name: str, raw_log: Dict[str, Any]) -> None:
        if not self._accepting:
            return
        task = asyncio.get_running_loop().create_task(self._process(event_name, raw_log))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _process(self, event_name: str, raw_log: Dict[str, Any]) -> str:
        if raw_log.get("removed"):
            log(f"WARN: {event_name} log {raw_log.get('transactionHash')} removed by reorg, not mirrored")
            outcome = "removed"
        else:
            outcome = await self.mirror.ingest(raw_log)
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1
        return outcome
