"""Decoded events -> ledger records.

Every record write is an insert-if-absent keyed by transaction hash, so a
log delivered twice (live redelivery, or live and backfill overlapping)
lands exactly once and a late replay never rewrites a row that has already
advanced.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional

from ._util import NULL_ADDRESS, log
from .decoder import EventDecoder
from .events import (
    Approved,
    DecodeFailure,
    Minted,
    ProjectVerified,
    RecordKind,
    Retired,
    Transferred,
    Unrecognized,
)
from .identity import IdentityResolver
from .store import LedgerStore


INSERTED = "inserted"
DUPLICATE = "duplicate"
SKIPPED = "skipped"
UNRECOGNIZED = "unrecognized"
DECODE_FAILED = "decode_failed"
PROJECT_VERIFIED = "project_verified"
PROJECT_UNKNOWN = "project_unknown"
ERROR = "error"


class LedgerMirror:
    def __init__(self, store: LedgerStore, resolver: IdentityResolver, decoder: Optional[EventDecoder] = None):
        self.store = store
        self.resolver = resolver
        self.decoder = decoder or EventDecoder()
        self.handlers: Dict[type, Callable[[Any], Awaitable[str]]] = {
            Minted: self._on_minted,
            Transferred: self._on_transferred,
            Retired: self._on_retired,
            Approved: self._on_approved,
            ProjectVerified: self._on_project_verified,
        }

    async def ingest(self, raw_log: Dict[str, Any]) -> str:
        """Decode one raw log and apply it. Never raises."""
        decoded = self.decoder.decode(raw_log)
        if isinstance(decoded, Unrecognized):
            return UNRECOGNIZED
        if isinstance(decoded, DecodeFailure):
            log(f"WARN: could not decode {decoded.event_name or 'log'} in {decoded.tx_hash}: {decoded.reason}")
            return DECODE_FAILED
        try:
            return await self.apply(decoded)
        except Exception as exc:
            log(f"ERROR: failed to mirror {type(decoded).__name__} {decoded.tx_hash}: {exc}")
            return ERROR

    async def apply(self, event: Any) -> str:
        handler = self.handlers.get(type(event))
        if handler is None:
            raise TypeError(f"no handler for {type(event).__name__}")
        return await handler(event)

    async def advance_status(
        self,
        tx_hash: str,
        status: str,
        gas_used: Optional[Any] = None,
        gas_price: Optional[Any] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        advanced = await self.store.advance_status(
            tx_hash, status, gas_used=gas_used, gas_price=gas_price, error_message=error_message
        )
        if advanced:
            log(f"Transaction {tx_hash} -> {getattr(status, 'value', status)}")
        return advanced

    async def _account_for(self, address: Optional[str]) -> Optional[str]:
        if not address or address == NULL_ADDRESS:
            return None
        try:
            return await self.resolver.find_account_by_address(address)
        except Exception as exc:
            log(f"WARN: account lookup failed for {address}: {exc}")
            return None

    async def _project_for(self, project_ref: str) -> Optional[str]:
        try:
            return await self.resolver.find_project_by_external_id(project_ref)
        except Exception as exc:
            log(f"WARN: project lookup failed for {project_ref}: {exc}")
            return None

    async def _record(self, event: Any, **fields: Any) -> str:
        record = dict(fields, tx_hash=event.tx_hash, block_number=event.block_number)
        if await self.store.insert_if_absent(record):
            log(f"Recorded {record['kind'].value} {event.tx_hash} (block {event.block_number})")
            return INSERTED
        return DUPLICATE

    async def _on_minted(self, event: Minted) -> str:
        log(f"Credit minted: ID {event.credit_id}, amount {event.amount}, to {event.recipient}")
        return await self._record(
            event,
            kind=RecordKind.MINT,
            from_address=NULL_ADDRESS,
            to_address=event.recipient,
            amount=event.amount,
            credit_id=event.credit_id,
            metadata=json.dumps({"projectId": event.project_ref, "creditType": event.credit_type}),
            account_id=await self._account_for(event.recipient),
            project_id=await self._project_for(event.project_ref),
        )

    async def _on_transferred(self, event: Transferred) -> str:
        # mint and burn legs are covered by CreditMinted / CreditRetired
        if event.is_mint_or_burn_side_effect:
            return SKIPPED
        account_id = await self._account_for(event.sender)
        if account_id is None:
            account_id = await self._account_for(event.recipient)
        return await self._record(
            event,
            kind=RecordKind.TRANSFER,
            from_address=event.sender,
            to_address=event.recipient,
            amount=event.amount,
            account_id=account_id,
        )

    async def _on_retired(self, event: Retired) -> str:
        log(f"Credit retired: ID {event.credit_id}, amount {event.amount}, by {event.retired_by}")
        metadata = {"creditId": event.credit_id}
        if event.reason:
            metadata["reason"] = event.reason
        return await self._record(
            event,
            kind=RecordKind.RETIRE,
            from_address=event.retired_by,
            to_address=NULL_ADDRESS,
            amount=event.amount,
            credit_id=event.credit_id,
            metadata=json.dumps(metadata),
            account_id=await self._account_for(event.retired_by),
        )

    async def _on_approved(self, event: Approved) -> str:
        return await self._record(
            event,
            kind=RecordKind.APPROVE,
            from_address=event.owner,
            to_address=event.spender,
            amount=event.amount,
            account_id=await self._account_for(event.owner),
        )

    async def _on_project_verified(self, event: ProjectVerified) -> str:
        external_id = event.project_ref
        if external_id is None:
            external_id = await self.resolver.find_project_by_id_hash(event.project_hash)
        if external_id is not None and await self.resolver.mark_project_verified(external_id):
            log(f"Project {external_id} status updated to verified")
            return PROJECT_VERIFIED
        log(f"WARN: ProjectVerified for unknown project {external_id or event.project_hash}")
        return PROJECT_UNKNOWN
