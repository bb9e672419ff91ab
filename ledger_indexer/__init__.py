"""Mirror carbon credit registry events into a queryable transaction ledger."""

from .backfill import BackfillEngine, SyncCursor
from .chain import Web3ChainClient
from .decoder import EventDecoder
from .errors import BackfillInterrupted, ConfigError, IndexerError
from .events import RecordKind, RecordStatus
from .identity import IdentityResolver, SqliteIdentityResolver
from .live import LiveSubscriptionManager
from .mirror import LedgerMirror
from .store import LedgerStore

__all__ = [
    "BackfillEngine",
    "BackfillInterrupted",
    "ConfigError",
    "EventDecoder",
    "IdentityResolver",
    "IndexerError",
    "LedgerMirror",
    "LedgerStore",
    "LiveSubscriptionManager",
    "RecordKind",
    "RecordStatus",
    "SqliteIdentityResolver",
    "SyncCursor",
    "Web3ChainClient",
]

__version__ = "0.1.0"
