"""Shared fixtures: a real SQLite store, seeded identities, and a scripted chain."""

import pytest
import pytest_asyncio

from helpers import ALICE, BOB, FakeChain
from ledger_indexer.decoder import EventDecoder
from ledger_indexer.identity import SqliteIdentityResolver
from ledger_indexer.mirror import LedgerMirror
from ledger_indexer.store import LedgerStore


@pytest_asyncio.fixture
async def store(tmp_path):
    ledger = LedgerStore(str(tmp_path / "ledger.db"))
    await ledger.init_db()
    yield ledger
    ledger.close()


@pytest_asyncio.fixture
async def resolver(store):
    identities = SqliteIdentityResolver(store)
    await identities.ensure_schema()
    store.conn.execute("INSERT INTO accounts (id, wallet_address) VALUES ('acct-alice', ?)", (ALICE,))
    store.conn.execute("INSERT INTO accounts (id, wallet_address) VALUES ('acct-bob', ?)", (BOB,))
    store.conn.execute(
        "INSERT INTO projects (id, external_id, status) VALUES ('proj-uuid-1', 'PROJ-1', 'pending_verification')"
    )
    store.conn.commit()
    return identities


@pytest.fixture
def decoder():
    return EventDecoder()


@pytest.fixture
def mirror(store, resolver, decoder):
    return LedgerMirror(store, resolver, decoder)


@pytest.fixture
def chain():
    return FakeChain()
