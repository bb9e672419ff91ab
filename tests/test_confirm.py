"""Tests for receipt-driven status advancement."""

import asyncio

import pytest

from helpers import minted_log, transfer_log, tx
from ledger_indexer.confirm import ReceiptConfirmer


@pytest.mark.asyncio
async def test_receipts_confirm_and_fail_pending_records(chain, mirror, store):
    await mirror.ingest(minted_log(tx(1), 10))
    await mirror.ingest(transfer_log(tx(2), 11))
    await mirror.ingest(transfer_log(tx(3), 12))
    chain.head = 20
    chain.receipts = {
        tx(1): {"status": 1, "gasUsed": 21000, "effectiveGasPrice": 20000000000},
        tx(2): {"status": "0x0", "gasUsed": "0x5208", "effectiveGasPrice": "0x1"},
    }

    counts = await ReceiptConfirmer(chain, store, mirror).confirm_pending()

    assert counts == {"confirmed": 1, "failed": 1, "waiting": 1, "error": 0}
    confirmed = await store.find_by_hash(tx(1))
    assert confirmed["status"] == "confirmed"
    assert confirmed["transaction_fee"] == "420000000000000"
    failed = await store.find_by_hash(tx(2))
    assert failed["status"] == "failed"
    assert failed["error_message"] == "transaction reverted"
    assert failed["transaction_fee"] == "21000"
    assert (await store.find_by_hash(tx(3)))["status"] == "pending"


@pytest.mark.asyncio
async def test_records_shallower_than_confirmation_depth_wait(chain, mirror, store):
    await mirror.ingest(minted_log(tx(4), 18))
    chain.head = 20
    chain.receipts = {tx(4): {"status": 1, "gasUsed": 1, "effectiveGasPrice": 1}}

    counts = await ReceiptConfirmer(chain, store, mirror, confirmations=5).confirm_pending()

    assert counts["confirmed"] == 0
    assert (await store.find_by_hash(tx(4)))["status"] == "pending"

    chain.head = 22
    await ReceiptConfirmer(chain, store, mirror, confirmations=5).confirm_pending()
    assert (await store.find_by_hash(tx(4)))["status"] == "confirmed"


@pytest.mark.asyncio
async def test_receipt_errors_are_counted_not_raised(chain, mirror, store):
    await mirror.ingest(minted_log(tx(5), 1))
    chain.head = 5

    async def broken_receipt(tx_hash):
        raise ConnectionError("rpc down")

    chain.get_transaction_receipt = broken_receipt

    counts = await ReceiptConfirmer(chain, store, mirror).confirm_pending()

    assert counts["error"] == 1


@pytest.mark.asyncio
async def test_run_loop_stops_on_event(chain, mirror, store):
    stop = asyncio.Event()
    confirmer = ReceiptConfirmer(chain, store, mirror, interval=1)

    task = asyncio.create_task(confirmer.run(stop))
    await asyncio.sleep(0)
    stop.set()

    await asyncio.wait_for(task, timeout=2)
