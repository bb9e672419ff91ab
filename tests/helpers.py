"""Log builders and a scripted in-memory chain client for the test suite."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_abi import encode
from eth_utils import event_abi_to_log_topic, keccak

from ledger_indexer.abi import EVENT_ABI


CONTRACT = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
ALICE = "0x" + "ab" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c0" * 20
NULL = "0x" + "00" * 20


def tx(n: int) -> str:
    return "0x" + f"{n:064x}"


def make_log(name: str, tx_hash: str, block_number: int, log_index: int = 0,
             event_abi: Optional[List[Dict[str, Any]]] = None, **args: Any) -> Dict[str, Any]:
    """Build a JSON-RPC style log for ``name`` the way the contract emits it."""
    fragment = next(item for item in event_abi or EVENT_ABI if item["name"] == name)
    topics = ["0x" + event_abi_to_log_topic(fragment).hex()]
    data_types: List[str] = []
    data_values: List[Any] = []
    for item in fragment["inputs"]:
        value = args[item["name"]]
        if item["indexed"] and item["type"] in ("string", "bytes"):
            digest = keccak(text=value) if item["type"] == "string" else keccak(value)
            topics.append("0x" + digest.hex())
        elif item["indexed"]:
            topics.append("0x" + encode([item["type"]], [value]).hex())
        else:
            data_types.append(item["type"])
            data_values.append(value)
    return {
        "address": CONTRACT,
        "topics": topics,
        "data": "0x" + encode(data_types, data_values).hex(),
        "transactionHash": tx_hash,
        "transactionIndex": "0x0",
        "blockHash": "0x" + "11" * 32,
        "blockNumber": hex(block_number),
        "logIndex": hex(log_index),
        "removed": False,
    }


def minted_log(tx_hash: str, block: int, to: str = ALICE, amount: int = 100,
               project: str = "PROJ-1", credit_id: int = 7, credit_type: int = 1) -> Dict[str, Any]:
    return make_log(
        "CreditMinted", tx_hash, block,
        creditId=credit_id, to=to, amount=amount, projectId=project, creditType=credit_type,
    )


def transfer_log(tx_hash: str, block: int, sender: str = ALICE, recipient: str = BOB,
                 value: int = 5) -> Dict[str, Any]:
    return make_log("Transfer", tx_hash, block, **{"from": sender, "to": recipient, "value": value})


class FakeChain:
    """In-memory chain client with scripted logs, receipts and failures."""

    def __init__(self, head: int = 0):
        self.head = head
        self.logs: List[Dict[str, Any]] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.queries: List[Tuple[str, int, int]] = []
        self.fail_ranges: List[Tuple[int, int]] = []
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.unsubscribe_calls = 0

    async def get_chain_head(self) -> int:
        return self.head

    async def query_logs(self, topic: str, from_block: int, to_block: int) -> List[Dict[str, Any]]:
        self.queries.append((topic, from_block, to_block))
        if (from_block, to_block) in self.fail_ranges:
            raise ValueError("query returned more than 10000 results")
        return [
            entry for entry in self.logs
            if entry["topics"][0] == topic and from_block <= int(entry["blockNumber"], 16) <= to_block
        ]

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.receipts.get(tx_hash)

    async def subscribe(self, topic: str, handler: Callable[[Dict[str, Any]], Any]) -> None:
        self.handlers[topic] = handler

    async def unsubscribe_all(self) -> None:
        self.unsubscribe_calls += 1
        self.handlers.clear()

    def push(self, entry: Dict[str, Any]) -> None:
        handler = self.handlers.get(entry["topics"][0])
        if handler is not None:
            handler(entry)

    def queried_ranges(self) -> List[Tuple[int, int]]:
        seen: List[Tuple[int, int]] = []
        for _topic, start, end in self.queries:
            if (start, end) not in seen:
                seen.append((start, end))
        return seen


async def drain() -> None:
    for _ in range(5):
        await asyncio.sleep(0)
