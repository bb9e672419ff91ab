"""JSON-RPC chain client: HTTP for reads, websocket ``eth_subscribe`` for pushes."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import websockets
from web3 import Web3
from web3.exceptions import TransactionNotFound

from ._util import log, log_sort_key, to_checksum
from .errors import ConfigError


LogHandler = Callable[[Dict[str, Any]], Any]

MAX_BACKOFF = 60


class Web3ChainClient:
    def __init__(
        self,
        rpc_http: Optional[str],
        contract_address: str,
        rpc_ws: Optional[str] = None,
        reconnect_delay: int = 5,
    ):
        if not contract_address:
            raise ConfigError("contract_address is required")
        self.rpc_http = rpc_http
        self.rpc_ws = rpc_ws
        self.contract_address = to_checksum(contract_address)
        self.reconnect_delay = reconnect_delay
        self.w3_http = Web3(Web3.HTTPProvider(rpc_http)) if rpc_http else None
        self._subscriptions: Dict[str, asyncio.Task] = {}
        self._ws_id = 0

    def _http(self) -> Web3:
        if not self.w3_http:
            raise ConfigError("rpc_http is required for chain queries")
        return self.w3_http

    async def get_chain_head(self) -> int:
        w3 = self._http()
        return await asyncio.to_thread(lambda: w3.eth.block_number)

    async def query_logs(self, topic: str, from_block: int, to_block: int) -> List[Dict[str, Any]]:
        w3 = self._http()
        logs = await asyncio.to_thread(
            w3.eth.get_logs,
            {
                "fromBlock": from_block,
                "toBlock": to_block,
                "address": self.contract_address,
                "topics": [topic],
            },
        )
        return sorted((dict(entry) for entry in logs), key=log_sort_key)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        w3 = self._http()
        try:
            receipt = await asyncio.to_thread(w3.eth.get_transaction_receipt, tx_hash)
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt is not None else None

    async def subscribe(self, topic: str, handler: LogHandler) -> None:
        if not self.rpc_ws:
            raise ConfigError("rpc_ws is required for websocket subscription")
        if topic in self._subscriptions:
            raise RuntimeError(f"already subscribed to {topic}")
        self._subscriptions[topic] = asyncio.get_running_loop().create_task(
            self._subscription_loop(topic, handler)
        )

    async def unsubscribe_all(self) -> None:
        tasks = list(self._subscriptions.values())
        self._subscriptions.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _subscription_loop(self, topic: str, handler: LogHandler) -> None:
        backoff = max(self.reconnect_delay, 1)

        while True:
            try:
                async with websockets.connect(self.rpc_ws, ping_interval=20, ping_timeout=20) as ws:
                    sub_id = await self._ws_subscribe(ws, topic, handler)
                    log(f"Subscribed to {topic[:10]}: {sub_id}")
                    backoff = max(self.reconnect_delay, 1)

                    async for message in ws:
                        payload = json.loads(message)
                        if payload.get("method") == "eth_subscription":
                            entry = payload.get("params", {}).get("result")
                            if entry:
                                handler(entry)
                        elif payload.get("id") is not None and payload.get("error"):
                            log(f"WS error: {payload}")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                log(f"Websocket error ({topic[:10]}): {exc}")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)

    async def _ws_subscribe(self, ws: Any, topic: str, handler: LogHandler) -> str:
        self._ws_id += 1
        req_id = self._ws_id
        payload = {
            "jsonrpc": "2.0",
            "id": req_id,
            "method": "eth_subscribe",
            "params": ["logs", {"address": self.contract_address, "topics": [topic]}],
        }
        await ws.send(json.dumps(payload))

        while True:
            message = await ws.recv()
            data = json.loads(message)
            if data.get("id") == req_id:
                if "result" in data:
                    return data["result"]
                raise RuntimeError(f"Subscribe failed: {data}")
            if data.get("method") == "eth_subscription":
                entry = data.get("params", {}).get("result")
                if entry:
                    handler(entry)
