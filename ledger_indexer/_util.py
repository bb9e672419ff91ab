import json
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from hexbytes import HexBytes
from web3 import Web3


NULL_ADDRESS = "0x0000000000000000000000000000000000000000"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def log(msg: str) -> None:
    ts = time.strftime(TIMESTAMP_FORMAT, time.gmtime())
    sys.stderr.write(f"[{ts} UTC] {msg}\n")
    sys.stderr.flush()


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return to_hex(obj)
    if isinstance(obj, set):
        return list(obj)
    return str(obj)


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, default=_json_default, ensure_ascii=True)


def load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def project_id_hash(project_id: str) -> str:
    """Topic value the contract emits for an indexed ``string projectId``."""
    return to_hex(Web3.keccak(text=project_id))


def to_hex(value: Any) -> str:
    # HexBytes.hex() dropped its 0x prefix in hexbytes 1.0
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return "0x" + bytes(value).hex()


def to_checksum(addr: str) -> str:
    return Web3.to_checksum_address(addr)


def db_addr(addr: Optional[str]) -> Optional[str]:
    return addr.lower() if addr else addr


def is_null_address(addr: Optional[str]) -> bool:
    return not addr or addr.lower() == NULL_ADDRESS


def parse_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if value.startswith("0x"):
            return int(value, 16)
        return int(value)
    return int(value)


def decimal_text(value: Any) -> str:
    """Render a non-negative integer quantity as base-10 text."""
    number = parse_int(value)
    if number < 0:
        raise ValueError(f"negative quantity: {value}")
    return str(number)


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def normalize_timestamp(value: str) -> str:
    """Accept ISO-8601 (with or without zone / time) and return the stored UTC format."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.strftime(TIMESTAMP_FORMAT)


def normalize_log(log_entry: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(log_entry)
    if isinstance(out.get("transactionHash"), str):
        out["transactionHash"] = HexBytes(out["transactionHash"])
    if isinstance(out.get("blockHash"), str):
        out["blockHash"] = HexBytes(out["blockHash"])
    if isinstance(out.get("data"), str):
        out["data"] = HexBytes(out["data"])
    if isinstance(out.get("topics"), (list, tuple)):
        out["topics"] = [HexBytes(t) if isinstance(t, str) else t for t in out["topics"]]
    for key in ("blockNumber", "transactionIndex", "logIndex"):
        if out.get(key) is not None:
            out[key] = parse_int(out[key])
    if isinstance(out.get("address"), str):
        out["address"] = to_checksum(out["address"])
    for key in ("address", "blockHash", "blockNumber", "transactionHash"):
        out.setdefault(key, None)
    out.setdefault("logIndex", 0)
    out.setdefault("transactionIndex", 0)
    out.setdefault("data", HexBytes(b""))
    out.setdefault("topics", [])
    return out


def log_sort_key(log_entry: Dict[str, Any]) -> tuple:
    block = log_entry.get("blockNumber")
    index = log_entry.get("logIndex")
    return (
        parse_int(block) if block is not None else 0,
        parse_int(index) if index is not None else 0,
    )
