"""Event ABI for the carbon credit token registry.

The bundled fragments cover the five events the mirror understands. A
deployment can point ``config.abi`` at a Hardhat artifact (JSON with an
``abi`` field), a raw ABI JSON array, or a directory holding either.
"""

import os
from typing import Any, Dict, List, Optional

from ._util import load_json, log


TRANSFER = "Transfer"
APPROVAL = "Approval"
CREDIT_MINTED = "CreditMinted"
CREDIT_RETIRED = "CreditRetired"
PROJECT_VERIFIED = "ProjectVerified"

EVENT_NAMES = (CREDIT_MINTED, TRANSFER, CREDIT_RETIRED, APPROVAL, PROJECT_VERIFIED)

ARTIFACT_NAME = "CarbonCreditToken"


def _input(name: str, type_: str, indexed: bool = False) -> Dict[str, Any]:
    return {"name": name, "type": type_, "indexed": indexed}


def _event(name: str, *inputs: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "event", "name": name, "anonymous": False, "inputs": list(inputs)}


EVENT_ABI: List[Dict[str, Any]] = [
    _event(
        TRANSFER,
        _input("from", "address", True),
        _input("to", "address", True),
        _input("value", "uint256"),
    ),
    _event(
        APPROVAL,
        _input("owner", "address", True),
        _input("spender", "address", True),
        _input("value", "uint256"),
    ),
    _event(
        CREDIT_MINTED,
        _input("creditId", "uint256", True),
        _input("to", "address", True),
        _input("amount", "uint256"),
        _input("projectId", "string"),
        _input("creditType", "uint8"),
    ),
    _event(
        CREDIT_RETIRED,
        _input("creditId", "uint256", True),
        _input("by", "address", True),
        _input("amount", "uint256"),
        _input("reason", "string"),
    ),
    # an indexed string topic carries keccak(projectId), not the identifier
    _event(
        PROJECT_VERIFIED,
        _input("projectId", "string", True),
        _input("verifier", "address", True),
    ),
]


def extract_abi(abi_json: Any) -> Optional[List[Dict[str, Any]]]:
    if isinstance(abi_json, list):
        return abi_json
    if isinstance(abi_json, dict) and "abi" in abi_json:
        return abi_json.get("abi")
    return None


def find_abi_file(contract_name: str, abi_dir: str) -> Optional[str]:
    if not abi_dir or not os.path.exists(abi_dir):
        return None
    direct = os.path.join(abi_dir, f"{contract_name}.json")
    if os.path.exists(direct):
        return direct
    direct_alt = os.path.join(abi_dir, f"{contract_name}.abi.json")
    if os.path.exists(direct_alt):
        return direct_alt

    for root, _dirs, files in os.walk(abi_dir):
        for filename in files:
            if filename == f"{contract_name}.json":
                return os.path.join(root, filename)
    return None


def load_event_abi(source: Optional[Any] = None, contract_name: str = ARTIFACT_NAME) -> List[Dict[str, Any]]:
    """Return the event fragments from ``source``, or the bundled ABI when it is empty."""
    if not source:
        return EVENT_ABI
    if isinstance(source, list):
        abi = source
        abi_path = "inline ABI"
    else:
        abi_path = str(source)
        if os.path.isdir(abi_path):
            abi_path = find_abi_file(contract_name, abi_path) or ""
        if not abi_path or not os.path.exists(abi_path):
            raise FileNotFoundError(f"ABI path not found for {contract_name}: {source}")
        abi = extract_abi(load_json(abi_path))
        if abi is None:
            raise ValueError(f"No ABI array in {abi_path}")

    events = [item for item in abi if isinstance(item, dict) and item.get("type") == "event"]
    known = {item.get("name") for item in events}
    missing = [name for name in EVENT_NAMES if name not in known]
    if missing:
        log(f"WARN: ABI has no fragment for {', '.join(missing)}; those events will be unrecognized")
    log(f"Loaded {len(events)} event fragments from {abi_path}")
    return events
