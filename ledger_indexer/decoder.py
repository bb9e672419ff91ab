"""Raw log -> domain event decoding.

``EventDecoder.decode`` never raises and never performs I/O. It returns one
of the domain events in ``events``, ``Unrecognized`` when the first topic
matches no known signature, or ``DecodeFailure`` when the signature matched
but the payload could not be decoded.
"""

from typing import Any, Callable, Dict, List, Optional

from eth_utils import event_abi_to_log_topic
from web3 import Web3
from web3._utils.events import get_event_data

from . import abi as abi_mod
from ._util import db_addr, decimal_text, normalize_log, project_id_hash, to_hex
from .events import (
    Approved,
    DecodeFailure,
    Minted,
    ProjectVerified,
    Retired,
    Transferred,
    Unrecognized,
)


def _minted(args: Dict[str, Any], **meta: Any) -> Minted:
    return Minted(
        credit_id=decimal_text(args["creditId"]),
        recipient=db_addr(args["to"]),
        amount=decimal_text(args["amount"]),
        project_ref=str(args["projectId"]),
        credit_type=int(args["creditType"]),
        **meta,
    )


def _transferred(args: Dict[str, Any], **meta: Any) -> Transferred:
    return Transferred(
        sender=db_addr(args["from"]),
        recipient=db_addr(args["to"]),
        amount=decimal_text(args["value"]),
        **meta,
    )


def _retired(args: Dict[str, Any], **meta: Any) -> Retired:
    retired_by = args["by"] if "by" in args else args["retiredBy"]
    return Retired(
        credit_id=decimal_text(args["creditId"]),
        retired_by=db_addr(retired_by),
        amount=decimal_text(args["amount"]),
        reason=str(args.get("reason", "")),
        **meta,
    )


def _approved(args: Dict[str, Any], **meta: Any) -> Approved:
    return Approved(
        owner=db_addr(args["owner"]),
        spender=db_addr(args["spender"]),
        amount=decimal_text(args["value"]),
        **meta,
    )


def _project_verified(args: Dict[str, Any], **meta: Any) -> ProjectVerified:
    verifier = args.get("verifier")
    project_id = args["projectId"]
    if isinstance(project_id, (bytes, bytearray)):
        project_ref = None
        project_hash = to_hex(project_id)
    else:
        project_ref = str(project_id)
        project_hash = project_id_hash(project_ref)
    return ProjectVerified(
        project_hash=project_hash,
        project_ref=project_ref,
        verifier=db_addr(verifier) if verifier else None,
        **meta,
    )


BUILDERS: Dict[str, Callable[..., Any]] = {
    abi_mod.CREDIT_MINTED: _minted,
    abi_mod.TRANSFER: _transferred,
    abi_mod.CREDIT_RETIRED: _retired,
    abi_mod.APPROVAL: _approved,
    abi_mod.PROJECT_VERIFIED: _project_verified,
}


class EventDecoder:
    def __init__(self, event_abi: Optional[List[Dict[str, Any]]] = None, codec: Any = None):
        self.codec = codec if codec is not None else Web3().codec
        self.topic_to_abi: Dict[str, Dict[str, Any]] = {}
        self.name_to_topic: Dict[str, str] = {}
        for item in event_abi if event_abi is not None else abi_mod.EVENT_ABI:
            if item.get("type") != "event" or item.get("anonymous"):
                continue
            if item.get("name") not in BUILDERS:
                continue
            fragment = dict(item, anonymous=False)
            topic = to_hex(event_abi_to_log_topic(fragment))
            self.topic_to_abi[topic] = fragment
            self.name_to_topic[fragment["name"]] = topic

    @property
    def event_names(self) -> List[str]:
        return [name for name in abi_mod.EVENT_NAMES if name in self.name_to_topic]

    def topic_for(self, event_name: str) -> str:
        return self.name_to_topic[event_name]

    def decode(self, raw_log: Dict[str, Any]):
        try:
            log_entry = normalize_log(raw_log)
        except Exception as exc:
            return DecodeFailure(None, f"malformed log: {exc}")

        topics = log_entry.get("topics") or []
        if not topics:
            return Unrecognized()
        try:
            topic0 = to_hex(topics[0])
        except (TypeError, ValueError):
            return DecodeFailure(None, f"unreadable topic: {topics[0]!r}")
        event_abi = self.topic_to_abi.get(topic0)
        if event_abi is None:
            return Unrecognized(topic0)

        name = event_abi["name"]
        tx_hash = log_entry.get("transactionHash")
        tx_hex = to_hex(tx_hash) if tx_hash else None
        if not tx_hex:
            return DecodeFailure(name, "log has no transaction hash")
        try:
            event_data = get_event_data(self.codec, event_abi, log_entry)
            return BUILDERS[name](
                dict(event_data["args"]),
                tx_hash=tx_hex,
                block_number=log_entry.get("blockNumber"),
                log_index=log_entry.get("logIndex") or 0,
            )
        except Exception as exc:
            return DecodeFailure(name, str(exc) or type(exc).__name__, tx_hex)
