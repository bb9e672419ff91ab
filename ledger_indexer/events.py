"""Typed outcomes of decoding one raw log."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from ._util import is_null_address


class RecordKind(str, Enum):
    MINT = "mint"
    TRANSFER = "transfer"
    RETIRE = "retire"
    APPROVE = "approve"
    BURN = "burn"


class RecordStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


TERMINAL_STATUSES = (RecordStatus.CONFIRMED, RecordStatus.FAILED)


@dataclass(frozen=True)
class _Base:
    tx_hash: str
    block_number: Optional[int]
    log_index: int = field(default=0, kw_only=True)


@dataclass(frozen=True)
class Minted(_Base):
    credit_id: str
    recipient: str
    amount: str
    project_ref: str
    credit_type: int


@dataclass(frozen=True)
class Transferred(_Base):
    sender: str
    recipient: str
    amount: str

    @property
    def is_mint_or_burn_side_effect(self) -> bool:
        return self.amount == "0" or is_null_address(self.sender) or is_null_address(self.recipient)


@dataclass(frozen=True)
class Retired(_Base):
    credit_id: str
    retired_by: str
    amount: str
    reason: str = ""


@dataclass(frozen=True)
class Approved(_Base):
    owner: str
    spender: str
    amount: str


@dataclass(frozen=True)
class ProjectVerified(_Base):
    # keccak of the external project id; project_ref is None when only the
    # topic hash was on chain
    project_hash: str
    project_ref: Optional[str] = None
    verifier: Optional[str] = None


DomainEvent = Union[Minted, Transferred, Retired, Approved, ProjectVerified]


@dataclass(frozen=True)
class Unrecognized:
    topic: Optional[str] = None


@dataclass(frozen=True)
class DecodeFailure:
    event_name: Optional[str]
    reason: str
    tx_hash: Optional[str] = None
