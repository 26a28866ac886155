from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from enum import StrEnum

from btccustody.domain.errors import InvalidAmountError, TaskValidationError

AVAILABLE_SLOT = 0
NATIVE_DECIMALS = 18
BTC_DECIMALS = 8
DEFAULT_AMOUNT_GRANULARITY = 10 ** (NATIVE_DECIMALS - BTC_DECIMALS)
DEFAULT_MIN_AMOUNT = 10**15


class TaskState(StrEnum):
    NONE = "NONE"
    CREATED = "CREATED"
    RECEIVED = "RECEIVED"
    TIMELOCK_INITIALIZED = "TIMELOCK_INITIALIZED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"


class TaskEventType(StrEnum):
    CREATED = "CREATED"
    CANCELLED = "CANCELLED"
    FUNDS_RECEIVED = "FUNDS_RECEIVED"
    TIMELOCK_INITIALIZED = "TIMELOCK_INITIALIZED"
    TIMELOCK_PROCESSED = "TIMELOCK_PROCESSED"
    BURNED = "BURNED"
    RESERVE_FUNDED = "RESERVE_FUNDED"


def normalize_deposit_address(address: str) -> str:
    normalized = address.strip().lower()
    if not normalized:
        raise TaskValidationError("deposit address cannot be empty")
    return normalized


@dataclass(frozen=True)
class DepositTask:
    task_id: int
    partner_id: int
    deposit_address: str
    state: TaskState
    timelock_end_time: int
    deadline: int
    amount: int
    btc_address: str
    btc_pubkey: bytes
    funding_tx_hash: bytes | None = None
    funding_tx_out: int | None = None
    timelock_tx_hash: bytes | None = None
    timelock_tx_out: int | None = None
    witness_script: bytes | None = None
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "task_id": self.task_id,
            "partner_id": self.partner_id,
            "deposit_address": self.deposit_address,
            "state": self.state.value,
            "timelock_end_time": self.timelock_end_time,
            "deadline": self.deadline,
            "amount": str(self.amount),
            "btc_address": self.btc_address,
            "btc_pubkey": self.btc_pubkey.hex(),
            "funding_tx_hash": _hex_or_none(self.funding_tx_hash),
            "funding_tx_out": self.funding_tx_out,
            "timelock_tx_hash": _hex_or_none(self.timelock_tx_hash),
            "timelock_tx_out": self.timelock_tx_out,
            "witness_script": _hex_or_none(self.witness_script),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class TaskEvent:
    event_id: str
    task_id: int
    event_type: TaskEventType
    ts: int
    actor: str
    payload: dict[str, object]

    def payload_json(self) -> str:
        return json.dumps(self.payload, sort_keys=True, separators=(",", ":"), default=_json_default)


@dataclass(frozen=True)
class ReserveBalance:
    balance: int
    retired_total: int


@dataclass(frozen=True)
class AmountPolicy:
    """Native amounts carry 18 decimals but only satoshi precision is meaningful."""

    min_amount: int = DEFAULT_MIN_AMOUNT
    granularity: int = DEFAULT_AMOUNT_GRANULARITY

    def validate(self, amount: int) -> int:
        if amount <= self.min_amount:
            raise InvalidAmountError(f"amount {amount} must exceed minimum {self.min_amount}")
        if amount % self.granularity:
            raise InvalidAmountError(
                f"amount {amount} is not a multiple of granularity {self.granularity}"
            )
        return amount


def make_event_id(task_id: int, seq: int, event_type: TaskEventType) -> str:
    digest = hashlib.sha256(f"{task_id}:{seq}:{event_type.value}".encode()).hexdigest()[:12]
    return f"ce:{digest}"


def _hex_or_none(value: bytes | None) -> str | None:
    return value.hex() if value is not None else None


def _json_default(value: object) -> object:
    if isinstance(value, bytes):
        return value.hex()
    raise TypeError(f"Unsupported payload type: {type(value).__name__}")
