"""Types exchanged with the L2 execution engine over the Engine API."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from .chain import ZERO_HASH, BlockID

_HEX_DIGITS = re.compile(r"[0-9a-fA-F]*")


class ErrorCode(IntEnum):
    UNAVAILABLE_PAYLOAD = -32001


def _parse_hex(text: str) -> bytes:
    if not isinstance(text, str):
        raise ValueError(f"expected a hex string, got {type(text).__name__}")
    if not text.startswith(("0x", "0X")):
        raise ValueError("hex string without 0x prefix")
    digits = text[2:]
    if len(digits) % 2:
        raise ValueError("hex string of odd length")
    if not _HEX_DIGITS.fullmatch(digits):
        raise ValueError("invalid hex string")
    return bytes.fromhex(digits)


def _hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def _parse_fixed(text: str, size: int) -> bytes:
    raw = _parse_hex(text)
    if len(raw) != size:
        raise ValueError(f"hex string has length {len(raw) * 2}, want {size * 2}")
    return raw


def _fixed(value: bytes, size: int, what: str) -> bytes:
    raw = bytes(value)
    if len(raw) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(raw)}")
    return raw


class _FixedBytes(bytes):
    size = 0

    def __new__(cls, value: bytes | str | None = None):
        if value is None:
            raw = bytes(cls.size)
        elif isinstance(value, str):
            raw = _parse_fixed(value, cls.size)
        elif isinstance(value, int):
            raise TypeError(f"{cls.__name__} takes bytes or a hex string")
        else:
            raw = _fixed(value, cls.size, cls.__name__)
        return super().__new__(cls, raw)

    def __str__(self) -> str:
        return _hex(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({_hex(self)!r})"


class Bytes32(_FixedBytes):
    """Exactly 32 bytes, written as 0x-prefixed hex."""

    size = 32


class Bytes256(_FixedBytes):
    """Exactly 256 bytes, written as 0x-prefixed hex."""

    size = 256


class BytesMax32(bytes):
    """At most 32 bytes, written as 0x-prefixed hex."""

    def __new__(cls, value: bytes | str = b""):
        if isinstance(value, str):
            if len(value) > 64 + 2:
                raise ValueError(
                    "input too long, expected at most 32 hex-encoded, 0x-prefixed, bytes"
                )
            raw = _parse_hex(value)
        elif isinstance(value, int):
            raise TypeError("BytesMax32 takes bytes or a hex string")
        else:
            raw = bytes(value)
            if len(raw) > 32:
                raise ValueError(f"BytesMax32 holds at most 32 bytes, got {len(raw)}")
        return super().__new__(cls, raw)

    def __str__(self) -> str:
        return _hex(self)

    def __repr__(self) -> str:
        return f"BytesMax32({_hex(self)!r})"


def encode_quantity(value: int) -> str:
    """Encode a non-negative integer as a 0x-prefixed hex quantity."""
    if value < 0:
        raise ValueError("quantity cannot be negative")
    return hex(value)


def _decode_quantity(text: str, bits: int) -> int:
    if not isinstance(text, str):
        raise ValueError(f"expected a hex string, got {type(text).__name__}")
    if not text:
        raise ValueError("empty hex string")
    if not text.startswith(("0x", "0X")):
        raise ValueError("hex string without 0x prefix")
    digits = text[2:]
    if not digits:
        raise ValueError('hex string "0x"')
    if len(digits) > 1 and digits[0] == "0":
        raise ValueError("hex number with leading zero digits")
    if not _HEX_DIGITS.fullmatch(digits):
        raise ValueError("invalid hex string")
    if len(digits) > bits // 4:
        raise ValueError(f"hex number > {bits} bits")
    return int(digits, 16)


def decode_quantity(text: str) -> int:
    """Decode a 0x-prefixed hex quantity of at most 64 bits."""
    return _decode_quantity(text, 64)


@dataclass
class ExecutionPayload:
    parent_hash: bytes = ZERO_HASH
    fee_recipient: bytes = bytes(20)
    state_root: Bytes32 = field(default_factory=Bytes32)
    receipts_root: Bytes32 = field(default_factory=Bytes32)
    logs_bloom: Bytes256 = field(default_factory=Bytes256)
    random: Bytes32 = field(default_factory=Bytes32)
    block_number: int = 0
    gas_limit: int = 0
    gas_used: int = 0
    timestamp: int = 0
    extra_data: BytesMax32 = field(default_factory=BytesMax32)
    base_fee_per_gas: int = 0
    block_hash: bytes = ZERO_HASH
    # Each entry is an EIP-2718 typed or legacy transaction encoding.
    transactions: list[bytes] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.parent_hash = _fixed(self.parent_hash, 32, "parent_hash")
        self.fee_recipient = _fixed(self.fee_recipient, 20, "fee_recipient")
        self.state_root = Bytes32(self.state_root)
        self.receipts_root = Bytes32(self.receipts_root)
        self.logs_bloom = Bytes256(self.logs_bloom)
        self.random = Bytes32(self.random)
        self.extra_data = BytesMax32(self.extra_data)
        self.block_hash = _fixed(self.block_hash, 32, "block_hash")
        self.transactions = [bytes(tx) for tx in self.transactions]

    def id(self) -> BlockID:
        return BlockID(hash=self.block_hash, number=self.block_number)

    def to_json(self) -> dict[str, Any]:
        return {
            "parentHash": _hex(self.parent_hash),
            "feeRecipient": _hex(self.fee_recipient),
            "stateRoot": str(self.state_root),
            "receiptsRoot": str(self.receipts_root),
            "logsBloom": str(self.logs_bloom),
            "random": str(self.random),
            "blockNumber": encode_quantity(self.block_number),
            "gasLimit": encode_quantity(self.gas_limit),
            "gasUsed": encode_quantity(self.gas_used),
            "timestamp": encode_quantity(self.timestamp),
            "extraData": str(self.extra_data),
            "baseFeePerGas": encode_quantity(self.base_fee_per_gas),
            "blockHash": _hex(self.block_hash),
            "transactions": [_hex(tx) for tx in self.transactions],
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ExecutionPayload:
        return cls(
            parent_hash=_parse_fixed(data["parentHash"], 32),
            fee_recipient=_parse_fixed(data["feeRecipient"], 20),
            state_root=Bytes32(data["stateRoot"]),
            receipts_root=Bytes32(data["receiptsRoot"]),
            logs_bloom=Bytes256(data["logsBloom"]),
            random=Bytes32(data["random"]),
            block_number=decode_quantity(data["blockNumber"]),
            gas_limit=decode_quantity(data["gasLimit"]),
            gas_used=decode_quantity(data["gasUsed"]),
            timestamp=decode_quantity(data["timestamp"]),
            extra_data=BytesMax32(data["extraData"]),
            base_fee_per_gas=_decode_quantity(data["baseFeePerGas"], 256),
            block_hash=_parse_fixed(data["blockHash"], 32),
            transactions=[_parse_hex(tx) for tx in data.get("transactions") or []],
        )


@dataclass
class PayloadAttributes:
    timestamp: int = 0
    random: Bytes32 = field(default_factory=Bytes32)
    suggested_fee_recipient: bytes = bytes(20)
    # Forced to the start of the block's transaction list.
    transactions: list[bytes] = field(default_factory=list)
    no_tx_pool: bool = False

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "timestamp": encode_quantity(self.timestamp),
            "random": str(Bytes32(self.random)),
            "suggestedFeeRecipient": _hex(
                _fixed(self.suggested_fee_recipient, 20, "suggested_fee_recipient")
            ),
        }
        if self.transactions:
            out["transactions"] = [_hex(tx) for tx in self.transactions]
        if self.no_tx_pool:
            out["noTxPool"] = True
        return out


class ExecutePayloadStatus(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    SYNCING = "SYNCING"


def _status(enum: type[Enum], value: str) -> Any:
    try:
        return enum(value)
    except ValueError:
        return value


@dataclass
class ExecutePayloadResult:
    # An unrecognised status is kept as the raw string.
    status: ExecutePayloadStatus | str
    latest_valid_hash: bytes = ZERO_HASH
    validation_error: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ExecutePayloadResult:
        latest = data.get("latestValidHash")
        return cls(
            status=_status(ExecutePayloadStatus, data.get("status", "")),
            latest_valid_hash=ZERO_HASH if latest is None else _parse_fixed(latest, 32),
            validation_error=data.get("validationError") or "",
        )


@dataclass
class ForkchoiceState:
    head_block_hash: bytes = ZERO_HASH
    safe_block_hash: bytes = ZERO_HASH
    finalized_block_hash: bytes = ZERO_HASH

    def to_json(self) -> dict[str, Any]:
        return {
            "headBlockHash": _hex(_fixed(self.head_block_hash, 32, "head_block_hash")),
            "safeBlockHash": _hex(_fixed(self.safe_block_hash, 32, "safe_block_hash")),
            "finalizedBlockHash": _hex(
                _fixed(self.finalized_block_hash, 32, "finalized_block_hash")
            ),
        }


class ForkchoiceUpdatedStatus(str, Enum):
    SUCCESS = "SUCCESS"
    SYNCING = "SYNCING"


@dataclass
class ForkchoiceUpdatedResult:
    status: ForkchoiceUpdatedStatus | str
    payload_id: bytes | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ForkchoiceUpdatedResult:
        payload_id = data.get("payloadId")
        return cls(
            status=_status(ForkchoiceUpdatedStatus, data.get("status", "")),
            payload_id=None if payload_id is None else _parse_hex(payload_id),
        )