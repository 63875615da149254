"""Block identifiers and the chain objects passed between components."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

ZERO_HASH = bytes(32)


def short_hex(value: bytes) -> str:
    """Abbreviate a hash as its first and last three bytes in hex."""
    return f"{value[:3].hex()}..{value[-3:].hex()}"


def _digest(kind: str, *parts: object) -> bytes:
    h = hashlib.sha3_256(kind.encode())
    for part in parts:
        if part is None:
            tag, raw = b"n", b""
        elif isinstance(part, (bytes, bytearray)):
            tag, raw = b"b", bytes(part)
        else:
            tag, raw = b"i", str(part).encode()
        h.update(tag + len(raw).to_bytes(8, "big") + raw)
    return h.digest()


@dataclass(frozen=True)
class BlockID:
    hash: bytes
    number: int

    def __str__(self) -> str:
        return f"0x{self.hash.hex()}:{self.number}"

    def terminal_string(self) -> str:
        return f"{short_hex(self.hash)}:{self.number}"


@dataclass(frozen=True)
class L1BlockRef:
    block: BlockID
    parent: BlockID

    def __str__(self) -> str:
        return str(self.block)

    def terminal_string(self) -> str:
        return self.block.terminal_string()


@dataclass(frozen=True)
class L2BlockRef:
    block: BlockID
    parent: BlockID
    l1_origin: BlockID

    def __str__(self) -> str:
        return str(self.block)

    def terminal_string(self) -> str:
        return self.block.terminal_string()


@dataclass(frozen=True)
class Transaction:
    chain_id: int = 0
    nonce: int = 0
    gas_tip_cap: int = 0
    gas_fee_cap: int = 0
    gas: int = 0
    to: bytes | None = None
    value: int = 0
    data: bytes = b""

    def hash(self) -> bytes:
        """A 32-byte digest of all transaction fields."""
        return _digest(
            "tx",
            self.chain_id,
            self.nonce,
            self.gas_tip_cap,
            self.gas_fee_cap,
            self.gas,
            self.to,
            self.value,
            self.data,
        )


@dataclass(frozen=True)
class Receipt:
    tx_hash: bytes
    block_number: int
    gas_used: int = 0
    block_hash: bytes = ZERO_HASH


@dataclass(frozen=True)
class Header:
    number: int
    parent_hash: bytes = ZERO_HASH
    time: int = 0
    base_fee: int | None = None
    root: bytes = ZERO_HASH
    receipt_hash: bytes = ZERO_HASH
    tx_hash: bytes = ZERO_HASH

    def hash(self) -> bytes:
        """A 32-byte digest of all header fields."""
        return _digest(
            "header",
            self.number,
            self.parent_hash,
            self.time,
            self.base_fee,
            self.root,
            self.receipt_hash,
            self.tx_hash,
        )


@dataclass(frozen=True)
class Block:
    header: Header
    transactions: tuple[Transaction, ...] = ()

    @property
    def number(self) -> int:
        return self.header.number

    @property
    def parent_hash(self) -> bytes:
        return self.header.parent_hash

    def hash(self) -> bytes:
        return self.header.hash()