"""Reading blocks, receipts and block ranges from an L1 node."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from .chain import Block, BlockID, Header, L1BlockRef, Receipt, Transaction
from .context import Context

MAX_CONCURRENT_FETCHES_PER_CALL = 10
MAX_RECEIPT_RETRY = 3
MAX_BLOCKS_IN_L1_RANGE = 100

_RETRY_DELAY = 0.02


class EthClient(Protocol):
    """The L1 node queries this module needs."""

    def block_by_hash(self, ctx: Context, block_hash: bytes) -> Block: ...

    def transaction_receipt(self, ctx: Context, tx_hash: bytes) -> Receipt: ...

    def header_by_number(self, ctx: Context, number: int | None) -> Header:
        """Return the canonical header at ``number``, or the head if None."""
        ...


class Downloader:
    """Fetches a block together with all of its receipts."""

    def __init__(self, client: EthClient) -> None:
        self.client = client

    def _receipt(self, ctx: Context, tx_hash: bytes) -> Receipt:
        for attempt in range(MAX_RECEIPT_RETRY):
            try:
                return self.client.transaction_receipt(ctx, tx_hash)
            except Exception:
                if attempt == MAX_RECEIPT_RETRY - 1:
                    raise
                time.sleep(_RETRY_DELAY)
        raise AssertionError("unreachable")

    def fetch(self, ctx: Context, block_id: BlockID) -> tuple[Block, list[Receipt]]:
        """Return the block and its receipts in transaction order."""
        block = self.client.block_by_hash(ctx, block_id.hash)
        hashes = [tx.hash() for tx in block.transactions]
        if not hashes:
            return block, []
        with ThreadPoolExecutor(max_workers=MAX_CONCURRENT_FETCHES_PER_CALL) as pool:
            futures = [pool.submit(self._receipt, ctx, h) for h in hashes]
        failures = [f.exception() for f in futures if f.exception() is not None]
        if failures:
            raise failures[0]
        return block, [f.result() for f in futures]


class ReorgError(Exception):
    """The L1 chain changed underneath a read."""


class Source:
    """Block references and ranges over an L1 node."""

    def __init__(self, client: EthClient) -> None:
        self.client = client
        self.downloader = Downloader(client)

    def fetch(self, ctx: Context, block_id: BlockID) -> tuple[Block, list[Receipt]]:
        return self.downloader.fetch(ctx, block_id)

    def fetch_transactions(self, ctx: Context, window: list[BlockID]) -> list[Transaction]:
        """All transactions of the blocks in ``window``, in order."""
        return [
            tx
            for block_id in window
            for tx in self.client.block_by_hash(ctx, block_id.hash).transactions
        ]

    def _block_ref(self, ctx: Context, number: int | None) -> L1BlockRef:
        try:
            header = self.client.header_by_number(ctx, number)
        except Exception as err:
            raise RuntimeError(
                f"failed to determine block-hash of height {number}, "
                f"could not get header: {err}"
            ) from err
        height = header.number
        parent_number = height - 1 if height > 0 else 0
        return L1BlockRef(
            block=BlockID(hash=header.hash(), number=height),
            parent=BlockID(hash=header.parent_hash, number=parent_number),
        )

    def l1_head_block_ref(self, ctx: Context) -> L1BlockRef:
        return self._block_ref(ctx, None)

    def l1_block_ref_by_number(self, ctx: Context, number: int) -> L1BlockRef:
        return self._block_ref(ctx, number)

    def l1_range(self, ctx: Context, begin: BlockID) -> list[BlockID]:
        """Up to 100 canonical block ids following ``begin``."""
        try:
            canonical_begin = self.l1_block_ref_by_number(ctx, begin.number)
        except Exception as err:
            raise RuntimeError(
                f"failed to fetch L1 block {begin.number} 0x{begin.hash.hex()}: {err}"
            ) from err
        if canonical_begin.block != begin:
            raise ReorgError(
                f"Re-org at begin block. Expected: {begin}. Actual: {canonical_begin.block}"
            )

        try:
            head = self.l1_head_block_ref(ctx)
        except Exception as err:
            raise RuntimeError(f"failed to fetch head L1 block: {err}") from err

        max_blocks = MAX_BLOCKS_IN_L1_RANGE
        distance = head.block.number - begin.number
        if 0 <= distance <= max_blocks:
            max_blocks = distance
        if max_blocks == 0:
            return []

        prev_hash = begin.hash
        result: list[BlockID] = []
        for number in range(begin.number + 1, begin.number + max_blocks + 1):
            try:
                ref = self.l1_block_ref_by_number(ctx, number)
            except Exception as err:
                raise RuntimeError(f"failed to fetch L1 block {number}: {err}") from err
            if ref.parent.number != 0 and ref.parent.hash != prev_hash:
                raise ReorgError("re-organization occurred while attempting to get l1 range")
            prev_hash = ref.block.hash
            result.append(ref.block)
        return result