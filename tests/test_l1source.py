import threading
from collections import Counter

import pytest

from rollupnode.chain import Block, BlockID, Header, Receipt, Transaction
from rollupnode.context import background
from rollupnode.l1source import (
    MAX_BLOCKS_IN_L1_RANGE,
    MAX_RECEIPT_RETRY,
    Downloader,
    ReorgError,
    Source,
)

pytestmark = pytest.mark.timeout(20)


def make_chain(length):
    headers = [Header(number=0)]
    for n in range(1, length):
        headers.append(Header(number=n, parent_hash=headers[-1].hash()))
    return headers


class FakeClient:
    def __init__(self, headers=(), blocks=(), receipts=None, failures=None):
        self.by_number = {h.number: h for h in headers}
        self.blocks = {b.hash(): b for b in blocks}
        self.receipts = receipts or {}
        self.failures = failures or {}
        self.calls = Counter()
        self.lock = threading.Lock()

    def header_by_number(self, ctx, number):
        if number is None:
            return self.by_number[max(self.by_number)]
        try:
            return self.by_number[number]
        except KeyError:
            raise LookupError("not found") from None

    def block_by_hash(self, ctx, block_hash):
        try:
            return self.blocks[block_hash]
        except KeyError:
            raise LookupError("block not found") from None

    def transaction_receipt(self, ctx, tx_hash):
        with self.lock:
            self.calls[tx_hash] += 1
            count = self.calls[tx_hash]
        if count <= self.failures.get(tx_hash, 0):
            raise ConnectionError("rpc failure")
        return self.receipts[tx_hash]


def block_with_txs(count, number=1):
    txs = tuple(Transaction(nonce=i) for i in range(count))
    block = Block(header=Header(number=number), transactions=txs)
    receipts = {tx.hash(): Receipt(tx_hash=tx.hash(), block_number=number) for tx in txs}
    return block, receipts


def test_block_ref_by_number():
    headers = make_chain(5)
    source = Source(FakeClient(headers))
    ref = source.l1_block_ref_by_number(background(), 3)
    assert ref.block == BlockID(headers[3].hash(), 3)
    assert ref.parent == BlockID(headers[2].hash(), 2)


def test_genesis_ref_parent_number_zero():
    headers = make_chain(2)
    ref = Source(FakeClient(headers)).l1_block_ref_by_number(background(), 0)
    assert ref.parent == BlockID(headers[0].parent_hash, 0)


def test_head_block_ref():
    headers = make_chain(7)
    ref = Source(FakeClient(headers)).l1_head_block_ref(background())
    assert ref.block == BlockID(headers[6].hash(), 6)


def test_missing_header_wraps_error():
    source = Source(FakeClient(make_chain(3)))
    with pytest.raises(RuntimeError) as excinfo:
        source.l1_block_ref_by_number(background(), 999)
    assert isinstance(excinfo.value.__cause__, LookupError)


def test_l1_range_returns_following_blocks():
    headers = make_chain(11)
    source = Source(FakeClient(headers))
    begin = BlockID(headers[2].hash(), 2)
    ids = source.l1_range(background(), begin)
    assert ids == [BlockID(h.hash(), h.number) for h in headers[3:]]


def test_l1_range_at_head_is_empty():
    headers = make_chain(4)
    source = Source(FakeClient(headers))
    assert source.l1_range(background(), BlockID(headers[3].hash(), 3)) == []


def test_l1_range_is_capped():
    headers = make_chain(150)
    source = Source(FakeClient(headers))
    ids = source.l1_range(background(), BlockID(headers[0].hash(), 0))
    assert len(ids) == MAX_BLOCKS_IN_L1_RANGE
    assert ids[-1].number == MAX_BLOCKS_IN_L1_RANGE
    assert [i.number for i in ids] == list(range(1, MAX_BLOCKS_IN_L1_RANGE + 1))


def test_l1_range_detects_reorg_at_begin():
    headers = make_chain(5)
    source = Source(FakeClient(headers))
    with pytest.raises(ReorgError):
        source.l1_range(background(), BlockID(b"\x99" * 32, 2))


def test_l1_range_detects_reorg_mid_range():
    headers = make_chain(8)
    headers[5] = Header(number=5, parent_hash=b"\x99" * 32)
    source = Source(FakeClient(headers))
    with pytest.raises(ReorgError):
        source.l1_range(background(), BlockID(headers[2].hash(), 2))


def test_downloader_returns_receipts_in_order():
    block, receipts = block_with_txs(12)
    got_block, got = Downloader(FakeClient(blocks=[block], receipts=receipts)).fetch(
        background(), BlockID(block.hash(), 1)
    )
    assert got_block == block
    assert [r.tx_hash for r in got] == [tx.hash() for tx in block.transactions]


def test_downloader_retries_flaky_receipts():
    block, receipts = block_with_txs(3)
    flaky = block.transactions[1].hash()
    client = FakeClient(blocks=[block], receipts=receipts, failures={flaky: 2})
    _, got = Downloader(client).fetch(background(), BlockID(block.hash(), 1))
    assert got[1] == receipts[flaky]
    assert client.calls[flaky] == 3


def test_downloader_gives_up_after_retries():
    block, receipts = block_with_txs(2)
    broken = block.transactions[0].hash()
    client = FakeClient(blocks=[block], receipts=receipts, failures={broken: 10})
    with pytest.raises(ConnectionError):
        Downloader(client).fetch(background(), BlockID(block.hash(), 1))
    assert client.calls[broken] == MAX_RECEIPT_RETRY


def test_fetch_missing_block_raises():
    source = Source(FakeClient())
    with pytest.raises(LookupError):
        source.fetch(background(), BlockID(b"\x01" * 32, 1))


def test_source_fetch_empty_block():
    block = Block(header=Header(number=4))
    got_block, got = Source(FakeClient(blocks=[block])).fetch(
        background(), BlockID(block.hash(), 4)
    )
    assert got_block == block
    assert got == []


def test_fetch_transactions_concatenates_window():
    first, _ = block_with_txs(2, number=1)
    second = Block(
        header=Header(number=2), transactions=(Transaction(nonce=7), Transaction(nonce=8))
    )
    source = Source(FakeClient(blocks=[first, second]))
    window = [BlockID(first.hash(), 1), BlockID(second.hash(), 2)]
    txs = source.fetch_transactions(background(), window)
    assert txs == list(first.transactions) + list(second.transactions)