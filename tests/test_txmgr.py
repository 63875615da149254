import threading

import pytest

from rollupnode.chain import Receipt, Transaction
from rollupnode.context import DeadlineExceeded, background
from rollupnode.sendstate import NonceTooLowError
from rollupnode.txmgr import (
    Config,
    SimpleTxManager,
    calc_gas_fee_cap,
    wait_mined,
)

QUERY_INTERVAL = 0.01


class RpcFailure(Exception):
    pass


def config_with_num_confs(num_confirmations):
    return Config(
        resubmission_timeout=0.2,
        receipt_query_interval=QUERY_INTERVAL,
        num_confirmations=num_confirmations,
        safe_abort_nonce_too_low_count=3,
    )


class GasPricer:
    def __init__(self, mine_at_epoch):
        self.epoch = 0
        self.mine_at_epoch = mine_at_epoch
        self.base_gas_tip_fee = 5
        self.base_base_fee = 7
        self.lock = threading.Lock()

    def fees_for_epoch(self, epoch):
        tip = self.base_gas_tip_fee * epoch
        return tip, calc_gas_fee_cap(self.base_base_fee * epoch, tip)

    def exp_gas_fee_cap(self):
        return self.fees_for_epoch(self.mine_at_epoch)[1]

    def should_mine(self, gas_fee_cap):
        return gas_fee_cap == self.exp_gas_fee_cap()

    def sample(self):
        with self.lock:
            self.epoch += 1
            return self.fees_for_epoch(self.epoch)


class MockBackend:
    def __init__(self):
        self.lock = threading.Lock()
        self.block_height = 0
        self.mined = {}

    def mine(self, tx_hash, gas_fee_cap):
        with self.lock:
            self.block_height += 1
            if tx_hash is not None:
                self.mined[tx_hash] = (gas_fee_cap, self.block_height)

    def block_number(self, ctx):
        with self.lock:
            return self.block_height

    def transaction_receipt(self, ctx, tx_hash):
        with self.lock:
            info = self.mined.get(tx_hash)
        if info is None:
            return None
        gas_fee_cap, block_number = info
        return Receipt(tx_hash=tx_hash, block_number=block_number, gas_used=gas_fee_cap)


def harness(num_confs=1):
    backend = MockBackend()
    mgr = SimpleTxManager("TEST", config_with_num_confs(num_confs), backend)
    return mgr, backend, GasPricer(3)


def updater(pricer):
    def update_gas_price(ctx):
        tip, fee_cap = pricer.sample()
        return Transaction(gas_tip_cap=tip, gas_fee_cap=fee_cap)

    return update_gas_price


def later(delay, fn):
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()


@pytest.mark.timeout(30)
def test_confirm_at_min_gas_price():
    mgr, backend, _ = harness()
    pricer = GasPricer(1)

    def send_tx(ctx, tx):
        if pricer.should_mine(tx.gas_fee_cap):
            backend.mine(tx.hash(), tx.gas_fee_cap)

    receipt = mgr.send(background(), updater(pricer), send_tx)
    assert receipt.gas_used == pricer.exp_gas_fee_cap()


@pytest.mark.timeout(30)
def test_never_confirm_cancel():
    mgr, _, pricer = harness()
    ctx = background().with_timeout(1.0)
    with pytest.raises(DeadlineExceeded):
        mgr.send(ctx, updater(pricer), lambda ctx, tx: None)


@pytest.mark.timeout(30)
def test_confirms_at_higher_gas_price():
    mgr, backend, pricer = harness()

    def send_tx(ctx, tx):
        if pricer.should_mine(tx.gas_fee_cap):
            backend.mine(tx.hash(), tx.gas_fee_cap)

    receipt = mgr.send(background(), updater(pricer), send_tx)
    assert receipt.gas_used == pricer.exp_gas_fee_cap()


@pytest.mark.timeout(30)
def test_blocks_on_failing_rpc_calls():
    mgr, _, pricer = harness()

    def send_tx(ctx, tx):
        raise RpcFailure("rpc failure")

    ctx = background().with_timeout(1.0)
    with pytest.raises(DeadlineExceeded):
        mgr.send(ctx, updater(pricer), send_tx)


@pytest.mark.timeout(30)
def test_only_one_publication_succeeds():
    mgr, backend, pricer = harness()

    def send_tx(ctx, tx):
        if not pricer.should_mine(tx.gas_fee_cap):
            raise RpcFailure("rpc failure")
        backend.mine(tx.hash(), tx.gas_fee_cap)

    receipt = mgr.send(background(), updater(pricer), send_tx)
    assert receipt.gas_used == pricer.exp_gas_fee_cap()


@pytest.mark.timeout(30)
def test_confirms_min_gas_price_after_bumping():
    mgr, backend, pricer = harness()

    def send_tx(ctx, tx):
        if pricer.should_mine(tx.gas_fee_cap):
            later(1.0, lambda: backend.mine(tx.hash(), tx.gas_fee_cap))

    receipt = mgr.send(background(), updater(pricer), send_tx)
    assert receipt.gas_used == pricer.exp_gas_fee_cap()


@pytest.mark.timeout(30)
def test_doesnt_abort_nonce_too_low_after_mining_tx():
    mgr, backend, pricer = harness(num_confs=2)

    def send_tx(ctx, tx):
        if tx.gas_fee_cap < pricer.exp_gas_fee_cap():
            return
        if pricer.should_mine(tx.gas_fee_cap):
            backend.mine(tx.hash(), tx.gas_fee_cap)
            later(1.0, lambda: backend.mine(None, None))
            return
        raise NonceTooLowError()

    receipt = mgr.send(background(), updater(pricer), send_tx)
    assert receipt.gas_used == pricer.exp_gas_fee_cap()


@pytest.mark.timeout(30)
def test_wait_mined_returns_receipt_on_first_success():
    _, backend, _ = harness()
    tx = Transaction()
    backend.mine(tx.hash(), 0)
    receipt = wait_mined(background(), backend, tx, 0.05, 1)
    assert receipt.tx_hash == tx.hash()


@pytest.mark.timeout(30)
def test_wait_mined_can_be_canceled():
    _, backend, _ = harness()
    ctx = background().with_timeout(0.5)
    with pytest.raises(DeadlineExceeded):
        wait_mined(ctx, backend, Transaction(), 0.05, 1)


@pytest.mark.timeout(30)
def test_wait_mined_multiple_confs():
    _, backend, _ = harness(num_confs=2)
    tx = Transaction()
    backend.mine(tx.hash(), 0)

    with pytest.raises(DeadlineExceeded):
        wait_mined(background().with_timeout(0.5), backend, tx, 0.05, 2)

    backend.mine(None, None)
    receipt = wait_mined(background().with_timeout(0.5), backend, tx, 0.05, 2)
    assert receipt.tx_hash == tx.hash()


def test_manager_rejects_zero_confs():
    with pytest.raises(ValueError):
        harness(num_confs=0)


class FailingBackend:
    def __init__(self):
        self.block_number_ok = False
        self.receipt_ok = False

    def block_number(self, ctx):
        if not self.block_number_ok:
            self.block_number_ok = True
            raise RpcFailure("rpc failure")
        return 1

    def transaction_receipt(self, ctx, tx_hash):
        if not self.receipt_ok:
            self.receipt_ok = True
            raise RpcFailure("rpc failure")
        return Receipt(tx_hash=tx_hash, block_number=1)


@pytest.mark.timeout(30)
def test_wait_mined_returns_receipt_after_failure():
    tx = Transaction()
    receipt = wait_mined(background(), FailingBackend(), tx, 0.05, 1)
    assert receipt.tx_hash == tx.hash()


def test_calc_gas_fee_cap():
    assert calc_gas_fee_cap(7, 5) == 19
    assert calc_gas_fee_cap(0, 5) == 5