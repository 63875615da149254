"""Publishing transactions with gas-price bumping until one confirms."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Protocol

from .chain import Receipt, Transaction
from .context import Canceled, Context
from .sendstate import SendState

log = logging.getLogger(__name__)

UpdateGasPriceFunc = Callable[[Context], Transaction]
SendTransactionFunc = Callable[[Context, Transaction], None]


@dataclass
class Config:
    """Parameters of a :class:`SimpleTxManager`; durations are in seconds."""

    name: str = ""
    resubmission_timeout: float = 0.0
    receipt_query_interval: float = 1.0
    num_confirmations: int = 1
    safe_abort_nonce_too_low_count: int = 1


class ReceiptSource(Protocol):
    """The backend queries needed to detect confirmation."""

    def block_number(self, ctx: Context) -> int:
        """Return the most recent block number."""
        ...

    def transaction_receipt(self, ctx: Context, tx_hash: bytes) -> Receipt | None:
        """Return the receipt for ``tx_hash``, or None if it is not mined."""
        ...


def _is_canceled(err: BaseException) -> bool:
    return isinstance(err, Canceled) or "context canceled" in str(err)


class SimpleTxManager:
    """Republishes a transaction at rising gas prices until one confirms."""

    def __init__(self, name: str, cfg: Config, backend: ReceiptSource) -> None:
        if cfg.num_confirmations == 0:
            raise ValueError("txmgr: num_confirmations cannot be zero")
        self.name = name
        self.cfg = cfg
        self.backend = backend

    def send(
        self,
        ctx: Context,
        update_gas_price: UpdateGasPriceFunc,
        send_tx: SendTransactionFunc,
    ) -> Receipt:
        """Publish until a receipt confirms; raises the context's error if it ends.

        Must not be called concurrently on the same manager.
        """
        name = self.name
        ctxc = ctx.with_cancel()
        found = ctxc.with_cancel()
        receipts: list[Receipt] = []
        receipt_lock = threading.Lock()
        send_state = SendState(self.cfg.safe_abort_nonce_too_low_count)
        workers: list[threading.Thread] = []

        def send_tx_async() -> None:
            try:
                tx = update_gas_price(ctxc)
            except Exception as err:
                if not _is_canceled(err):
                    log.error("%s unable to update txn gas price: %s", name, err)
                return

            tx_hash = tx.hash()
            log.info(
                "%s publishing transaction hash=%s nonce=%d gas_tip_cap=%d gas_fee_cap=%d",
                name, tx_hash.hex(), tx.nonce, tx.gas_tip_cap, tx.gas_fee_cap,
            )
            try:
                send_tx(ctxc, tx)
            except Exception as err:
                send_state.process_send_error(err)
                if _is_canceled(err):
                    return
                log.error("%s unable to publish transaction: %s", name, err)
                if send_state.should_abort_immediately():
                    ctxc.cancel()
                return

            log.info("%s transaction published successfully hash=%s", name, tx_hash.hex())
            try:
                receipt = _wait_mined(
                    ctxc,
                    self.backend,
                    tx,
                    self.cfg.receipt_query_interval,
                    self.cfg.num_confirmations,
                    send_state,
                )
            except Exception as err:
                log.debug("%s send tx failed hash=%s: %s", name, tx_hash.hex(), err)
                return
            with receipt_lock:
                if not receipts:
                    receipts.append(receipt)
                    log.debug("%s send tx succeeded hash=%s", name, tx_hash.hex())
                    found.cancel()

        def spawn() -> None:
            worker = threading.Thread(target=send_tx_async, daemon=True)
            workers.append(worker)
            worker.start()

        try:
            spawn()
            while True:
                if found.wait(self.cfg.resubmission_timeout):
                    with receipt_lock:
                        if receipts:
                            return receipts[0]
                    err = ctxc.error()
                    assert err is not None
                    raise err
                # Skip bumping while an earlier publication awaits confirmations.
                if send_state.is_waiting_for_confirmation():
                    continue
                spawn()
        finally:
            ctxc.cancel()
            for worker in workers:
                worker.join()


def wait_mined(
    ctx: Context,
    backend: ReceiptSource,
    tx: Transaction,
    query_interval: float,
    num_confirmations: int,
) -> Receipt:
    """Poll ``backend`` every ``query_interval`` seconds until ``tx`` confirms.

    Backend errors are retried; raises the context's error when it ends.
    """
    return _wait_mined(ctx, backend, tx, query_interval, num_confirmations, None)


def _wait_mined(
    ctx: Context,
    backend: ReceiptSource,
    tx: Transaction,
    query_interval: float,
    num_confirmations: int,
    send_state: SendState | None,
) -> Receipt:
    tx_hash = tx.hash()
    while True:
        try:
            receipt = backend.transaction_receipt(ctx, tx_hash)
        except Exception as err:
            log.debug("Receipt retrieval failed hash=%s: %s", tx_hash.hex(), err)
        else:
            if receipt is None:
                if send_state is not None:
                    send_state.tx_not_mined(tx_hash)
                log.debug("Transaction not yet mined hash=%s", tx_hash.hex())
            else:
                if send_state is not None:
                    send_state.tx_mined(tx_hash)
                confirmed = _check_confirmed(ctx, backend, receipt, tx_hash, num_confirmations)
                if confirmed:
                    return receipt

        if ctx.wait(query_interval):
            err = ctx.error()
            assert err is not None
            raise err


def _check_confirmed(
    ctx: Context,
    backend: ReceiptSource,
    receipt: Receipt,
    tx_hash: bytes,
    num_confirmations: int,
) -> bool:
    tx_height = receipt.block_number
    try:
        tip_height = backend.block_number(ctx)
    except Exception as err:
        log.error("Unable to fetch block number: %s", err)
        return False

    # With one confirmation the tx is confirmed when it sits at the tip.
    if tx_height + num_confirmations <= tip_height + 1:
        log.info("Transaction confirmed hash=%s", tx_hash.hex())
        return True
    remaining = (tx_height + num_confirmations) - (tip_height + 1)
    log.info("Transaction not yet confirmed hash=%s confs_remaining=%d", tx_hash.hex(), remaining)
    return False


def calc_gas_fee_cap(base_fee: int, gas_tip_cap: int) -> int:
    """Recommended fee cap: ``gas_tip_cap + 2 * base_fee``."""
    return gas_tip_cap + 2 * base_fee