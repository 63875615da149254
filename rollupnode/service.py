"""The polling loop that crafts and publishes transactions through a driver."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

from .chain import Receipt, Transaction
from .context import Context, background
from .txmgr import Config as TxManagerConfig
from .txmgr import SimpleTxManager

log = logging.getLogger(__name__)


class Driver(Protocol):
    """Creates and submits transactions for one specific contract."""

    def name(self) -> str:
        """Identifier used to prefix log lines."""
        ...

    def wallet_addr(self) -> bytes:
        """The address paying for transaction fees."""
        ...

    def get_block_range(self, ctx: Context) -> tuple[int, int]:
        """Start and exclusive end of the L2 blocks still to be processed."""
        ...

    def craft_tx(self, ctx: Context, start: int, end: int, nonce: int) -> Transaction:
        """Build, without publishing, a transaction covering ``start``..``end``."""
        ...

    def update_gas_price(self, ctx: Context, tx: Transaction) -> Transaction:
        """Re-sign ``tx`` with current gas prices, without publishing it."""
        ...

    def send_transaction(self, ctx: Context, tx: Transaction) -> None:
        """Inject a signed transaction into the pending pool."""
        ...


class L1Client(Protocol):
    """The L1 queries the service and its transaction manager need."""

    def nonce_at(self, ctx: Context, address: bytes, block_number: int | None) -> int:
        """Account nonce at ``block_number``, or at the latest block if None."""
        ...

    def block_number(self, ctx: Context) -> int:
        ...

    def transaction_receipt(self, ctx: Context, tx_hash: bytes) -> Receipt | None:
        ...


@dataclass
class ServiceConfig:
    """Settings of a :class:`Service`; ``poll_interval`` is in seconds."""

    driver: Driver
    poll_interval: float
    l1_client: L1Client
    tx_manager_config: TxManagerConfig = field(default_factory=TxManagerConfig)
    context: Context = field(default_factory=background)


class Service:
    """Periodically asks the driver for work and publishes what it crafts."""

    def __init__(self, cfg: ServiceConfig) -> None:
        self.cfg = cfg
        self._ctx = cfg.context.with_cancel()
        self._tx_mgr = SimpleTxManager(
            cfg.driver.name(), cfg.tx_manager_config, cfg.l1_client
        )
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Run the event loop in a background thread."""
        if self._thread is not None:
            raise RuntimeError("service already started")
        self._thread = threading.Thread(target=self._event_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Cancel the event loop and wait for it to finish."""
        self._ctx.cancel()
        if self._thread is not None:
            self._thread.join()

    def __enter__(self) -> Service:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _event_loop(self) -> None:
        name = self.cfg.driver.name()
        while not self._ctx.wait(self.cfg.poll_interval):
            self._process(name)
        log.error("%s service shutting down: %s", name, self._ctx.error())

    def _process(self, name: str) -> None:
        driver = self.cfg.driver
        ctx = self._ctx

        log.info("%s fetching current block range", name)
        try:
            start, end = driver.get_block_range(ctx)
        except Exception as err:
            log.error("%s unable to get block range: %s", name, err)
            return
        if start == end:
            log.info("%s no updates start=%d end=%d", name, start, end)
            return
        log.info("%s block range start=%d end=%d", name, start, end)

        try:
            nonce = self.cfg.l1_client.nonce_at(ctx, driver.wallet_addr(), None)
        except Exception as err:
            log.error("%s unable to get current nonce: %s", name, err)
            return

        try:
            tx = driver.craft_tx(ctx, start, end, nonce)
        except Exception as err:
            log.error("%s unable to craft tx: %s", name, err)
            return

        def update_gas_price(inner: Context) -> Transaction:
            log.info(
                "%s updating batch tx gas price start=%d end=%d nonce=%d",
                name, start, end, nonce,
            )
            return driver.update_gas_price(inner, tx)

        try:
            receipt = self._tx_mgr.send(ctx, update_gas_price, driver.send_transaction)
        except Exception as err:
            log.error("%s unable to publish tx: %s", name, err)
            return
        log.info("%s tx successfully published tx_hash=%s", name, receipt.tx_hash.hex())