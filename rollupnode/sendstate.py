"""Tracking whether a logical transaction should be abandoned."""

from __future__ import annotations

import threading


class NonceTooLowError(Exception):
    """The node rejected a transaction because its nonce is already used."""

    def __init__(self, message: str = "nonce too low") -> None:
        super().__init__(message)


_NONCE_TOO_LOW = str(NonceTooLowError())


class SendState:
    """Publication state of one logical transaction across gas-price bumps."""

    def __init__(self, safe_abort_nonce_too_low_count: int) -> None:
        if safe_abort_nonce_too_low_count == 0:
            raise ValueError("txmgr: safe_abort_nonce_too_low_count cannot be zero")
        self._mined_txs: set[bytes] = set()
        self._nonce_too_low_count = 0
        self._lock = threading.Lock()
        self.safe_abort_nonce_too_low_count = safe_abort_nonce_too_low_count

    def process_send_error(self, err: BaseException | None) -> None:
        """Record the outcome of a publication; only nonce-too-low errors count."""
        if err is None or _NONCE_TOO_LOW not in str(err):
            return
        with self._lock:
            self._nonce_too_low_count += 1

    def tx_mined(self, tx_hash: bytes) -> None:
        with self._lock:
            self._mined_txs.add(tx_hash)

    def tx_not_mined(self, tx_hash: bytes) -> None:
        """Record that a transaction is unmined or was reorged out."""
        with self._lock:
            was_mined = tx_hash in self._mined_txs
            self._mined_txs.discard(tx_hash)
            # A reorg that leaves nothing mined restarts the abort count.
            if was_mined and not self._mined_txs:
                self._nonce_too_low_count = 0

    def should_abort_immediately(self) -> bool:
        with self._lock:
            if self._mined_txs:
                return False
            return self._nonce_too_low_count >= self.safe_abort_nonce_too_low_count

    def is_waiting_for_confirmation(self) -> bool:
        with self._lock:
            return bool(self._mined_txs)