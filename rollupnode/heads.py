"""Turning a feed of new L1 headers into block-reference signals."""

from __future__ import annotations

import queue
import threading
from typing import Callable, Protocol

from .chain import ZERO_HASH, BlockID, Header, L1BlockRef
from .context import Context

HeadSignalFn = Callable[[L1BlockRef], None]

_POLL_INTERVAL = 0.05


class _Unsubscriber(Protocol):
    def unsubscribe(self) -> None: ...


class NewHeadSource(Protocol):
    """Something that pushes new chain heads into a queue."""

    def subscribe_new_head(self, ctx: Context, sink: queue.Queue) -> _Unsubscriber:
        """Start feeding ``sink`` with :class:`Header` objects.

        A failure of the feed is reported by putting the exception itself
        into ``sink``. The returned object's ``unsubscribe()`` stops the feed.
        """
        ...


def _block_ref(header: Header) -> L1BlockRef:
    height = header.number
    block = BlockID(hash=header.hash(), number=height)
    if height > 0:
        parent = BlockID(hash=header.parent_hash, number=height - 1)
    else:
        parent = BlockID(hash=ZERO_HASH, number=0)
    return L1BlockRef(block=block, parent=parent)


class HeadSubscription:
    """A running head watcher; stop it with :meth:`unsubscribe`."""

    def __init__(
        self,
        ctx: Context,
        sink: queue.Queue,
        upstream: _Unsubscriber,
        fn: HeadSignalFn,
    ) -> None:
        self._ctx = ctx
        self._sink = sink
        self._upstream = upstream
        self._fn = fn
        self._quit = threading.Event()
        self._err: BaseException | None = None
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        try:
            try:
                self._err = self._loop()
            except Exception as err:
                self._err = err
        finally:
            self._upstream.unsubscribe()

    def _loop(self) -> BaseException | None:
        while True:
            try:
                item = self._sink.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if self._quit.is_set():
                    return None
                if self._ctx.is_done():
                    return self._ctx.error()
                continue
            if isinstance(item, BaseException):
                return item
            self._fn(_block_ref(item))

    def unsubscribe(self) -> None:
        """Stop watching and wait for the watcher to finish."""
        self._quit.set()
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def error(self) -> BaseException | None:
        """Why the watcher ended: the feed's or context's error, else None."""
        return self._err


def watch_head_changes(
    ctx: Context, src: NewHeadSource, fn: HeadSignalFn
) -> HeadSubscription:
    """Subscribe to ``src`` and call ``fn`` with a block reference per new head."""
    sink: queue.Queue = queue.Queue(maxsize=10)
    upstream = src.subscribe_new_head(ctx, sink)
    return HeadSubscription(ctx, sink, upstream, fn)