"""Cancellation contexts shared between threads."""

from __future__ import annotations

import threading
import time


class Canceled(Exception):
    """The context was canceled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(Exception):
    """The context's deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """A cancellation signal that propagates from parents to children."""

    def __init__(self, parent: Context | None = None, deadline: float | None = None):
        self._parent = parent
        self.deadline = deadline
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._err: Exception | None = None
        self._children: set[Context] = set()
        self._timer: threading.Timer | None = None

    def _spawn(self, deadline: float | None) -> Context:
        child = Context(self, deadline)
        with self._lock:
            err = self._err
            if err is None:
                self._children.add(child)
        if err is not None:
            child._finish(err)
        return child

    def _detach(self, child: Context) -> None:
        with self._lock:
            self._children.discard(child)

    def _finish(self, err: Exception) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            children = list(self._children)
            self._children.clear()
            timer, self._timer = self._timer, None
        self._done.set()
        if timer is not None:
            timer.cancel()
        for child in children:
            child._finish(err)
        if self._parent is not None:
            self._parent._detach(self)

    def with_cancel(self) -> Context:
        """Return a child context that is canceled along with this one."""
        return self._spawn(self.deadline)

    def with_timeout(self, timeout: float) -> Context:
        """Return a child context that expires after ``timeout`` seconds."""
        deadline = time.monotonic() + timeout
        if self.deadline is not None and self.deadline <= deadline:
            return self.with_cancel()
        child = self._spawn(deadline)
        if timeout <= 0:
            child._finish(DeadlineExceeded())
            return child
        timer = threading.Timer(timeout, child._finish, args=(DeadlineExceeded(),))
        timer.daemon = True
        with child._lock:
            if child._err is None:
                child._timer = timer
                timer.start()
        return child

    def cancel(self) -> None:
        """Cancel this context and all of its children."""
        self._finish(Canceled())

    def is_done(self) -> bool:
        return self._done.is_set()

    def error(self) -> Exception | None:
        """The reason the context ended, or None while it is live."""
        with self._lock:
            return self._err

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context ends or ``timeout`` passes; True if it ended."""
        return self._done.wait(timeout)


def background() -> Context:
    """A fresh root context with no deadline."""
    return Context()