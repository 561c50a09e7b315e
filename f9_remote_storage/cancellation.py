"""Cooperative cancellation for long-running storage operations.

A ``CancellationToken`` is passed into an operation and checked at every
network boundary: before a request is sent, between streamed chunks and
between listing pages. Tripping the token also runs registered callbacks,
which the transport uses to close an in-flight response.

Example:

    >>> token = CancellationToken()
    >>> for entry in CancellationToken.iterate(storage.ls(recurse=True), token):
    ...     if entry.name == "stop.txt":
    ...         token.cancel()

"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, TypeVar

from .interfaces import OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

T = TypeVar("T")


class CancellationToken:
    """Thread-safe flag signalling that an operation should stop."""

    def __init__(self) -> None:
        """Initialise an untripped token."""
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation and run the registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation; returns an unregister function.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self) -> None:
        """Raise ``OperationCancelledError`` if cancellation was requested."""
        if self._event.is_set():
            raise OperationCancelledError

    @staticmethod
    def check(token: CancellationToken | None) -> None:
        """Raise if the optional token has been cancelled."""
        if token is not None:
            token.raise_if_cancelled()

    @staticmethod
    def iterate(
        iterable: Iterable[T],
        token: CancellationToken | None = None,
    ) -> Iterator[T]:
        """Yield from ``iterable``, stopping with an error once cancelled."""
        if token is None:
            yield from iterable
            return
        iterator = iter(iterable)
        while True:
            # Checked before advancing so no further page is requested.
            token.raise_if_cancelled()
            try:
                item = next(iterator)
            except StopIteration:
                return
            yield item
