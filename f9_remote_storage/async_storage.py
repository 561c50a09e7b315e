"""Asynchronous facade over the synchronous storage backends.

Every operation runs the blocking backend call through asyncio.to_thread()
so the event loop stays responsive. Each call gets a ``CancellationToken``
(the caller's, or a fresh one); when the awaiting task is cancelled the
token is tripped, which stops the worker thread at its next network
boundary and closes any in-flight response.

Example:

    >>> import asyncio
    >>> from f9_remote_storage import AsyncRemoteStorage, AzureBlobStorage
    >>>
    >>> async def main():
    ...     storage = AsyncRemoteStorage(AzureBlobStorage("raw", account_name="acct"))
    ...     async for entry in storage.ls("2024/", recurse=True):
    ...         print(entry.path)
    ...     await storage.write_text("2024/done.txt", "ok")
    >>>
    >>> asyncio.run(main())

"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, TypeVar

from .cancellation import CancellationToken

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from .interfaces import Capability, PathLike, RemoteStorage, StorageEntry

T = TypeVar("T")

_DONE = object()


async def _run(
    guard: CancellationToken,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run ``func`` in a worker thread, tripping ``guard`` if cancelled."""
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except asyncio.CancelledError:
        guard.cancel()
        raise


class AsyncRemoteStorage:
    """Asynchronous wrapper around any ``RemoteStorage`` backend."""

    def __init__(self, storage: RemoteStorage) -> None:
        """Wrap a synchronous backend."""
        self._storage = storage

    @property
    def storage(self) -> RemoteStorage:
        """Wrapped synchronous backend."""
        return self._storage

    def supports(self, capability: Capability) -> bool:
        """Return True when the wrapped backend implements ``capability``."""
        return self._storage.supports(capability)

    async def exists(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> bool:
        """Check whether a file or folder exists."""
        token = token or CancellationToken()
        return await _run(token, self._storage.exists, path, token=token)

    async def ls(
        self,
        path: PathLike = None,
        recurse: bool = False,
        *,
        token: CancellationToken | None = None,
    ) -> AsyncIterator[StorageEntry]:
        """List a folder, pulling one entry per worker-thread hop.

        Pages are still fetched lazily: a page request happens only when the
        iteration reaches it. Closing the iterator early trips the token.
        """
        token = token or CancellationToken()
        entries: Iterator[StorageEntry] = await _run(
            token,
            self._storage.ls,
            path,
            recurse,
            token=token,
        )
        try:
            while True:
                entry = await _run(token, next, entries, _DONE)
                if entry is _DONE:
                    return
                yield entry
        except GeneratorExit:
            token.cancel()
            raise

    async def open_read(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> BinaryIO | None:
        """Open a file for reading; None when it does not exist.

        The returned stream is synchronous; read it with
        asyncio.to_thread() for large payloads.
        """
        token = token or CancellationToken()
        return await _run(token, self._storage.open_read, path, token=token)

    async def open_write(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> BinaryIO:
        """Open a file for writing; the upload is committed on close."""
        token = token or CancellationToken()
        return await _run(token, self._storage.open_write, path, token=token)

    async def read_text(
        self,
        path: PathLike,
        encoding: str = "utf-8",
        *,
        token: CancellationToken | None = None,
    ) -> str | None:
        """Read a file as text; None when it does not exist."""
        token = token or CancellationToken()
        return await _run(token, self._storage.read_text, path, encoding, token=token)

    async def write_text(
        self,
        path: PathLike,
        contents: str,
        encoding: str = "utf-8",
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Replace a file's contents with text."""
        token = token or CancellationToken()
        await _run(token, self._storage.write_text, path, contents, encoding, token=token)

    async def rename(
        self,
        old_path: PathLike,
        new_path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Move a file to a new path."""
        token = token or CancellationToken()
        await _run(token, self._storage.rename, old_path, new_path, token=token)

    async def remove(
        self,
        path: PathLike,
        recurse: bool = False,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Remove a file, or a folder when ``recurse`` allows it."""
        token = token or CancellationToken()
        await _run(token, self._storage.remove, path, recurse, token=token)
