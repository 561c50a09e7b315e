"""Shared stream helpers for backend implementations.

Key utilities:
- Data type coercion for write payloads
- A readable stream over an iterator of byte chunks (streamed downloads)
- A writable stream that hands fixed-size blocks to an uploader and
  commits on close (block uploads)
- Chunk accumulation for whole-file reads

Example usage:
    >>> reader = ChunkedReader(iter([b"Hello, ", b"world!"]))
    >>> reader.read()
    b'Hello, world!'
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Any, BinaryIO, Callable

from .cancellation import CancellationToken
from .interfaces import DEFAULT_CHUNK_SIZE, OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import Iterator


def coerce_to_bytes(data: Any) -> bytes:
    """Coerce supported write payloads to raw bytes.

    Handles bytes-like objects and strings (UTF-8 encoded).

    Raises:
        TypeError: If data type is not supported.

    """
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    message = f"Unsupported data type: {type(data).__name__}"
    raise TypeError(message)


def accumulate_chunks(
    chunk_source: Iterator[bytes] | BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> bytes:
    """Accumulate chunks from an iterator or file-like object into bytes."""
    accumulated = io.BytesIO()
    if hasattr(chunk_source, "read"):
        while True:
            chunk = chunk_source.read(chunk_size)
            if not chunk:
                break
            accumulated.write(chunk)
    else:
        for chunk in chunk_source:
            accumulated.write(chunk)
    return accumulated.getvalue()


class ChunkedReader(io.RawIOBase):
    """Readable binary stream over an iterator of byte chunks.

    The next chunk is pulled only when the buffered one is exhausted, so a
    streamed HTTP body is transferred as the caller reads it.
    """

    def __init__(
        self,
        chunks: Iterator[bytes],
        *,
        on_close: Callable[[], None] | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        """Wrap a chunk iterator; ``on_close`` releases the source."""
        super().__init__()
        self._chunks = chunks
        self._buffer = b""
        self._on_close = on_close
        self._token = token
        self._exhausted = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        """Fill ``buffer`` with the next available bytes."""
        while not self._buffer and not self._exhausted:
            CancellationToken.check(self._token)
            try:
                self._buffer = next(self._chunks)
            except StopIteration:
                self._exhausted = True
            except Exception as exc:
                # A cancelled token closes the source under our feet.
                if self._token is not None and self._token.is_cancelled:
                    raise OperationCancelledError from exc
                raise
        if not self._buffer:
            return 0
        view = memoryview(buffer).cast("B")
        size = min(len(view), len(self._buffer))
        view[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return size

    def close(self) -> None:
        if not self.closed and self._on_close is not None:
            self._on_close()
        super().close()


class BlockWriter(io.RawIOBase):
    """Writable binary stream that uploads in fixed-size blocks.

    Every time ``block_size`` bytes are buffered they are passed to
    ``upload_block``. Closing the stream passes the remaining bytes to
    ``commit``. Leaving a ``with`` block through an exception discards the
    pending data instead of committing it.
    """

    def __init__(
        self,
        upload_block: Callable[[bytes], None],
        commit: Callable[[bytes], None],
        *,
        block_size: int = DEFAULT_CHUNK_SIZE,
        token: CancellationToken | None = None,
        on_abort: Callable[[], None] | None = None,
    ) -> None:
        """Initialise the writer with its upload callbacks.

        ``on_abort`` runs once when the upload is discarded, to release any
        server-side state opened by ``upload_block``.
        """
        super().__init__()
        self._upload_block = upload_block
        self._commit = commit
        self._on_abort = on_abort
        self._block_size = block_size
        self._token = token
        self._buffer = bytearray()
        self._aborted = False

    def writable(self) -> bool:
        return True

    def write(self, data: Any) -> int:
        """Buffer ``data``, uploading every full block."""
        if self.closed:
            message = "I/O operation on closed stream"
            raise ValueError(message)
        CancellationToken.check(self._token)
        payload = coerce_to_bytes(data)
        self._buffer.extend(payload)
        while len(self._buffer) >= self._block_size:
            block = bytes(self._buffer[: self._block_size])
            del self._buffer[: self._block_size]
            self._upload_block(block)
        return len(payload)

    def abort(self) -> None:
        """Drop buffered data and close without committing."""
        if self.closed:
            return
        self._aborted = True
        self._buffer.clear()
        try:
            if self._on_abort is not None:
                self._on_abort()
        finally:
            super().close()

    def close(self) -> None:
        if self.closed:
            return
        if not self._aborted:
            if self._token is not None and self._token.is_cancelled:
                self.abort()
                raise OperationCancelledError
            remainder = bytes(self._buffer)
            self._buffer.clear()
            try:
                self._commit(remainder)
            finally:
                super().close()
        else:
            super().close()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()
