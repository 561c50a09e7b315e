"""Shared facade for HTTP-based storage backends.

``HttpStorage`` runs the fixed pre-flight pipeline every public operation
goes through before the transport is touched:

1. Shape check: parse the path, require a folder or a file as appropriate
2. Backend naming rules for the concrete provider
3. Capability check: unsupported operations fail with ``NotSupportedError``
4. Delegate to the backend hook (``_exists``, ``_ls``, ``_open_read``, ...)

Text helpers and ``rename`` are provided on top of the byte-stream hooks so
concrete backends only implement what their provider offers natively.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, BinaryIO
from urllib.parse import quote

from .cancellation import CancellationToken
from .interfaces import (
    DEFAULT_CHUNK_SIZE,
    Capability,
    InvalidArgumentError,
    NotFoundError,
    NotSupportedError,
    PathLike,
    RemoteStorage,
    StorageEntry,
)
from .naming import display_name, validate_path
from .transport import NOT_FOUND, ensure_success
from .utils import ChunkedReader, accumulate_chunks

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from .paths import StoragePath
    from .transport import Response, Transport

logger = logging.getLogger(__name__)


def quote_path(path: StoragePath) -> str:
    """URL-encode each segment of a path and join them with ``/``."""
    return "/".join(quote(segment, safe="") for segment in path.segments)


class HttpStorage(RemoteStorage):
    """Base class for backends that reach their provider over HTTP."""

    def __init__(self, endpoint: str, transport: Transport) -> None:
        """Initialise the facade with a service endpoint and transport."""
        if not endpoint or not endpoint.strip():
            message = "endpoint cannot be empty"
            raise InvalidArgumentError(message)
        self._endpoint = endpoint.rstrip("/") + "/"
        self._transport = transport

    @property
    def endpoint(self) -> str:
        """Service endpoint, always ending in ``/``."""
        return self._endpoint

    @property
    def transport(self) -> Transport:
        """Transport collaborator used for every request."""
        return self._transport

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._endpoint!r})"

    # Pre-flight pipeline

    def _validate(self, path: PathLike) -> StoragePath:
        return validate_path(self.kind, path)

    def _folder(self, path: PathLike) -> StoragePath:
        target = self._validate(path)
        if not target.is_folder:
            raise InvalidArgumentError.folder_required(target)
        return target

    def _file(self, path: PathLike) -> StoragePath:
        if path is None or path == "":
            raise InvalidArgumentError.path_required()
        target = self._validate(path)
        if target.is_folder:
            raise InvalidArgumentError.file_required(target)
        return target

    def _require(self, capability: Capability) -> None:
        if capability not in self.capabilities:
            raise NotSupportedError.operation(capability.value, display_name(self.kind))

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        data: bytes | None = None,
        json: object | None = None,
        stream: bool = False,
        token: CancellationToken | None = None,
    ) -> Response:
        return self._transport.request(
            method,
            url,
            params=params,
            headers=headers,
            data=data,
            json=json,
            stream=stream,
            token=token,
        )

    def _send_checked(self, method: str, url: str, **kwargs: object) -> Response:
        return ensure_success(method, url, self._send(method, url, **kwargs))

    def _get_stream(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        token: CancellationToken | None = None,
    ) -> BinaryIO | None:
        """GET a body as a stream, or None when the server answers 404."""
        response = self._send("GET", url, params=params, headers=headers, stream=True, token=token)
        if response.status_code == NOT_FOUND:
            response.close()
            return None
        ensure_success("GET", url, response)
        raw = ChunkedReader(
            response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE),
            on_close=response.close,
            token=token,
        )
        return io.BufferedReader(raw)

    # Facade

    def exists(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> bool:
        """Check whether a file or folder exists."""
        target = self._validate(path)
        self._require(Capability.EXISTS)
        return self._exists(target, token)

    def ls(
        self,
        path: PathLike = None,
        recurse: bool = False,
        *,
        token: CancellationToken | None = None,
    ) -> Iterator[StorageEntry]:
        """List a folder lazily; pages are fetched as the iterator advances."""
        target = self._folder(path)
        self._require(Capability.LIST)
        logger.debug("Listing %s (recurse=%s) on %r", target, recurse, self)
        return self._ls(target, recurse, token)

    def open_read(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> BinaryIO | None:
        """Open a file for streamed reading; None when it does not exist."""
        target = self._file(path)
        self._require(Capability.READ)
        return self._open_read(target, token)

    def open_write(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> BinaryIO:
        """Open a file for writing; the upload is committed on close."""
        target = self._file(path)
        self._require(Capability.WRITE)
        return self._open_write(target, token)

    def read_text(
        self,
        path: PathLike,
        encoding: str = "utf-8",
        *,
        token: CancellationToken | None = None,
    ) -> str | None:
        """Read a file as text; None when it does not exist."""
        stream = self.open_read(path, token=token)
        if stream is None:
            return None
        with stream:
            return accumulate_chunks(stream).decode(encoding)

    def write_text(
        self,
        path: PathLike,
        contents: str,
        encoding: str = "utf-8",
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Replace a file's contents with text."""
        with self.open_write(path, token=token) as stream:
            stream.write(contents.encode(encoding))

    def rename(
        self,
        old_path: PathLike,
        new_path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Move a file; raises NotFoundError when the source is missing."""
        source = self._file(old_path)
        target = self._file(new_path)
        self._require(Capability.RENAME)
        if source == target:
            if not self._exists(source, token):
                raise NotFoundError(source)
            return
        self._rename(source, target, token)

    def remove(
        self,
        path: PathLike,
        recurse: bool = False,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Remove a file, or a folder's contents when ``recurse`` is set."""
        if path is None or path == "":
            raise InvalidArgumentError.path_required()
        target = self._validate(path)
        if target.is_root:
            raise InvalidArgumentError.root_not_allowed()
        self._require(Capability.REMOVE)
        self._remove(target, recurse, token)

    # Backend hooks

    def _exists(self, path: StoragePath, token: CancellationToken | None) -> bool:
        raise NotSupportedError.operation(Capability.EXISTS.value, display_name(self.kind))

    def _ls(
        self,
        path: StoragePath,
        recurse: bool,
        token: CancellationToken | None,
    ) -> Iterator[StorageEntry]:
        raise NotSupportedError.operation(Capability.LIST.value, display_name(self.kind))

    def _open_read(
        self,
        path: StoragePath,
        token: CancellationToken | None,
    ) -> BinaryIO | None:
        raise NotSupportedError.operation(Capability.READ.value, display_name(self.kind))

    def _open_write(self, path: StoragePath, token: CancellationToken | None) -> BinaryIO:
        raise NotSupportedError.operation(Capability.WRITE.value, display_name(self.kind))

    def _remove(
        self,
        path: StoragePath,
        recurse: bool,
        token: CancellationToken | None,
    ) -> None:
        raise NotSupportedError.operation(Capability.REMOVE.value, display_name(self.kind))

    def _rename(
        self,
        source: StoragePath,
        target: StoragePath,
        token: CancellationToken | None,
    ) -> None:
        """Copy the source to the target then remove the source."""
        reader = self._open_read(source, token)
        if reader is None:
            raise NotFoundError(source)
        with reader, self._open_write(target, token) as writer:
            while True:
                CancellationToken.check(token)
                chunk = reader.read(DEFAULT_CHUNK_SIZE)
                if not chunk:
                    break
                writer.write(chunk)
        self._remove(source, False, token)
