"""Databricks File System (DBFS) backend.

Talks to the workspace REST API under ``/api/2.0/dbfs``. Paths are absolute
on the DBFS side; canonical paths map to them by prefixing ``/``.

The API moves file contents as base64 JSON in blocks of at most 1 MiB, so
``open_read`` pages through ``dbfs/read`` as the caller reads and
``open_write`` streams ``dbfs/add-block`` calls between ``dbfs/create`` and
``dbfs/close``.

Example:

    >>> from f9_remote_storage import DbfsStorage
    >>> storage = DbfsStorage("https://adb-123.azuredatabricks.net", token="dapi...")
    >>> storage.write_text("tmp/hello.txt", "hi")
    >>> storage.read_text("tmp/hello.txt")
    'hi'

"""

from __future__ import annotations

import base64
import io
import logging
from typing import TYPE_CHECKING, Any, BinaryIO

from .http_storage import HttpStorage
from .interfaces import (
    BackendKind,
    Capability,
    InvalidArgumentError,
    NotFoundError,
    StorageEntry,
    StorageError,
)
from .listing import convert_dbfs_listing, paginate
from .transport import NOT_FOUND, RequestsTransport, ensure_success, is_success
from .utils import BlockWriter, ChunkedReader

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from .cancellation import CancellationToken
    from .paths import StoragePath
    from .transport import Response, Transport

logger = logging.getLogger(__name__)

API_PREFIX = "api/2.0/dbfs/"
MAX_BLOCK_SIZE = 1024 * 1024
NOT_FOUND_CODE = "RESOURCE_DOES_NOT_EXIST"


def dbfs_path(path: StoragePath) -> str:
    """Absolute DBFS path for a canonical path."""
    return "/" + "/".join(path.segments)


def _is_not_found(response: Response) -> bool:
    if response.status_code == NOT_FOUND:
        return True
    try:
        payload = response.json()
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("error_code") == NOT_FOUND_CODE


class DbfsStorage(HttpStorage):
    """Databricks workspace filesystem exposed as a path-based store."""

    kind = BackendKind.DBFS
    capabilities = frozenset(Capability)

    def __init__(
        self,
        host: str,
        *,
        token: str | None = None,
        transport: Transport | None = None,
        block_size: int = MAX_BLOCK_SIZE,
    ) -> None:
        """Initialise the backend for one workspace.

        Args:
            host: Workspace URL, e.g. ``https://adb-123.azuredatabricks.net``.
            token: Personal access token sent as a bearer credential.
            transport: Transport to use instead of a pooled ``RequestsTransport``.
            block_size: Upload/download block size, at most 1 MiB.

        """
        if not host or not host.strip():
            message = "host cannot be empty"
            raise InvalidArgumentError(message)
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        if transport is None:
            headers = {"Authorization": f"Bearer {token}"} if token else {}
            transport = RequestsTransport(default_headers=headers)
        super().__init__(host, transport)
        self._block_size = min(block_size, MAX_BLOCK_SIZE)

    @classmethod
    def from_connection_info(
        cls,
        connection_info: Mapping[str, Any],
        *,
        transport: Transport | None = None,
    ) -> DbfsStorage:
        """Build a backend from a mapping with ``host`` and ``token`` keys."""
        if "host" not in connection_info:
            message = "Missing 'host' in connection_info"
            raise InvalidArgumentError(message)
        return cls(
            str(connection_info["host"]),
            token=connection_info.get("token"),
            transport=transport,
        )

    def _api(self, operation: str) -> str:
        return f"{self.endpoint}{API_PREFIX}{operation}"

    def _call(
        self,
        method: str,
        operation: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any | None = None,
        missing: StoragePath | None = None,
        token: CancellationToken | None = None,
    ) -> Any:
        """Invoke an API operation and return its decoded JSON payload.

        When ``missing`` is given a not-found answer raises ``NotFoundError``
        for that path.
        """
        url = self._api(operation)
        response = self._send(method, url, params=params, json=json, token=token)
        if missing is not None and not is_success(response) and _is_not_found(response):
            response.close()
            raise NotFoundError(missing)
        ensure_success(method, url, response)
        try:
            return response.json() if response.content else {}
        finally:
            response.close()

    def _status(self, path: StoragePath, token: CancellationToken | None) -> dict | None:
        try:
            return self._call(
                "GET",
                "get-status",
                params={"path": dbfs_path(path)},
                missing=path,
                token=token,
            )
        except NotFoundError:
            return None

    def _exists(self, path: StoragePath, token: CancellationToken | None) -> bool:
        status = self._status(path, token)
        if status is None:
            return False
        return bool(status.get("is_dir")) == path.is_folder

    def _ls(
        self,
        path: StoragePath,
        recurse: bool,
        token: CancellationToken | None,
    ) -> Iterator[StorageEntry]:
        pending = [path]
        while pending:
            folder = pending.pop(0)
            for entry in self._list_folder(folder, token):
                if recurse and entry.is_folder:
                    pending.append(entry.path)
                yield entry

    def _list_folder(
        self,
        folder: StoragePath,
        token: CancellationToken | None,
    ) -> Iterator[StorageEntry]:
        def fetch_page(marker: str | None) -> tuple[Iterable[StorageEntry], str | None]:
            params = {"path": dbfs_path(folder)}
            if marker:
                params["page_token"] = marker
            payload = self._call("GET", "list", params=params, missing=folder, token=token)
            next_token = payload.get("next_page_token") or None
            logger.debug("Listed page of %s (next page token: %s)", folder, next_token)
            return convert_dbfs_listing(payload), next_token

        return paginate(fetch_page, token)

    def _read_block(
        self,
        path: StoragePath,
        offset: int,
        token: CancellationToken | None,
    ) -> bytes:
        payload = self._call(
            "GET",
            "read",
            params={
                "path": dbfs_path(path),
                "offset": str(offset),
                "length": str(self._block_size),
            },
            missing=path,
            token=token,
        )
        if not payload.get("bytes_read"):
            return b""
        return base64.b64decode(payload["data"])

    def _open_read(
        self,
        path: StoragePath,
        token: CancellationToken | None,
    ) -> BinaryIO | None:
        try:
            first = self._read_block(path, 0, token)
        except NotFoundError:
            return None

        def blocks() -> Iterator[bytes]:
            block = first
            offset = 0
            while block:
                yield block
                if len(block) < self._block_size:
                    return
                offset += len(block)
                block = self._read_block(path, offset, token)

        return io.BufferedReader(ChunkedReader(blocks(), token=token))

    def _open_write(self, path: StoragePath, token: CancellationToken | None) -> BinaryIO:
        handle: list[int] = []

        def ensure_handle() -> int:
            if not handle:
                payload = self._call(
                    "POST",
                    "create",
                    json={"path": dbfs_path(path), "overwrite": True},
                    token=token,
                )
                handle.append(payload["handle"])
            return handle[0]

        def upload_block(block: bytes) -> None:
            self._call(
                "POST",
                "add-block",
                json={
                    "handle": ensure_handle(),
                    "data": base64.b64encode(block).decode("ascii"),
                },
                token=token,
            )

        def commit(remainder: bytes) -> None:
            if remainder:
                upload_block(remainder)
            self._call("POST", "close", json={"handle": ensure_handle()}, token=token)
            logger.debug("Closed DBFS upload handle for %s", path)

        def discard() -> None:
            if not handle:
                return
            # Sent without the token so a cancelled upload still releases its handle.
            try:
                self._call("POST", "close", json={"handle": handle[0]})
            except StorageError as exc:
                logger.warning("Could not close DBFS upload handle for %s: %s", path, exc)

        return BlockWriter(
            upload_block,
            commit,
            block_size=self._block_size,
            token=token,
            on_abort=discard,
        )

    def _remove(
        self,
        path: StoragePath,
        recurse: bool,
        token: CancellationToken | None,
    ) -> None:
        if self._status(path, token) is None:
            raise NotFoundError(path)
        self._call(
            "POST",
            "delete",
            json={"path": dbfs_path(path), "recursive": recurse},
            token=token,
        )

    def _rename(
        self,
        source: StoragePath,
        target: StoragePath,
        token: CancellationToken | None,
    ) -> None:
        self._call(
            "POST",
            "move",
            json={"source_path": dbfs_path(source), "destination_path": dbfs_path(target)},
            missing=source,
            token=token,
        )
