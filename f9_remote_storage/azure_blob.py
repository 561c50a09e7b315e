"""Azure Blob Storage container backend.

Addresses ``https://<account>.blob.core.windows.net/<container>/<blob>``.
Folders are virtual: they exist as long as some blob name starts with the
folder prefix.

Listing uses *List Blobs*. Without ``recurse`` the ``/`` delimiter collapses
nested folders into ``BlobPrefix`` markers; with ``recurse`` the flat
listing is returned page by page and one folder entry is synthesised for
every intermediate prefix.

Uploads go through ``open_write``. Small payloads are sent as a single
*Put Blob*; once a full block is buffered the writer switches to
*Put Block* and commits with *Put Block List* on close.
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, BinaryIO
from xml.sax.saxutils import escape

from .azure import AzureStorage
from .interfaces import (
    DEFAULT_CHUNK_SIZE,
    BackendKind,
    Capability,
    InvalidArgumentError,
    NotFoundError,
    StorageEntry,
)
from .listing import (
    AZURE_BLOB_SCHEMA,
    convert_listing,
    paginate,
    parse_listing_page,
    with_implied_folders,
)
from .paths import SEPARATOR
from .transport import NOT_FOUND, ensure_success
from .utils import BlockWriter

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .cancellation import CancellationToken
    from .paths import StoragePath
    from .transport import Transport

logger = logging.getLogger(__name__)


def _prefix(path: StoragePath) -> str:
    """Blob name prefix selecting everything inside a folder."""
    if path.is_root:
        return ""
    return SEPARATOR.join(path.segments) + SEPARATOR


def _block_id(index: int) -> str:
    """Base64 block identifier; all ids of one blob share the same length."""
    return base64.b64encode(f"block-{index:08d}".encode("ascii")).decode("ascii")


class AzureBlobStorage(AzureStorage):
    """Azure Blob Storage container exposed as a path-based store."""

    kind = BackendKind.AZURE_BLOB
    service = "blob"
    capabilities = frozenset(Capability)

    def __init__(
        self,
        container_name: str,
        *,
        account_name: str | None = None,
        endpoint: str | None = None,
        sas_token: str | None = None,
        transport: Transport | None = None,
        block_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialise the backend; ``block_size`` sets the upload block size."""
        super().__init__(
            container_name,
            account_name=account_name,
            endpoint=endpoint,
            sas_token=sas_token,
            transport=transport,
        )
        self._block_size = block_size

    def _exists(self, path: StoragePath, token: CancellationToken | None) -> bool:
        if path.is_root:
            url = self._container_url()
            response = self._send(
                "HEAD",
                url,
                params={"restype": "container"},
                headers=self._headers(),
                token=token,
            )
        elif path.is_folder:
            return self._has_blobs(path, token)
        else:
            url = self._url(path)
            response = self._send("HEAD", url, headers=self._headers(), token=token)
        response.close()
        if response.status_code == NOT_FOUND:
            return False
        ensure_success("HEAD", url, response)
        return True

    def _has_blobs(self, folder: StoragePath, token: CancellationToken | None) -> bool:
        items, _ = self._fetch_page(folder, None, recurse=True, max_results=1, token=token)
        return any(True for _ in items)

    def _fetch_page(
        self,
        folder: StoragePath,
        marker: str | None,
        *,
        recurse: bool,
        max_results: int | None = None,
        token: CancellationToken | None = None,
    ) -> tuple[Iterable[StorageEntry], str | None]:
        url = self._container_url()
        params = {"restype": "container", "comp": "list"}
        prefix = _prefix(folder)
        if prefix:
            params["prefix"] = prefix
        if not recurse:
            params["delimiter"] = SEPARATOR
        if marker:
            params["marker"] = marker
        if max_results is not None:
            params["maxresults"] = str(max_results)
        response = self._send("GET", url, params=params, headers=self._headers(), token=token)
        if response.status_code == NOT_FOUND:
            response.close()
            raise NotFoundError(folder)
        ensure_success("GET", url, response)
        page = parse_listing_page(response.content, AZURE_BLOB_SCHEMA)
        logger.debug("Listed page of %s (next marker: %s)", folder, page.next_marker)
        if page.entries is None:
            return (), page.next_marker
        return convert_listing(page.entries, folder, AZURE_BLOB_SCHEMA), page.next_marker

    def _ls(
        self,
        path: StoragePath,
        recurse: bool,
        token: CancellationToken | None,
    ) -> Iterator[StorageEntry]:
        entries = paginate(
            lambda marker: self._fetch_page(path, marker, recurse=recurse, token=token),
            token,
        )
        if recurse:
            return with_implied_folders(entries, path)
        return entries

    def _open_read(
        self,
        path: StoragePath,
        token: CancellationToken | None,
    ) -> BinaryIO | None:
        return self._get_stream(self._url(path), headers=self._headers(), token=token)

    def _open_write(self, path: StoragePath, token: CancellationToken | None) -> BinaryIO:
        url = self._url(path)
        block_ids: list[str] = []

        def upload_block(block: bytes) -> None:
            block_id = _block_id(len(block_ids))
            self._send_checked(
                "PUT",
                url,
                params={"comp": "block", "blockid": block_id},
                headers=self._headers(),
                data=block,
                token=token,
            ).close()
            block_ids.append(block_id)

        def commit(remainder: bytes) -> None:
            if not block_ids:
                self._send_checked(
                    "PUT",
                    url,
                    headers=self._headers({"x-ms-blob-type": "BlockBlob"}),
                    data=remainder,
                    token=token,
                ).close()
                return
            if remainder:
                upload_block(remainder)
            body = "".join(f"<Latest>{escape(block_id)}</Latest>" for block_id in block_ids)
            payload = f'<?xml version="1.0" encoding="utf-8"?><BlockList>{body}</BlockList>'
            self._send_checked(
                "PUT",
                url,
                params={"comp": "blocklist"},
                headers=self._headers({"Content-Type": "application/xml"}),
                data=payload.encode("utf-8"),
                token=token,
            ).close()
            logger.debug("Committed %d blocks to %s", len(block_ids), path)

        return BlockWriter(upload_block, commit, block_size=self._block_size, token=token)

    def _remove(
        self,
        path: StoragePath,
        recurse: bool,
        token: CancellationToken | None,
    ) -> None:
        if not path.is_folder:
            self._delete_blob(path, token)
            return
        if not recurse:
            raise InvalidArgumentError.recurse_required(path)
        # Collected up front so deletions cannot disturb continuation markers.
        blobs = [entry.path for entry in self._ls(path, True, token) if not entry.is_folder]
        if not blobs:
            raise NotFoundError(path)
        for blob in blobs:
            self._delete_blob(blob, token)

    def _delete_blob(self, path: StoragePath, token: CancellationToken | None) -> None:
        url = self._url(path)
        response = self._send("DELETE", url, headers=self._headers(), token=token)
        response.close()
        if response.status_code == NOT_FOUND:
            raise NotFoundError(path)
        ensure_success("DELETE", url, response)
