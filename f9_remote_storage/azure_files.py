"""Azure Files share backend.

Addresses ``https://<account>.file.core.windows.net/<share>/<path>``.

Supported operations:
    - exists() via ``HEAD`` on the file, directory or share
    - ls() via *List Directories and Files*, walking sub-directories lazily
      when ``recurse=True`` (the service only lists one level at a time)
    - open_read()/read_text() via ``GET``

Writing, renaming and removing are not implemented for file shares and
raise ``NotSupportedError`` before any request is made.

Example:

    >>> from f9_remote_storage import AzureFilesStorage
    >>> storage = AzureFilesStorage("reports", account_name="acct", sas_token="sv=...")
    >>> for entry in storage.ls("2024/"):
    ...     print(entry.path, entry.size)

"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, BinaryIO

from .azure import AzureStorage
from .interfaces import BackendKind, Capability, NotFoundError, StorageEntry
from .listing import AZURE_FILES_SCHEMA, convert_listing, paginate, parse_listing_page
from .transport import NOT_FOUND, ensure_success

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .cancellation import CancellationToken
    from .paths import StoragePath

logger = logging.getLogger(__name__)

LIST_INCLUDE = "Timestamps,ETag,Attributes,PermissionKey"


class AzureFilesStorage(AzureStorage):
    """Read-only view of an Azure Files share."""

    kind = BackendKind.AZURE_FILES
    service = "file"
    capabilities = frozenset({Capability.LIST, Capability.EXISTS, Capability.READ})

    @property
    def share_name(self) -> str:
        """Name of the file share."""
        return self.container_name

    def _exists(self, path: StoragePath, token: CancellationToken | None) -> bool:
        if path.is_root:
            params = {"restype": "share"}
        elif path.is_folder:
            params = {"restype": "directory"}
        else:
            params = None
        url = self._url(path)
        response = self._send("HEAD", url, params=params, headers=self._headers(), token=token)
        response.close()
        if response.status_code == NOT_FOUND:
            return False
        ensure_success("HEAD", url, response)
        return True

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
        url = self._url(folder)

        def fetch_page(marker: str | None) -> tuple[Iterable[StorageEntry], str | None]:
            params = {"restype": "directory", "comp": "list", "include": LIST_INCLUDE}
            if marker:
                params["marker"] = marker
            response = self._send(
                "GET",
                url,
                params=params,
                headers=self._headers({"x-ms-file-extended-info": "true"}),
                token=token,
            )
            if response.status_code == NOT_FOUND:
                response.close()
                raise NotFoundError(folder)
            ensure_success("GET", url, response)
            page = parse_listing_page(response.content, AZURE_FILES_SCHEMA)
            logger.debug("Listed page of %s (next marker: %s)", folder, page.next_marker)
            if page.entries is None:
                return (), page.next_marker
            return convert_listing(page.entries, folder, AZURE_FILES_SCHEMA), page.next_marker

        return paginate(fetch_page, token)

    def _open_read(
        self,
        path: StoragePath,
        token: CancellationToken | None,
    ) -> BinaryIO | None:
        return self._get_stream(self._url(path), headers=self._headers(), token=token)
