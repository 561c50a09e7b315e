"""Shared plumbing for Azure Storage backends (Files and Blob).

Both services address a storage account endpoint followed by a share or
container name, authenticate with a shared access signature passed in the
query string and require an ``x-ms-version`` header.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .http_storage import HttpStorage, quote_path
from .interfaces import InvalidArgumentError
from .naming import is_valid_container_name
from .transport import RequestsTransport, parse_sas_token

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .paths import StoragePath
    from .transport import Transport

AZURE_API_VERSION = "2022-11-02"


class AzureStorage(HttpStorage):
    """Base for backends scoped to one share or container of an account."""

    service: str = ""

    def __init__(
        self,
        container_name: str,
        *,
        account_name: str | None = None,
        endpoint: str | None = None,
        sas_token: str | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Initialise the backend for one share or container.

        Args:
            container_name: Share or container name; validated here.
            account_name: Storage account, used to derive the endpoint.
            endpoint: Explicit service endpoint (emulators, sovereign clouds).
            sas_token: Shared access signature query string.
            transport: Transport to use; a pooled ``RequestsTransport`` is
                created otherwise.

        Raises:
            InvalidArgumentError: If the account or container name is invalid.

        """
        if endpoint is None:
            if account_name is None or not account_name.strip():
                message = "account_name cannot be empty"
                raise InvalidArgumentError(message)
            endpoint = f"https://{account_name}.{self.service}.core.windows.net"
        if not is_valid_container_name(container_name):
            raise InvalidArgumentError.invalid_container_name(container_name)
        if transport is None:
            transport = RequestsTransport(default_params=parse_sas_token(sas_token))
        super().__init__(endpoint, transport)
        self._container = container_name

    @classmethod
    def from_connection_info(
        cls,
        connection_info: Mapping[str, Any],
        *,
        transport: Transport | None = None,
    ) -> AzureStorage:
        """Build a backend from a configuration mapping.

        Recognised keys: ``container`` (or ``share``), ``account_name``,
        ``endpoint`` and ``sas_token``.
        """
        container = connection_info.get("container") or connection_info.get("share")
        if container is None:
            message = "Missing 'container' in connection_info"
            raise InvalidArgumentError(message)
        return cls(
            str(container),
            account_name=connection_info.get("account_name"),
            endpoint=connection_info.get("endpoint"),
            sas_token=connection_info.get("sas_token"),
            transport=transport,
        )

    @property
    def container_name(self) -> str:
        """Share or container this backend is scoped to."""
        return self._container

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.endpoint + self._container!r})"

    def _container_url(self) -> str:
        return f"{self.endpoint}{self._container}"

    def _url(self, path: StoragePath) -> str:
        if path.is_root:
            return self._container_url()
        return f"{self._container_url()}/{quote_path(path)}"

    @staticmethod
    def _headers(extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {"x-ms-version": AZURE_API_VERSION}
        if extra:
            headers.update(extra)
        return headers
