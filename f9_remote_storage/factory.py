"""Storage factory for URI-based backend resolution and instantiation.

This module provides a factory pattern for creating RemoteStorage instances
from URI strings. It supports multiple URI schemes and allows registration
of custom storage factories.

Supported URI Schemes:
    - azfiles://account/share - AzureFilesStorage for an Azure Files share
    - azblob://account/container - AzureBlobStorage for a blob container
    - dbfs://workspace-host - DbfsStorage for a Databricks workspace

Azure URIs carry the shared access signature either URL-encoded in a ``sas``
parameter or as the remaining query parameters themselves; ``endpoint``
overrides the account-derived service URL (emulators, sovereign clouds).

Example:
    >>> from f9_remote_storage.factory import resolve_storage
    >>> storage = resolve_storage("azfiles://acct/reports?sv=2022-11-02&sig=xxx")
    >>> storage = resolve_storage("azblob://acct/raw?sas=sv%3D2022-11-02%26sig%3Dxxx")
    >>> storage = resolve_storage("dbfs://adb-123.azuredatabricks.net?token=dapi_xxx")

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import parse_qs, urlencode, urlparse

from .interfaces import InvalidArgumentError

if TYPE_CHECKING:
    from typing import TypeAlias

    from .interfaces import RemoteStorage

    # Type alias for storage factory functions
    StorageFactoryFunc: TypeAlias = Callable[[str, dict[str, Any]], RemoteStorage]

AZURE_OPTION_KEYS = frozenset({"sas", "endpoint"})


class StorageFactory:
    """Factory for creating storage backends from URI strings."""

    def __init__(self) -> None:
        """Initialize the factory with built-in URI scheme handlers."""
        self._factories: dict[str, StorageFactoryFunc] = {
            "azfiles": self._create_azure_files_storage,
            "azblob": self._create_azure_blob_storage,
            "dbfs": self._create_dbfs_storage,
        }

    @property
    def schemes(self) -> list[str]:
        """Registered URI schemes, sorted."""
        return sorted(self._factories)

    def parse_uri(self, uri: str) -> tuple[str, str, dict[str, str]]:
        """Parse a URI into scheme, location, and query parameters.

        Args:
            uri: URI string to parse

        Returns:
            Tuple of (scheme, location, params) where location is the network
            location followed by the path, without surrounding separators

        Raises:
            InvalidArgumentError: If URI format is invalid

        """
        parsed = urlparse(uri)

        if not parsed.scheme:
            msg = f"Invalid URI: missing scheme in '{uri}'"
            raise InvalidArgumentError(msg)

        location = f"{parsed.netloc}{parsed.path}".strip("/")
        if not location:
            msg = f"Invalid URI: missing location in '{uri}'"
            raise InvalidArgumentError(msg)

        # Repeated parameters keep their first value
        params: dict[str, str] = {}
        if parsed.query:
            parsed_params = parse_qs(parsed.query, keep_blank_values=True)
            params = {key: values[0] for key, values in parsed_params.items()}

        return parsed.scheme.lower(), location, params

    def resolve(self, uri: str) -> RemoteStorage:
        """Create a storage instance from a URI string.

        Args:
            uri: URI string specifying the storage configuration

        Returns:
            RemoteStorage instance

        Raises:
            InvalidArgumentError: If the URI scheme is unsupported or the
                location is malformed

        """
        scheme, location, params = self.parse_uri(uri)

        if scheme not in self._factories:
            supported = ", ".join(self.schemes)
            msg = (
                f"Unsupported URI scheme: '{scheme}'. "
                f"Supported schemes: {supported}"
            )
            raise InvalidArgumentError(msg)

        factory_func = self._factories[scheme]
        return factory_func(location, params)

    def register(
        self,
        scheme: str,
        factory_func: StorageFactoryFunc,
    ) -> None:
        """Register a custom storage factory for a URI scheme.

        Args:
            scheme: URI scheme to register (e.g., "s3", "gcs")
            factory_func: Callable that takes (location, params) and returns
                a RemoteStorage

        """
        if not callable(factory_func):
            msg = "factory_func must be callable"
            raise TypeError(msg)
        self._factories[scheme.lower()] = factory_func

    @staticmethod
    def _azure_connection_info(location: str, params: dict[str, Any]) -> dict[str, Any]:
        """Split ``account/container`` and gather the SAS and endpoint."""
        account, _, container = location.partition("/")
        if not account or not container or "/" in container:
            msg = f"Expected '<account>/<container>' but got '{location}'"
            raise InvalidArgumentError(msg)

        sas = params.get("sas")
        if sas is None:
            extra = {k: v for k, v in params.items() if k not in AZURE_OPTION_KEYS}
            sas = urlencode(extra) or None

        return {
            "account_name": account,
            "container": container,
            "endpoint": params.get("endpoint"),
            "sas_token": sas,
        }

    def _create_azure_files_storage(
        self,
        location: str,
        params: dict[str, Any],
    ) -> RemoteStorage:
        """Create an AzureFilesStorage from URI components.

        URI format: azfiles://account/share?sv=...&sig=...

        """
        from .azure_files import AzureFilesStorage

        return AzureFilesStorage.from_connection_info(
            self._azure_connection_info(location, params),
        )

    def _create_azure_blob_storage(
        self,
        location: str,
        params: dict[str, Any],
    ) -> RemoteStorage:
        """Create an AzureBlobStorage from URI components.

        URI format: azblob://account/container?sv=...&sig=...

        """
        from .azure_blob import AzureBlobStorage

        return AzureBlobStorage.from_connection_info(
            self._azure_connection_info(location, params),
        )

    def _create_dbfs_storage(
        self,
        location: str,
        params: dict[str, Any],
    ) -> RemoteStorage:
        """Create a DbfsStorage from URI components.

        URI format: dbfs://adb-123.azuredatabricks.net?token=dapi_xxx

        Args:
            location: Workspace host
            params: Query parameters (token, scheme)

        Returns:
            DbfsStorage instance

        """
        from .dbfs import DbfsStorage

        scheme = params.get("scheme", "https")
        connection_info = {"host": f"{scheme}://{location}"}
        if "token" in params:
            connection_info["token"] = params["token"]
        return DbfsStorage.from_connection_info(connection_info)


# Global default factory instance
_default_factory = StorageFactory()


def resolve_storage(uri: str) -> RemoteStorage:
    """Convenience function to resolve a storage from a URI using the default factory.

    Args:
        uri: URI string specifying the storage configuration

    Returns:
        RemoteStorage instance

    Raises:
        InvalidArgumentError: If the URI scheme is unsupported or a name is
            invalid

    Example:
        >>> storage = resolve_storage("azblob://acct/raw?sas=sv%3D2022-11-02")
        >>> storage = resolve_storage("dbfs://adb-123.azuredatabricks.net?token=dapi_xxx")

    """
    return _default_factory.resolve(uri)


def register_storage_factory(
    scheme: str,
    factory_func: StorageFactoryFunc,
) -> None:
    """Register a custom storage factory for a URI scheme.

    Args:
        scheme: URI scheme to register (e.g., "s3", "gcs")
        factory_func: Callable that takes (location, params) and returns a
            RemoteStorage

    Example:
        >>> def my_s3_factory(location: str, params: dict) -> RemoteStorage:
        ...     return S3Storage(bucket=location, **params)
        >>> register_storage_factory("s3", my_s3_factory)

    """
    _default_factory.register(scheme, factory_func)
