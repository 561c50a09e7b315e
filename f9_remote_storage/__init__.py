"""Remote storage abstraction library for cloud file and blob services.

This package provides one path-based interface for file operations across
multiple remote storage providers (Azure Files shares, Azure Blob Storage
containers, the Databricks File System).

Core Components:
    - RemoteStorage: Abstract interface all backends implement
    - StoragePath: Canonical, backend-independent path model
    - StorageEntry: Metadata snapshot returned by listings
    - AzureFilesStorage: Read-only access to an Azure Files share
    - AzureBlobStorage: Blob container with virtual folders
    - DbfsStorage: Databricks workspace filesystem

Quick Start:

    >>> from f9_remote_storage import resolve_storage
    >>> storage = resolve_storage("azblob://acct/raw?sv=2022-11-02&sig=xxx")
    >>> storage.write_text("reports/2024.txt", "Hello, world!")
    >>> storage.read_text("reports/2024.txt")
    'Hello, world!'
    >>> [str(entry.path) for entry in storage.ls("reports/")]
    ['reports/2024.txt']

Exception Handling:

    >>> from f9_remote_storage import InvalidArgumentError
    >>> try:
    ...     storage.ls("reports/../")
    ... except InvalidArgumentError:
    ...     print("Rejected before any request was sent")

Supported Operations:
    - exists() - Check file or folder existence
    - ls() - List a folder, optionally recursively
    - open_read() - Stream a file (None when missing)
    - open_write() - Stream an upload, committed on close
    - read_text() / write_text() - Whole-file text helpers
    - rename() - Move a file
    - remove() - Delete a file or a folder tree

"""

from .async_storage import AsyncRemoteStorage
from .azure_blob import AzureBlobStorage
from .azure_files import AzureFilesStorage
from .cancellation import CancellationToken
from .dbfs import DbfsStorage
from .factory import StorageFactory, register_storage_factory, resolve_storage
from .interfaces import (
    DEFAULT_CHUNK_SIZE,
    BackendKind,
    Capability,
    InvalidArgumentError,
    NotFoundError,
    NotSupportedError,
    OperationCancelledError,
    PathLike,
    RemoteStorage,
    StorageEntry,
    StorageError,
    TransportError,
)
from .naming import (
    is_valid_blob_name,
    is_valid_container_name,
    is_valid_dbfs_name,
    is_valid_resource_name,
    validate_path,
)
from .paths import ROOT, StoragePath, combine, parse
from .transport import RequestsTransport, Transport

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "ROOT",
    "AsyncRemoteStorage",
    "AzureBlobStorage",
    "AzureFilesStorage",
    "BackendKind",
    "CancellationToken",
    "Capability",
    "DbfsStorage",
    "InvalidArgumentError",
    "NotFoundError",
    "NotSupportedError",
    "OperationCancelledError",
    "PathLike",
    "RemoteStorage",
    "RequestsTransport",
    "StorageEntry",
    "StorageError",
    "StorageFactory",
    "StoragePath",
    "Transport",
    "TransportError",
    "combine",
    "is_valid_blob_name",
    "is_valid_container_name",
    "is_valid_dbfs_name",
    "is_valid_resource_name",
    "parse",
    "register_storage_factory",
    "resolve_storage",
    "validate_path",
]
