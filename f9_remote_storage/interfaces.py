"""Core interfaces and data structures for remote storage implementations."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, BinaryIO, Union

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    from .cancellation import CancellationToken
    from .paths import StoragePath

PathLike = Union[str, "StoragePath", None]

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024


class StorageError(RuntimeError):
    """Base exception for storage operations."""

    def __init__(
        self,
        message: str,
        *,
        path: object | None = None,
    ) -> None:
        """Initialise the base error with an optional storage path context."""
        detail = message if path is None else ": ".join((message, str(path)))
        super().__init__(detail)
        self.message = message
        self.path = path


class InvalidArgumentError(StorageError, ValueError):
    """Raised when a path or name is rejected before any network call."""

    def __init__(self, message: str, *, path: object | None = None) -> None:
        """Initialise an invalid argument error scoped to a path."""
        super().__init__(message, path=path)

    @classmethod
    def path_required(cls) -> InvalidArgumentError:
        """Return an error for a missing path argument."""
        return cls("Path cannot be empty")

    @classmethod
    def folder_required(cls, path: object) -> InvalidArgumentError:
        """Return an error when a folder path was expected."""
        return cls("Path needs to be a folder", path=path)

    @classmethod
    def file_required(cls, path: object) -> InvalidArgumentError:
        """Return an error when a file path was expected."""
        return cls("Path needs to be a file", path=path)

    @classmethod
    def root_not_allowed(cls) -> InvalidArgumentError:
        """Return an error when an operation targets the storage root."""
        return cls("Path cannot refer to the storage root")

    @classmethod
    def invalid_name(cls, path: object, backend: str) -> InvalidArgumentError:
        """Return an error for a path violating a backend's naming rules."""
        return cls(f"Not a valid {backend} directory or file name", path=path)

    @classmethod
    def invalid_container_name(cls, name: object) -> InvalidArgumentError:
        """Return an error for an illegal share or container name."""
        return cls("Invalid share or container name", path=name)

    @classmethod
    def recurse_required(cls, path: object) -> InvalidArgumentError:
        """Return an error indicating folder removal must be recursive."""
        return cls("Removing a folder requires recurse=True", path=path)


class NotSupportedError(StorageError, NotImplementedError):
    """Raised when a backend has no implementation for an operation."""

    @classmethod
    def operation(cls, operation: str, backend: str) -> NotSupportedError:
        """Return an error naming the unsupported operation."""
        return cls(f"{backend} does not support '{operation}'")


class NotFoundError(StorageError):
    """Raised when an operation requires a resource that is missing."""

    def __init__(self, path: object) -> None:
        """Create a not-found error for the provided path."""
        super().__init__("Path not found", path=path)


class TransportError(StorageError):
    """Raised for non-success responses or network faults.

    The backend's status code, reason and body are attached untouched.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
        body: str | None = None,
        path: object | None = None,
    ) -> None:
        """Initialise the error with the raw response details."""
        super().__init__(message, path=path)
        self.status_code = status_code
        self.reason = reason
        self.body = body

    @classmethod
    def from_response(cls, method: str, url: str, response: object) -> TransportError:
        """Build an error describing an unsuccessful HTTP response."""
        status_code = getattr(response, "status_code", None)
        reason = getattr(response, "reason", None)
        body = getattr(response, "text", None)
        return cls(
            f"{method} {url} failed with status {status_code} {reason or ''}".rstrip(),
            status_code=status_code,
            reason=reason,
            body=body,
        )


class OperationCancelledError(StorageError):
    """Raised when a cancellation token is tripped during an operation."""

    def __init__(self, message: str = "Operation was cancelled") -> None:
        """Initialise the cancellation error."""
        super().__init__(message)


class Capability(enum.Enum):
    """Operations a backend may or may not implement natively."""

    LIST = "ls"
    EXISTS = "exists"
    READ = "open_read"
    WRITE = "open_write"
    RENAME = "rename"
    REMOVE = "remove"


class BackendKind(enum.Enum):
    """Closed set of supported storage backend families."""

    AZURE_FILES = "azure_files"
    AZURE_BLOB = "azure_blob"
    DBFS = "dbfs"


@dataclass(frozen=True)
class StorageEntry:
    """Snapshot of metadata for a remote resource."""

    path: StoragePath
    size: int | None = None
    last_modified: datetime | None = None
    checksum: str | None = None
    tag: str | None = None
    properties: dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        """Last segment of the entry path."""
        return self.path.name

    @property
    def is_folder(self) -> bool:
        """Whether the entry represents a folder."""
        return self.path.is_folder

    def as_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        return {
            "path": str(self.path),
            "is_folder": self.is_folder,
            "size": self.size,
            "last_modified": self.last_modified.isoformat()
            if self.last_modified
            else None,
            "checksum": self.checksum,
            "tag": self.tag,
            "properties": dict(self.properties),
        }


class RemoteStorage(ABC):
    """Standardised interface for remote storage providers.

    Every operation validates its path against the backend's naming rules
    before any network call is attempted. Operations a backend cannot
    perform raise ``NotSupportedError`` rather than emulating them partially.
    """

    kind: BackendKind
    capabilities: frozenset[Capability] = frozenset()

    def supports(self, capability: Capability) -> bool:
        """Return True when the backend implements the given capability."""
        return capability in self.capabilities

    @abstractmethod
    def exists(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> bool:
        """Check whether a file or folder exists."""

    @abstractmethod
    def ls(
        self,
        path: PathLike = None,
        recurse: bool = False,
        *,
        token: CancellationToken | None = None,
    ) -> Iterator[StorageEntry]:
        """List the contents of a folder.

        Args:
            path: Folder to list; ``None`` lists the storage root.
            recurse: Include the whole subtree rather than immediate children.
            token: Optional cancellation token checked between pages.

        """

    @abstractmethod
    def open_read(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> BinaryIO | None:
        """Open a file for reading, returning None when it does not exist."""

    @abstractmethod
    def open_write(
        self,
        path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> BinaryIO:
        """Open a file for writing; content is committed on close."""

    @abstractmethod
    def read_text(
        self,
        path: PathLike,
        encoding: str = "utf-8",
        *,
        token: CancellationToken | None = None,
    ) -> str | None:
        """Read a whole file as text, returning None when it does not exist."""

    @abstractmethod
    def write_text(
        self,
        path: PathLike,
        contents: str,
        encoding: str = "utf-8",
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Replace a file's contents with the given text."""

    @abstractmethod
    def rename(
        self,
        old_path: PathLike,
        new_path: PathLike,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Move a file to a new path."""

    @abstractmethod
    def remove(
        self,
        path: PathLike,
        recurse: bool = False,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        """Remove a file, or a folder when ``recurse`` allows it."""
