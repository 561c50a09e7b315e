"""Canonical storage path model.

Every public storage operation converts its raw path argument into a
``StoragePath`` at the boundary. The canonical form is a tuple of non-empty
segments plus a folder flag:

- ``None`` or ``""`` is the storage root, which is always a folder
- repeated separators collapse (``"a//b"`` is ``"a/b"``)
- a leading separator is dropped; paths are always relative to the root
- a trailing separator marks a folder
- ``.`` and ``..`` are kept as literal segments so validators can reject them

Example:

    >>> path = parse("/docs//reports/")
    >>> path.segments
    ('docs', 'reports')
    >>> path.is_folder
    True
    >>> str(path)
    'docs/reports/'

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

SEPARATOR = "/"


@dataclass(frozen=True)
class StoragePath:
    """Immutable, normalised path relative to a storage root."""

    segments: tuple[str, ...] = ()
    is_folder: bool = True

    def __post_init__(self) -> None:
        segments = tuple(self.segments)
        for segment in segments:
            if not segment or SEPARATOR in segment:
                message = f"Invalid path segment: {segment!r}"
                raise ValueError(message)
        object.__setattr__(self, "segments", segments)
        if not segments:
            object.__setattr__(self, "is_folder", True)

    @property
    def name(self) -> str:
        """Last segment, or an empty string for the root."""
        return self.segments[-1] if self.segments else ""

    @property
    def is_root(self) -> bool:
        """Whether this path addresses the storage root."""
        return not self.segments

    @property
    def parent(self) -> StoragePath:
        """Folder containing this path; the root is its own parent."""
        return StoragePath(self.segments[:-1], True)

    def join(self, *parts: str) -> StoragePath:
        """Return a path below this one built from raw path fragments."""
        return combine(self, *parts)

    def as_folder(self) -> StoragePath:
        """Return the same segments flagged as a folder."""
        return StoragePath(self.segments, True)

    def as_file(self) -> StoragePath:
        """Return the same segments flagged as a file."""
        if not self.segments:
            message = "The root path cannot be a file"
            raise ValueError(message)
        return StoragePath(self.segments, False)

    def relative_to(self, folder: StoragePath) -> StoragePath:
        """Strip a leading folder from this path."""
        count = len(folder.segments)
        if self.segments[:count] != folder.segments:
            message = f"{self} is not below {folder}"
            raise ValueError(message)
        return StoragePath(self.segments[count:], self.is_folder)

    def __str__(self) -> str:
        return to_string(self)


RawPath = Union[str, StoragePath, None]

ROOT = StoragePath()


def parse(raw: RawPath) -> StoragePath:
    """Parse a raw path string into its canonical form.

    Args:
        raw: Path string, an existing ``StoragePath`` or ``None``.

    Returns:
        The canonical ``StoragePath``.

    Raises:
        TypeError: If ``raw`` is not a string, ``StoragePath`` or ``None``.

    """
    if isinstance(raw, StoragePath):
        return raw
    if raw is None or raw == "":
        return ROOT
    if not isinstance(raw, str):
        message = f"Unsupported path type: {type(raw).__name__}"
        raise TypeError(message)
    segments = tuple(part for part in raw.split(SEPARATOR) if part)
    return StoragePath(segments, raw.endswith(SEPARATOR))


def to_string(path: StoragePath) -> str:
    """Render a canonical path, appending a separator for folders."""
    joined = SEPARATOR.join(path.segments)
    return joined + SEPARATOR if path.is_folder else joined


def combine(*parts: RawPath) -> StoragePath:
    """Join raw fragments into one path.

    The folder flag of the last non-empty fragment wins.

    Example:

        >>> str(combine("docs/", "2024", "report.txt"))
        'docs/2024/report.txt'

    """
    segments: list[str] = []
    is_folder = True
    for part in parts:
        if part is None or part == "":
            continue
        piece = parse(part)
        segments.extend(piece.segments)
        is_folder = piece.is_folder
    return StoragePath(tuple(segments), is_folder)
