"""Naming rules for each supported storage backend.

Cloud providers reject names server-side according to their own grammars.
The predicates here reproduce those grammars so a bad path is refused
locally, before any request is sent. They are pure functions over
``StoragePath`` values and plain strings.

Example:

    >>> is_valid_container_name("reports-2024")
    True
    >>> is_valid_resource_name("docs/LPT1")
    False
    >>> validate_path(BackendKind.AZURE_FILES, "docs/readme.txt")
    StoragePath(segments=('docs', 'readme.txt'), is_folder=False)

"""

from __future__ import annotations

import re
import unicodedata
from typing import TYPE_CHECKING, Callable

from .interfaces import BackendKind, InvalidArgumentError
from .paths import SEPARATOR, RawPath, StoragePath, parse

if TYPE_CHECKING:
    from typing import TypeAlias

    NamePredicate: TypeAlias = Callable[[RawPath], bool]

# Matches everything except consecutive dashes, which are checked separately.
_CONTAINER_NAME = re.compile(r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$", re.IGNORECASE)

_RESERVED_CHARACTERS = re.compile(r"[\"\\/:|<>*?]")

_RESERVED_NAMES = re.compile(
    r"^(?:LPT[1-9]|COM[1-9]|PRN|AUX|NUL|CON|CLOCK\$|.*\.{1,2})$",
    re.IGNORECASE | re.DOTALL,
)

# RFC 3986 characters allowed unescaped in a relative reference.
_URI_COMPONENT = re.compile(
    r"^(?:[A-Za-z0-9\-._~!$&'()*+,;=:@/?#\[\]]|%[0-9A-Fa-f]{2})*$",
)

# str.isspace() also covers the ASCII separators 0x1C-0x1F, which are
# control characters that must survive trimming to be rejected.
_CONTROL_SEPARATORS = frozenset("\x1c\x1d\x1e\x1f")

MAX_RESOURCE_NAME_LENGTH = 255
MAX_BLOB_NAME_LENGTH = 1024
MAX_BLOB_SEGMENTS = 254


def _trim(text: str) -> str:
    """Strip surrounding whitespace but keep control separators."""
    start, end = 0, len(text)
    while start < end and _is_trimmable(text[start]):
        start += 1
    while end > start and _is_trimmable(text[end - 1]):
        end -= 1
    return text[start:end]


def _is_trimmable(char: str) -> bool:
    return char.isspace() and char not in _CONTROL_SEPARATORS


def has_control_characters(text: str) -> bool:
    """Return True if any character is a Unicode control character."""
    return any(unicodedata.category(char) == "Cc" for char in text)


def is_well_formed_uri_component(text: str) -> bool:
    """Return True if text can appear unescaped in a relative URI."""
    return _URI_COMPONENT.match(text) is not None


def is_valid_container_name(name: str | None) -> bool:
    """Return whether a share or container name is legal.

    Share and container names must be valid DNS labels:

    - 3 to 63 characters long
    - letters, digits and ``-`` only
    - start and end with a letter or digit
    - no consecutive dashes

    Internationalised names are not accepted even though they could be
    expressed as Punycode.

    Args:
        name: Candidate share or container name.

    Returns:
        True if the name is legal.

    """
    if name is None or not name.strip():
        return False
    return _CONTAINER_NAME.match(name) is not None and "--" not in name


def is_valid_resource_name(path: RawPath) -> bool:
    """Return whether a path's leaf is a legal Azure Files name.

    Azure Files directory and file names:

    - are at most 255 characters
    - cannot end with ``/`` or ``.``
    - cannot contain ``" \\ / : | < > * ?`` or control characters
    - must be expressible in a URL without escaping (ASCII only)
    - cannot be a reserved device name (``LPT1``-``LPT9``, ``COM1``-``COM9``,
      ``PRN``, ``AUX``, ``NUL``, ``CON``, ``CLOCK$``) or ``.``/``..``

    The storage root is accepted; it names the share itself.

    Args:
        path: Path whose last segment is checked.

    Returns:
        True if the leaf name is legal.

    """
    path = parse(path)
    if path.is_root:
        return True

    name = _trim(path.name)
    if not name:
        return False
    if path.is_folder and name.endswith(SEPARATOR):
        name = name[:-1]

    if len(name) > MAX_RESOURCE_NAME_LENGTH or name.endswith(SEPARATOR):
        return False
    if not is_well_formed_uri_component(name):
        return False
    if _RESERVED_CHARACTERS.search(name):
        return False
    if has_control_characters(name):
        return False
    if not name.isascii():
        return False
    return _RESERVED_NAMES.match(name) is None


def is_valid_blob_name(path: RawPath) -> bool:
    """Return whether a path is a legal blob name.

    Blob names are 1 to 1024 characters with at most 254 path segments.
    Segments may not end with a dot and control characters are refused.
    """
    path = parse(path)
    if path.is_root:
        return True
    full_name = SEPARATOR.join(path.segments)
    if len(full_name) > MAX_BLOB_NAME_LENGTH:
        return False
    if len(path.segments) > MAX_BLOB_SEGMENTS:
        return False
    if any(segment.endswith(".") for segment in path.segments):
        return False
    return not has_control_characters(full_name)


def is_valid_dbfs_name(path: RawPath) -> bool:
    """Return whether a path is legal on the Databricks filesystem."""
    path = parse(path)
    if path.is_root:
        return True
    if not _trim(path.name) or path.name in (".", ".."):
        return False
    for segment in path.segments:
        if ":" in segment or "\\" in segment:
            return False
        if has_control_characters(segment):
            return False
    return True


_VALIDATORS: dict[BackendKind, NamePredicate] = {
    BackendKind.AZURE_FILES: is_valid_resource_name,
    BackendKind.AZURE_BLOB: is_valid_blob_name,
    BackendKind.DBFS: is_valid_dbfs_name,
}

_DISPLAY_NAMES = {
    BackendKind.AZURE_FILES: "Azure Files",
    BackendKind.AZURE_BLOB: "Azure Blob Storage",
    BackendKind.DBFS: "DBFS",
}


def display_name(kind: BackendKind) -> str:
    """Human readable name for a backend kind."""
    return _DISPLAY_NAMES[kind]


def validator_for(kind: BackendKind) -> NamePredicate:
    """Return the resource-name predicate for a backend kind."""
    return _VALIDATORS[kind]


def validate_path(kind: BackendKind, path: RawPath) -> StoragePath:
    """Parse a path and check it against a backend's naming rules.

    Raises:
        InvalidArgumentError: If the path is malformed or illegal.

    """
    try:
        canonical = parse(path)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(str(exc), path=path) from exc
    if not validator_for(kind)(canonical):
        raise InvalidArgumentError.invalid_name(canonical, display_name(kind))
    return canonical
