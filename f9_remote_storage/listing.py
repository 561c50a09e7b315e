"""Conversion of native listing responses into canonical entries.

Azure returns listings as XML with a two-tier layout: *prefix* nodes for
sub-folders collapsed by a delimiter and *entry* nodes tagged as directory
or file, each with a ``Properties`` bag. Databricks returns a flat JSON
array. Both are folded into ``StorageEntry`` values here.

All converters are lazy generators that preserve the order of the native
listing. ``paginate`` stitches continuation pages into one sequence and only
requests the next page once the current one is consumed.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from .cancellation import CancellationToken
from .interfaces import StorageEntry, TransportError
from .paths import StoragePath, parse

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

logger = logging.getLogger(__name__)

T = TypeVar("T")

LAST_MODIFIED = "Last-Modified"
CONTENT_LENGTH = "Content-Length"
CONTENT_MD5 = "Content-MD5"
ETAG_KEYS = frozenset({"Etag", "ETag"})


@dataclass(frozen=True)
class ListingSchema:
    """Element names used by one provider's XML listing."""

    container_tag: str
    prefix_tags: frozenset[str]
    directory_tags: frozenset[str]
    file_tags: frozenset[str]
    names_are_full_paths: bool


AZURE_FILES_SCHEMA = ListingSchema(
    container_tag="Entries",
    prefix_tags=frozenset({"Prefix"}),
    directory_tags=frozenset({"Directory"}),
    file_tags=frozenset({"File"}),
    names_are_full_paths=False,
)

AZURE_BLOB_SCHEMA = ListingSchema(
    container_tag="Blobs",
    prefix_tags=frozenset({"BlobPrefix"}),
    directory_tags=frozenset(),
    file_tags=frozenset({"Blob"}),
    names_are_full_paths=True,
)


@dataclass(frozen=True)
class ListingPage:
    """One page of a native XML listing."""

    entries: ET.Element | None
    next_marker: str | None


def parse_listing_page(payload: bytes | str, schema: ListingSchema) -> ListingPage:
    """Parse an ``EnumerationResults`` document.

    Raises:
        TransportError: If the payload is not well-formed XML.

    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        message = f"Malformed listing response: {exc}"
        raise TransportError(message) from exc
    next_marker = root.findtext("NextMarker") or None
    return ListingPage(root.find(schema.container_tag), next_marker)


def convert_listing(
    entries: ET.Element,
    base: StoragePath,
    schema: ListingSchema,
) -> Iterator[StorageEntry]:
    """Convert the entry container of a listing into canonical entries.

    Args:
        entries: The ``Entries``/``Blobs`` element of the listing.
        base: Folder that was listed; relative names are joined onto it.
        schema: Element names for the provider.

    Yields:
        Entries in document order.

    """
    for node in entries:
        tag = node.tag
        if tag in schema.prefix_tags:
            name = node.findtext("Name")
            if name is None:
                name = node.text or ""
            yield StorageEntry(path=_entry_path(name, base, schema, is_folder=True))
        elif tag in schema.directory_tags or tag in schema.file_tags:
            is_folder = tag in schema.directory_tags
            name = node.findtext("Name") or ""
            if not is_folder and name.endswith("/"):
                # Zero-length blob marking a folder.
                marker = _entry_path(name, base, schema, is_folder=True)
                if marker.is_root or marker == base:
                    logger.debug("Skipping folder marker %r under %s", name, base)
                else:
                    yield StorageEntry(path=marker)
                continue
            yield _convert_entry(node, base, schema, is_folder=is_folder)
        else:
            logger.warning("Skipping unknown listing node <%s>", tag)


def _entry_path(
    name: str,
    base: StoragePath,
    schema: ListingSchema,
    *,
    is_folder: bool,
) -> StoragePath:
    path = parse(name) if schema.names_are_full_paths else base.join(name)
    if not is_folder and path.is_root:
        message = f"Listing of {base} has a file entry without a name"
        raise TransportError(message)
    return path.as_folder() if is_folder else path.as_file()


def _convert_entry(
    node: ET.Element,
    base: StoragePath,
    schema: ListingSchema,
    *,
    is_folder: bool,
) -> StorageEntry:
    name = node.findtext("Name") or ""
    fields: dict[str, Any] = {}
    properties: dict[str, str] = {}
    bag = node.find("Properties")
    for prop in bag if bag is not None else ():
        key = prop.tag
        value = prop.text
        if not value:
            continue
        if key == LAST_MODIFIED:
            fields["last_modified"] = parse_http_date(value)
        elif key == CONTENT_LENGTH:
            fields["size"] = _parse_int(value, key)
        elif key == CONTENT_MD5:
            fields["checksum"] = value
        elif key in ETAG_KEYS:
            fields["tag"] = value
        else:
            properties[key] = value
    return StorageEntry(
        path=_entry_path(name, base, schema, is_folder=is_folder),
        properties=properties,
        **fields,
    )


def parse_http_date(value: str) -> datetime:
    """Parse an RFC 1123 timestamp such as ``Mon, 27 Jan 2020 10:00:00 GMT``."""
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError) as exc:
        message = f"Malformed timestamp in listing: {value!r}"
        raise TransportError(message) from exc


def _parse_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        message = f"Malformed {key} in listing: {value!r}"
        raise TransportError(message) from exc


DBFS_KNOWN_KEYS = frozenset({"path", "is_dir", "file_size", "modification_time"})


def convert_dbfs_listing(payload: Mapping[str, Any]) -> Iterator[StorageEntry]:
    """Convert a ``dbfs/list`` JSON payload into canonical entries.

    Paths in the payload are absolute; the canonical paths drop the leading
    separator.
    """
    for item in payload.get("files") or ():
        is_dir = bool(item.get("is_dir"))
        path = parse(item["path"])
        path = path.as_folder() if is_dir else path.as_file()
        fields: dict[str, Any] = {}
        if not is_dir and item.get("file_size") is not None:
            fields["size"] = _parse_int(item["file_size"], "file_size")
        modified = item.get("modification_time")
        if modified:
            fields["last_modified"] = datetime.fromtimestamp(
                _parse_int(modified, "modification_time") / 1000,
                tz=timezone.utc,
            )
        properties = {
            key: str(value)
            for key, value in item.items()
            if key not in DBFS_KNOWN_KEYS and value not in (None, "")
        }
        yield StorageEntry(path=path, properties=properties, **fields)


def with_implied_folders(
    entries: Iterable[StorageEntry],
    base: StoragePath,
) -> Iterator[StorageEntry]:
    """Insert one folder entry for every intermediate folder below ``base``.

    Flat object stores list only objects when no delimiter is used. Each
    missing ancestor folder is emitted once, just before the first entry
    found inside it.
    """
    seen: set[StoragePath] = set()
    depth = len(base.segments)
    for entry in entries:
        segments = entry.path.segments
        for index in range(depth + 1, len(segments)):
            folder = StoragePath(segments[:index], True)
            if folder not in seen:
                seen.add(folder)
                yield StorageEntry(path=folder)
        if entry.path.is_folder:
            if entry.path in seen:
                continue
            seen.add(entry.path)
        yield entry


def paginate(
    fetch_page: Callable[[str | None], tuple[Iterable[T], str | None]],
    token: CancellationToken | None = None,
) -> Iterator[T]:
    """Yield items from successive pages until no continuation remains.

    Args:
        fetch_page: Called with the previous continuation marker (``None``
            for the first page); returns the page items and the next marker.
        token: Optional cancellation token checked before every page and
            every item.

    """
    marker: str | None = None
    while True:
        CancellationToken.check(token)
        items, marker = fetch_page(marker)
        yield from CancellationToken.iterate(items, token)
        if not marker:
            return
