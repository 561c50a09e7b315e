"""Tests for the Azure Files share backend."""

from __future__ import annotations

import pytest

from f9_remote_storage.azure import AZURE_API_VERSION
from f9_remote_storage.azure_files import AzureFilesStorage
from f9_remote_storage.cancellation import CancellationToken
from f9_remote_storage.interfaces import (
    BackendKind,
    Capability,
    InvalidArgumentError,
    NotFoundError,
    NotSupportedError,
    OperationCancelledError,
    TransportError,
)
from f9_remote_storage.paths import parse
from tests.fakes import FakeResponse, FakeTransport

# ruff: noqa: S101, PLR2004  # pytest assertions and magic numbers are ok in tests

SHARE_URL = "https://acct.file.core.windows.net/share"
LIST_PARAMS = {"restype": "directory", "comp": "list"}


def _listing(*entries: str, next_marker: str = "") -> bytes:
    body = "".join(entries)
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<EnumerationResults ServiceEndpoint="https://acct.file.core.windows.net/">'
        f"<Entries>{body}</Entries><NextMarker>{next_marker}</NextMarker>"
        "</EnumerationResults>"
    ).encode()


def _directory(name: str) -> str:
    return f"<Directory><Name>{name}</Name><Properties /></Directory>"


def _file(name: str, size: int) -> str:
    return (
        f"<File><Name>{name}</Name><Properties>"
        f"<Content-Length>{size}</Content-Length>"
        "<Last-Modified>Mon, 27 Jan 2020 10:00:00 GMT</Last-Modified>"
        "</Properties></File>"
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def storage(transport: FakeTransport) -> AzureFilesStorage:
    return AzureFilesStorage("share", account_name="acct", transport=transport)


class TestConstruction:
    """Share names and endpoints are checked up front."""

    def test_endpoint_from_account(self, storage: AzureFilesStorage) -> None:
        assert storage.endpoint == "https://acct.file.core.windows.net/"
        assert storage.share_name == "share"
        assert storage.kind is BackendKind.AZURE_FILES

    def test_explicit_endpoint(self, transport: FakeTransport) -> None:
        storage = AzureFilesStorage(
            "share",
            endpoint="http://127.0.0.1:10000/devstoreaccount1",
            transport=transport,
        )
        assert storage.endpoint == "http://127.0.0.1:10000/devstoreaccount1/"

    @pytest.mark.parametrize("name", ["", "a", "bad--name", "-bad"])
    def test_invalid_share_name(self, name: str, transport: FakeTransport) -> None:
        with pytest.raises(InvalidArgumentError, match="share or container"):
            AzureFilesStorage(name, account_name="acct", transport=transport)

    def test_account_required(self, transport: FakeTransport) -> None:
        with pytest.raises(InvalidArgumentError, match="account_name"):
            AzureFilesStorage("share", transport=transport)

    def test_from_connection_info(self, transport: FakeTransport) -> None:
        storage = AzureFilesStorage.from_connection_info(
            {"share": "reports", "account_name": "acct"},
            transport=transport,
        )
        assert isinstance(storage, AzureFilesStorage)
        assert storage.share_name == "reports"

    def test_capabilities(self, storage: AzureFilesStorage) -> None:
        assert storage.supports(Capability.LIST)
        assert storage.supports(Capability.READ)
        assert not storage.supports(Capability.WRITE)


class TestLs:
    """Listing directories and files."""

    def test_root_non_recursive(
        self,
        storage: AzureFilesStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add(
            "GET",
            SHARE_URL,
            FakeResponse(200, _listing(_directory("docs"), _file("readme.txt", 11))),
            params=LIST_PARAMS,
        )

        entries = list(storage.ls())

        assert [str(entry.path) for entry in entries] == ["docs/", "readme.txt"]
        assert entries[1].size == 11
        call = transport.calls[0]
        assert call.headers["x-ms-file-extended-info"] == "true"
        assert call.headers["x-ms-version"] == AZURE_API_VERSION

    def test_root_recursive(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        transport.add(
            "GET",
            SHARE_URL,
            FakeResponse(200, _listing(_directory("docs"), _file("readme.txt", 11))),
            params=LIST_PARAMS,
        )
        transport.add(
            "GET",
            f"{SHARE_URL}/docs",
            FakeResponse(200, _listing(_file("guide.txt", 5))),
            params=LIST_PARAMS,
        )

        entries = list(storage.ls(recurse=True))

        assert [str(entry.path) for entry in entries] == [
            "docs/",
            "readme.txt",
            "docs/guide.txt",
        ]

    def test_sub_folder(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        transport.add(
            "GET",
            f"{SHARE_URL}/docs/2024",
            FakeResponse(200, _listing(_file("a b.txt", 1))),
            params=LIST_PARAMS,
        )

        entries = list(storage.ls("docs/2024/"))

        assert [str(entry.path) for entry in entries] == ["docs/2024/a b.txt"]

    def test_continuation_pages(
        self,
        storage: AzureFilesStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add(
            "GET",
            SHARE_URL,
            FakeResponse(200, _listing(_file("one.txt", 1), next_marker="m2")),
            params=LIST_PARAMS,
        )
        transport.add(
            "GET",
            SHARE_URL,
            FakeResponse(200, _listing(_file("two.txt", 2))),
            params={**LIST_PARAMS, "marker": "m2"},
        )

        entries = storage.ls()
        assert next(entries).name == "one.txt"
        assert transport.call_count == 1
        assert next(entries).name == "two.txt"
        assert transport.call_count == 2
        assert list(entries) == []

    def test_missing_folder(self, storage: AzureFilesStorage) -> None:
        with pytest.raises(NotFoundError):
            list(storage.ls("missing/"))

    def test_server_error(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        transport.add(
            "GET",
            SHARE_URL,
            FakeResponse(403, "AuthenticationFailed", reason="Forbidden"),
            params=LIST_PARAMS,
        )
        with pytest.raises(TransportError) as exc_info:
            list(storage.ls())
        assert exc_info.value.status_code == 403
        assert exc_info.value.reason == "Forbidden"
        assert exc_info.value.body == "AuthenticationFailed"

    @pytest.mark.parametrize("raw", ["readme.txt", "folder\\/", "C:folder/", "LPT1/"])
    def test_invalid_folder_sends_nothing(
        self,
        storage: AzureFilesStorage,
        transport: FakeTransport,
        raw: str,
    ) -> None:
        with pytest.raises(InvalidArgumentError):
            storage.ls(raw)
        assert transport.call_count == 0

    def test_cancelled_between_pages(
        self,
        storage: AzureFilesStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add(
            "GET",
            SHARE_URL,
            FakeResponse(200, _listing(_file("one.txt", 1), next_marker="m2")),
            params=LIST_PARAMS,
        )
        token = CancellationToken()
        entries = storage.ls(token=token)
        next(entries)
        token.cancel()
        with pytest.raises(OperationCancelledError):
            next(entries)
        assert transport.call_count == 1


class TestExists:
    """HEAD checks for shares, directories and files."""

    def test_file(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        transport.add("HEAD", f"{SHARE_URL}/readme.txt", FakeResponse(200))
        assert storage.exists("readme.txt")
        assert not storage.exists("other.txt")

    def test_directory(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        transport.add(
            "HEAD",
            f"{SHARE_URL}/docs",
            FakeResponse(200),
            params={"restype": "directory"},
        )
        assert storage.exists("docs/")
        assert not storage.exists("docs")

    def test_share(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        transport.add("HEAD", SHARE_URL, FakeResponse(200), params={"restype": "share"})
        assert storage.exists(None)

    def test_invalid_name(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        with pytest.raises(InvalidArgumentError):
            storage.exists("fi*le")
        assert transport.call_count == 0


class TestRead:
    """Downloads through GET."""

    def test_read_text(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        transport.add("GET", f"{SHARE_URL}/docs/readme.txt", FakeResponse(200, "hello share"))
        assert storage.read_text("docs/readme.txt") == "hello share"
        assert transport.calls[0].stream

    def test_missing_file(self, storage: AzureFilesStorage) -> None:
        assert storage.open_read("nope.txt") is None
        assert storage.read_text("nope.txt") is None

    def test_open_read_streams(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        response = FakeResponse(200, b"0123456789")
        transport.add("GET", f"{SHARE_URL}/data.bin", response)
        with storage.open_read("data.bin") as stream:
            assert stream.read(4) == b"0123"
            assert stream.read() == b"456789"
        assert response.closed

    def test_folder_rejected(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        with pytest.raises(InvalidArgumentError, match="file"):
            storage.open_read("docs/")
        assert transport.call_count == 0


class TestUnsupported:
    """Writes, renames and removals are refused before any request."""

    def test_write(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        with pytest.raises(NotSupportedError, match="open_write"):
            storage.open_write("a.txt")
        with pytest.raises(NotImplementedError):
            storage.write_text("a.txt", "x")
        assert transport.call_count == 0

    def test_rename(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        with pytest.raises(NotSupportedError, match="rename"):
            storage.rename("a.txt", "b.txt")
        assert transport.call_count == 0

    def test_remove(self, storage: AzureFilesStorage, transport: FakeTransport) -> None:
        with pytest.raises(NotSupportedError, match="Azure Files"):
            storage.remove("a.txt")
        assert transport.call_count == 0

    def test_validation_precedes_capability(self, storage: AzureFilesStorage) -> None:
        with pytest.raises(InvalidArgumentError):
            storage.open_write("LPT1")
