"""Tests for the Azure Blob Storage backend."""

from __future__ import annotations

import base64
import xml.etree.ElementTree as ET

import pytest

from f9_remote_storage.azure_blob import AzureBlobStorage
from f9_remote_storage.cancellation import CancellationToken
from f9_remote_storage.interfaces import (
    Capability,
    InvalidArgumentError,
    NotFoundError,
    OperationCancelledError,
)
from tests.fakes import Call, FakeResponse, FakeTransport

# ruff: noqa: S101, PLR2004  # pytest assertions and magic numbers are ok in tests

CONTAINER_URL = "https://acct.blob.core.windows.net/raw"
LIST_PARAMS = {"restype": "container", "comp": "list"}


def _listing(*entries: str, next_marker: str = "") -> bytes:
    return (
        '<?xml version="1.0" encoding="utf-8"?><EnumerationResults ContainerName="raw">'
        f"<Blobs>{''.join(entries)}</Blobs><NextMarker>{next_marker}</NextMarker>"
        "</EnumerationResults>"
    ).encode()


def _blob(name: str, size: int = 1) -> str:
    return (
        f"<Blob><Name>{name}</Name><Properties>"
        f"<Content-Length>{size}</Content-Length><Etag>0x{size}</Etag>"
        "</Properties></Blob>"
    )


def _prefix(name: str) -> str:
    return f"<BlobPrefix><Name>{name}</Name></BlobPrefix>"


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def storage(transport: FakeTransport) -> AzureBlobStorage:
    return AzureBlobStorage("raw", account_name="acct", transport=transport, block_size=4)


def test_supports_every_operation(storage: AzureBlobStorage) -> None:
    assert all(storage.supports(capability) for capability in Capability)
    assert storage.container_name == "raw"


def test_sas_token_becomes_default_params() -> None:
    storage = AzureBlobStorage("raw", account_name="acct", sas_token="?sv=2022&sig=abc%3D")
    assert storage.transport._default_params == {"sv": "2022", "sig": "abc="}


class TestLs:
    """List Blobs with and without a delimiter."""

    def test_non_recursive_uses_delimiter(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add(
            "GET",
            CONTAINER_URL,
            FakeResponse(200, _listing(_prefix("data/"), _blob("top.txt", 3))),
            params={**LIST_PARAMS, "delimiter": "/"},
        )

        entries = list(storage.ls())

        assert [str(entry.path) for entry in entries] == ["data/", "top.txt"]
        assert entries[1].size == 3
        assert entries[1].tag == "0x3"
        assert "prefix" not in transport.calls[0].params

    def test_recursive_synthesises_folders(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add(
            "GET",
            CONTAINER_URL,
            FakeResponse(200, _listing(_blob("data/a.csv"), _blob("top.txt"))),
            params=LIST_PARAMS,
        )

        entries = list(storage.ls(recurse=True))

        assert [str(entry.path) for entry in entries] == ["data/", "data/a.csv", "top.txt"]
        assert "delimiter" not in transport.calls[0].params

    def test_sub_folder_prefix(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        transport.add(
            "GET",
            CONTAINER_URL,
            FakeResponse(200, _listing(_blob("data/2024/a.csv"))),
            params={**LIST_PARAMS, "prefix": "data/2024/"},
        )

        entries = list(storage.ls("data/2024/"))

        assert [str(entry.path) for entry in entries] == ["data/2024/a.csv"]

    def test_recursive_pages(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        transport.add(
            "GET",
            CONTAINER_URL,
            FakeResponse(200, _listing(_blob("a/1.txt"), next_marker="next")),
            params=LIST_PARAMS,
        )
        transport.add(
            "GET",
            CONTAINER_URL,
            FakeResponse(200, _listing(_blob("a/2.txt"), _blob("b/3.txt"))),
            params={**LIST_PARAMS, "marker": "next"},
        )

        entries = [str(entry.path) for entry in storage.ls(recurse=True)]

        assert entries == ["a/", "a/1.txt", "a/2.txt", "b/", "b/3.txt"]
        assert transport.call_count == 2

    def test_missing_container(self, storage: AzureBlobStorage) -> None:
        with pytest.raises(NotFoundError):
            list(storage.ls())

    def test_not_a_folder(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        with pytest.raises(InvalidArgumentError, match="folder"):
            storage.ls("data")
        assert transport.call_count == 0


class TestExists:
    """Container, virtual folder and blob existence checks."""

    def test_container(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        transport.add("HEAD", CONTAINER_URL, FakeResponse(200), params={"restype": "container"})
        assert storage.exists("")

    def test_blob(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        transport.add("HEAD", f"{CONTAINER_URL}/data/a%20b.csv", FakeResponse(200))
        assert storage.exists("data/a b.csv")
        assert not storage.exists("data/missing.csv")

    def test_virtual_folder(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        transport.add(
            "GET",
            CONTAINER_URL,
            FakeResponse(200, _listing(_blob("data/a.csv"))),
            params={**LIST_PARAMS, "prefix": "data/", "maxresults": "1"},
        )
        transport.add(
            "GET",
            CONTAINER_URL,
            FakeResponse(200, _listing()),
            params={**LIST_PARAMS, "prefix": "empty/", "maxresults": "1"},
        )
        assert storage.exists("data/")
        assert not storage.exists("empty/")


class TestReadWrite:
    """Downloads, single-shot uploads and block uploads."""

    def test_missing_blob_reads_none(self, storage: AzureBlobStorage) -> None:
        assert storage.open_read("missing.txt") is None
        assert storage.read_text("missing.txt") is None

    def test_small_upload_is_one_put(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add("PUT", f"{CONTAINER_URL}/notes.txt", FakeResponse(201))

        storage.write_text("notes.txt", "hi")

        (call,) = transport.calls
        assert call.data == b"hi"
        assert call.headers["x-ms-blob-type"] == "BlockBlob"
        assert call.params == {}

    def test_large_upload_uses_blocks(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        url = f"{CONTAINER_URL}/big.bin"
        transport.add("PUT", url, lambda call: FakeResponse(201), params={"comp": "block"})
        transport.add("PUT", url, FakeResponse(201), params={"comp": "blocklist"})

        with storage.open_write("big.bin") as stream:
            stream.write(b"abcdefghij")

        blocks = [call for call in transport.calls if call.params.get("comp") == "block"]
        assert [call.data for call in blocks] == [b"abcd", b"efgh", b"ij"]
        ids = [call.params["blockid"] for call in blocks]
        assert len(set(ids)) == 3
        assert {len(block_id) for block_id in ids} == {len(ids[0])}
        assert base64.b64decode(ids[0]) == b"block-00000000"

        commit = transport.calls[-1]
        assert commit.params == {"comp": "blocklist"}
        latest = [node.text for node in ET.fromstring(commit.data).iter("Latest")]
        assert latest == ids

    def test_failed_write_commits_nothing(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        with pytest.raises(RuntimeError), storage.open_write("x.txt") as stream:
            stream.write(b"ab")
            raise RuntimeError("producer failed")
        assert transport.call_count == 0

    def test_read_round_trip(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        transport.add("GET", f"{CONTAINER_URL}/notes.txt", FakeResponse(200, "héllo"))
        assert storage.read_text("notes.txt") == "héllo"

    def test_reads_release_the_token(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add("GET", f"{CONTAINER_URL}/notes.txt", lambda call: FakeResponse(200, "x"))
        token = CancellationToken()

        for _ in range(10):
            assert storage.read_text("notes.txt", token=token) == "x"

        assert token._callbacks == []


class TestRenameAndRemove:
    """Polyfilled rename and recursive removal."""

    def test_rename_copies_then_deletes(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add("GET", f"{CONTAINER_URL}/old.txt", FakeResponse(200, "abc"))
        transport.add("PUT", f"{CONTAINER_URL}/new.txt", FakeResponse(201))
        transport.add("DELETE", f"{CONTAINER_URL}/old.txt", FakeResponse(202))

        storage.rename("old.txt", "new.txt")

        assert [(call.method, call.url) for call in transport.calls] == [
            ("GET", f"{CONTAINER_URL}/old.txt"),
            ("PUT", f"{CONTAINER_URL}/new.txt"),
            ("DELETE", f"{CONTAINER_URL}/old.txt"),
        ]
        assert transport.calls[1].data == b"abc"

    def test_rename_missing_source(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        with pytest.raises(NotFoundError):
            storage.rename("missing.txt", "new.txt")
        assert transport.calls_to("PUT") == []

    def test_rename_to_same_path_only_checks_source(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add("HEAD", f"{CONTAINER_URL}/a.txt", FakeResponse(200))
        storage.rename("a.txt", "/a.txt")
        assert [call.method for call in transport.calls] == ["HEAD"]

    def test_rename_missing_source_onto_itself(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        with pytest.raises(NotFoundError):
            storage.rename("missing.txt", "missing.txt")
        assert transport.calls_to("PUT") == []
        assert transport.calls_to("DELETE") == []

    def test_remove_blob(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        transport.add("DELETE", f"{CONTAINER_URL}/a.txt", FakeResponse(202))
        storage.remove("a.txt")
        assert transport.call_count == 1

    def test_remove_missing_blob(self, storage: AzureBlobStorage) -> None:
        with pytest.raises(NotFoundError):
            storage.remove("a.txt")

    def test_remove_folder_requires_recurse(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        with pytest.raises(InvalidArgumentError, match="recurse"):
            storage.remove("data/")
        assert transport.call_count == 0

    def test_remove_folder_recursively(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        transport.add(
            "GET",
            CONTAINER_URL,
            FakeResponse(200, _listing(_blob("data/a.csv"), _blob("data/sub/b.csv"))),
            params={**LIST_PARAMS, "prefix": "data/"},
        )
        transport.add("DELETE", f"{CONTAINER_URL}/data/a.csv", FakeResponse(202))
        transport.add("DELETE", f"{CONTAINER_URL}/data/sub/b.csv", FakeResponse(202))

        storage.remove("data/", recurse=True)

        assert [call.url for call in transport.calls_to("DELETE")] == [
            f"{CONTAINER_URL}/data/a.csv",
            f"{CONTAINER_URL}/data/sub/b.csv",
        ]

    def test_remove_root_refused(self, storage: AzureBlobStorage, transport: FakeTransport) -> None:
        with pytest.raises(InvalidArgumentError, match="root"):
            storage.remove("/", recurse=True)
        assert transport.call_count == 0

    def test_cancelled_token_sends_nothing(
        self,
        storage: AzureBlobStorage,
        transport: FakeTransport,
    ) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelledError):
            storage.remove("a.txt", token=token)
        assert transport.call_count == 0


def test_block_ids_have_equal_length() -> None:
    responses: list[Call] = []
    transport = FakeTransport()
    url = f"{CONTAINER_URL}/f.bin"

    def record(call: Call) -> FakeResponse:
        responses.append(call)
        return FakeResponse(201)

    transport.add("PUT", url, record)
    storage = AzureBlobStorage("raw", account_name="acct", transport=transport, block_size=1)
    storage.write_text("f.bin", "x" * 12)

    ids = [call.params["blockid"] for call in responses if "blockid" in call.params]
    assert len(ids) == 12
    assert len({len(block_id) for block_id in ids}) == 1
