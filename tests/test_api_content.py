"""Tests for casgate content routes.

Covers:
- POST /upload returns {path, hash, size}
- GET /download/{cid} streams content with CID and length headers
- Error mapping: INVALID_CID and NOT_FOUND (404), STORE_UNAVAILABLE (502),
  UPLOAD_TOO_LARGE (413), NO_FILE_UPLOADED (400)
- A store failure mid-download leaves the body short of Content-Length
"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from casgate.api.main import create_app
from casgate.cid import identify
from casgate.services import ContentService
from casgate.storage import MemoryBlockStore

ALPHABET = b"abcdefghijklmnopqrst"


def _client(service: ContentService) -> TestClient:
    return TestClient(create_app(content_service=service))


@pytest.fixture
def client(tiered_store: Any) -> TestClient:
    """Create a test client over healthy in-memory tiers with 4-byte leaves."""
    return _client(ContentService(store=tiered_store, chunk_size=4, max_links=2))


@pytest.fixture
def offline_client(offline_store: Any) -> TestClient:
    """Create a test client whose durable tier is unreachable."""
    return _client(ContentService(store=offline_store))


def _upload(client: TestClient, data: bytes, name: str = "file.bin") -> Any:
    return client.post("/upload", files={"upload": (name, data, "application/octet-stream")})


class TestUpload:
    """Tests for POST /upload."""

    def test_upload_returns_cid(self, tiered_store: Any) -> None:
        client = _client(ContentService(store=tiered_store))

        response = _upload(client, b"hello", name="hello.txt")

        assert response.status_code == 200
        assert response.json() == {
            "path": "hello.txt",
            "hash": str(identify(b"hello")),
            "size": 5,
        }

    def test_upload_multi_chunk_returns_dag_root(self, client: TestClient) -> None:
        response = _upload(client, b"hello", name="hello.txt")

        assert response.status_code == 200
        body = response.json()
        assert body["size"] == 5
        assert body["hash"].startswith("bag")
        assert body["hash"] != str(identify(b"hello"))

    def test_upload_empty_file(self, client: TestClient) -> None:
        response = _upload(client, b"", name="empty.txt")

        assert response.status_code == 200
        assert response.json()["size"] == 0
        assert response.json()["hash"] == str(identify(b""))

    def test_missing_file_field(self, client: TestClient) -> None:
        response = client.post("/upload", files={"file": ("x.txt", b"x", "text/plain")})

        assert response.status_code == 400
        assert response.json()["code"] == "NO_FILE_UPLOADED"

    def test_upload_too_large(self, tiered_store: Any) -> None:
        client = _client(ContentService(store=tiered_store, chunk_size=4, max_upload_bytes=8))

        response = _upload(client, ALPHABET)

        assert response.status_code == 413
        assert response.json()["code"] == "UPLOAD_TOO_LARGE"

    def test_upload_store_unavailable(self, offline_client: TestClient) -> None:
        response = _upload(offline_client, b"nowhere to go")

        assert response.status_code == 502
        body = response.json()
        assert body["code"] == "STORE_UNAVAILABLE"
        assert "backend offline" not in body["message"]


class TestDownload:
    """Tests for GET /download/{path}."""

    def test_download_round_trip(self, client: TestClient) -> None:
        cid = _upload(client, ALPHABET).json()["hash"]

        response = client.get(f"/download/{cid}")

        assert response.status_code == 200
        assert response.content == ALPHABET
        assert response.headers["content-type"] == "application/octet-stream"
        assert response.headers["X-Content-Cid"] == cid
        assert response.headers["content-length"] == str(len(ALPHABET))

    def test_download_with_ipfs_prefix(self, client: TestClient) -> None:
        cid = _upload(client, b"prefixed").json()["hash"]

        response = client.get(f"/download/ipfs/{cid}")

        assert response.status_code == 200
        assert response.content == b"prefixed"

    def test_download_empty(self, client: TestClient) -> None:
        cid = _upload(client, b"").json()["hash"]

        response = client.get(f"/download/{cid}")

        assert response.status_code == 200
        assert response.content == b""

    def test_invalid_cid(self, client: TestClient) -> None:
        response = client.get("/download/not-a-cid", headers={"X-Request-Id": "req-bad"})

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "INVALID_CID"
        assert body["request_id"] == "req-bad"

    def test_unknown_cid(self, client: TestClient) -> None:
        missing = str(identify(b"never uploaded"))

        response = client.get(f"/download/{missing}")

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "NOT_FOUND"
        assert body["details"] == {"cid": missing}

    def test_store_unavailable(self, offline_client: TestClient) -> None:
        response = offline_client.get(f"/download/{identify(b'anything')}")

        assert response.status_code == 502
        assert response.json()["code"] == "STORE_UNAVAILABLE"

    def test_dag_pb_cid_is_invalid_for_download(self, client: TestClient) -> None:
        response = client.get("/download/QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG")

        assert response.status_code == 404
        assert response.json()["code"] == "INVALID_CID"

    def test_sub_path_is_invalid_cid(self, client: TestClient) -> None:
        cid = _upload(client, ALPHABET).json()["hash"]

        response = client.get(f"/download/ipfs/{cid}/some/other/file.txt")

        assert response.status_code == 404
        assert response.json()["code"] == "INVALID_CID"

    def test_store_failure_after_first_byte_truncates_body(self) -> None:
        store = MemoryBlockStore()
        client = TestClient(
            create_app(content_service=ContentService(store=store, chunk_size=4)),
            raise_server_exceptions=False,
        )
        cid = _upload(client, ALPHABET).json()["hash"]
        store.delete(identify(b"efgh"))

        response = client.get(f"/download/{cid}")

        assert response.status_code == 200
        assert response.headers["content-length"] == str(len(ALPHABET))
        assert len(response.content) < len(ALPHABET)
        assert ALPHABET.startswith(response.content)
