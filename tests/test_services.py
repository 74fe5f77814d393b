"""Tests for retry, storage clients and reference image download."""

import httpx
import pytest

from adshoot.services.exceptions import (
    StorageAuthError,
    StorageNetworkError,
    StorageRateLimitError,
    StorageValidationError,
)
from adshoot.services.reference_images import download_references
from adshoot.services.retry import with_retry
from adshoot.services.storage.base import generated_path, reference_path
from adshoot.services.storage.local_storage import LocalAssetStore
from adshoot.services.storage.supabase_storage import (
    SupabaseStorageClient,
    raise_for_storage_status,
)


def mock_httpx(monkeypatch, handler):
    """Route every httpx.AsyncClient created by the code under test to handler."""
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)


@pytest.mark.asyncio
class TestWithRetry:
    async def test_transient_errors_are_retried(self):
        calls = []

        async def flaky(value):
            calls.append(value)
            if len(calls) < 3:
                raise StorageNetworkError("connection reset")
            return value * 2

        assert await with_retry(flaky, 21, attempts=3, base_delay=0) == 42
        assert calls == [21, 21, 21]

    async def test_permanent_error_is_not_retried(self):
        calls = 0

        async def forbidden():
            nonlocal calls
            calls += 1
            raise StorageAuthError("Forbidden")

        with pytest.raises(StorageAuthError):
            await with_retry(forbidden, attempts=3, base_delay=0)
        assert calls == 1

    async def test_last_transient_error_raised_when_exhausted(self):
        errors = [StorageNetworkError("first"), StorageRateLimitError("second")]

        async def always_failing():
            raise errors.pop(0)

        with pytest.raises(StorageRateLimitError, match="second"):
            await with_retry(always_failing, attempts=2, base_delay=0)


def test_storage_paths():
    assert reference_path("u1", "shoe.png", "abc") == "u1/references/abc-shoe.png"
    assert reference_path("u1", "../x/shoe.png", "abc") == "u1/references/abc-.._x_shoe.png"
    assert generated_path("u1", "t1") == "u1/generated/t1.png"


@pytest.mark.parametrize(
    ("status_code", "error"),
    [
        (429, StorageRateLimitError),
        (500, StorageNetworkError),
        (503, StorageNetworkError),
        (401, StorageAuthError),
        (403, StorageAuthError),
        (400, StorageValidationError),
        (404, StorageValidationError),
    ],
)
def test_storage_status_classification(status_code, error):
    with pytest.raises(error):
        raise_for_storage_status(httpx.Response(status_code, text="error"))


def test_success_status_passes():
    raise_for_storage_status(httpx.Response(200))


@pytest.mark.asyncio
class TestSupabaseStorageClient:
    async def test_upload_returns_public_url(self, monkeypatch):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"Key": "images/u1/generated/t1.png"})

        mock_httpx(monkeypatch, handler)
        client = SupabaseStorageClient("https://proj.supabase.co/", "service-key", bucket="images")

        url = await client.upload("u1/generated/t1.png", b"png-bytes")

        assert url == "https://proj.supabase.co/storage/v1/object/public/images/u1/generated/t1.png"
        (request,) = requests
        assert request.method == "POST"
        assert str(request.url) == "https://proj.supabase.co/storage/v1/object/images/u1/generated/t1.png"
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["x-upsert"] == "true"
        assert request.headers["Content-Type"] == "image/png"
        assert request.content == b"png-bytes"

    async def test_unavailable_service_is_transient(self, monkeypatch):
        mock_httpx(monkeypatch, lambda request: httpx.Response(503, text="unavailable"))
        client = SupabaseStorageClient("https://proj.supabase.co", "service-key")

        with pytest.raises(StorageNetworkError):
            await client.upload("u1/generated/t1.png", b"png-bytes")

    async def test_network_failure_is_transient(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        mock_httpx(monkeypatch, handler)
        client = SupabaseStorageClient("https://proj.supabase.co", "service-key")

        with pytest.raises(StorageNetworkError, match="Network error"):
            await client.download("https://proj.supabase.co/storage/v1/object/public/images/a.png")

    async def test_download_returns_content(self, monkeypatch):
        mock_httpx(monkeypatch, lambda request: httpx.Response(200, content=b"image"))
        client = SupabaseStorageClient("https://proj.supabase.co", "service-key")

        assert await client.download("https://cdn.test/a.png") == b"image"


@pytest.mark.asyncio
class TestLocalAssetStore:
    async def test_upload_and_download(self, tmp_path):
        store = LocalAssetStore(tmp_path, "http://localhost:8000/assets/")

        url = await store.upload("u1/generated/t1.png", b"png-bytes")

        assert url == "http://localhost:8000/assets/u1/generated/t1.png"
        assert (tmp_path / "u1" / "generated" / "t1.png").read_bytes() == b"png-bytes"
        assert await store.download(url) == b"png-bytes"

    async def test_path_traversal_rejected(self, tmp_path):
        store = LocalAssetStore(tmp_path / "assets", "http://localhost:8000/assets")

        with pytest.raises(StorageValidationError, match="escapes"):
            await store.upload("../outside.png", b"x")

    async def test_missing_asset(self, tmp_path):
        store = LocalAssetStore(tmp_path, "http://localhost:8000/assets")

        with pytest.raises(StorageValidationError, match="not found"):
            await store.download("http://localhost:8000/assets/u1/missing.png")

    async def test_external_url_fetched_over_http(self, tmp_path, monkeypatch):
        mock_httpx(monkeypatch, lambda request: httpx.Response(200, content=b"remote"))
        store = LocalAssetStore(tmp_path, "http://localhost:8000/assets")

        assert await store.download("https://images.example.com/shoe.jpg") == b"remote"


@pytest.mark.asyncio
async def test_download_references_skips_failures(tmp_path):
    store = LocalAssetStore(tmp_path, "http://localhost:8000/assets")
    good = await store.upload("u1/references/abc-shoe.jpg", b"jpeg-bytes")

    references = await download_references(
        store, [good, "http://localhost:8000/assets/u1/references/gone.png"], task_id="t1"
    )

    (reference,) = references
    assert reference.filename == "abc-shoe.jpg"
    assert reference.data == b"jpeg-bytes"
    assert reference.content_type == "image/jpeg"


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_url", ["http://[::1/x.png", "ftp://files.example.com/shoe.png"])
async def test_download_references_skips_unusable_urls(tmp_path, bad_url):
    store = LocalAssetStore(tmp_path, "http://localhost:8000/assets")
    good = await store.upload("u1/references/abc-shoe.png", b"png-bytes")

    references = await download_references(store, [bad_url, good], task_id="t1")

    assert [reference.data for reference in references] == [b"png-bytes"]


@pytest.mark.asyncio
async def test_supabase_download_rejects_unparseable_url():
    client = SupabaseStorageClient("https://proj.supabase.co", "service-key")

    with pytest.raises(StorageValidationError, match="Invalid URL"):
        await client.download("http://[::1/x.png")
