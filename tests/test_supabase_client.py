"""Supabase Storage client tests over a mocked HTTP transport."""

import json

import httpx
import pytest

from colorpage.services.exceptions import DownloadError, StorageError
from colorpage.services.storage.supabase_client import SupabaseStorageClient

BASE_URL = "https://project.supabase.co"


def make_client(handler) -> tuple[SupabaseStorageClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return SupabaseStorageClient(BASE_URL + "/", "service-key", "pages", http_client=http), requests


@pytest.mark.asyncio
async def test_upload_posts_bytes_to_bucket_path():
    client, requests = make_client(lambda request: httpx.Response(200, json={"Key": "pages/x"}))

    path = await client.upload("user-1/job-abc.png", b"png-bytes")

    assert path == "user-1/job-abc.png"
    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/storage/v1/object/pages/user-1/job-abc.png"
    assert request.headers["Authorization"] == "Bearer service-key"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["Content-Type"] == "image/png"
    assert request.headers["x-upsert"] == "false"
    assert request.content == b"png-bytes"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,message",
    [(401, "unauthorized"), (403, "unauthorized"), (409, "already exists"), (500, r"failed \(500\)")],
)
async def test_upload_errors_raise_storage_error(status, message):
    client, _ = make_client(lambda request: httpx.Response(status, text="nope"))

    with pytest.raises(StorageError, match=message):
        await client.upload("public/job.png", b"data")


@pytest.mark.asyncio
async def test_network_failure_raises_storage_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = make_client(handler)

    with pytest.raises(StorageError, match="network error"):
        await client.upload("public/job.png", b"data")


@pytest.mark.asyncio
async def test_move_sends_source_and_destination():
    client, requests = make_client(lambda request: httpx.Response(200, json={"message": "ok"}))

    await client.move("public/job.png", "user-9/job.png")

    request = requests[0]
    assert str(request.url) == f"{BASE_URL}/storage/v1/object/move"
    assert json.loads(request.content) == {
        "bucketId": "pages",
        "sourceKey": "public/job.png",
        "destinationKey": "user-9/job.png",
    }


@pytest.mark.asyncio
async def test_relative_signed_url_is_made_absolute():
    client, requests = make_client(
        lambda request: httpx.Response(
            200, json={"signedURL": "/object/sign/pages/user-1/job.png?token=t"}
        )
    )

    url = await client.create_signed_url("user-1/job.png", 600)

    assert url == f"{BASE_URL}/storage/v1/object/sign/pages/user-1/job.png?token=t"
    assert json.loads(requests[0].content) == {"expiresIn": 600}


@pytest.mark.asyncio
async def test_missing_signed_url_raises():
    client, _ = make_client(lambda request: httpx.Response(200, json={}))

    with pytest.raises(StorageError, match="No signed URL"):
        await client.create_signed_url("user-1/job.png", 600)


def test_public_url():
    client, _ = make_client(lambda request: httpx.Response(200))

    assert (
        client.get_public_url("public/job.png")
        == f"{BASE_URL}/storage/v1/object/public/pages/public/job.png"
    )


@pytest.mark.asyncio
async def test_download_returns_body():
    client, _ = make_client(lambda request: httpx.Response(200, content=b"image"))

    assert await client.download("https://images.example.com/out.png") == b"image"


@pytest.mark.asyncio
async def test_download_non_success_raises():
    client, _ = make_client(lambda request: httpx.Response(404))

    with pytest.raises(DownloadError, match="404"):
        await client.download("https://images.example.com/gone.png")


@pytest.mark.asyncio
async def test_download_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client, _ = make_client(handler)

    with pytest.raises(DownloadError, match="timeout"):
        await client.download("https://images.example.com/slow.png")
