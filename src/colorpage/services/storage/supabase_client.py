"""Supabase Storage client for uploading, moving and linking page images."""

from urllib.parse import quote

import httpx

from colorpage.services.exceptions import DownloadError, StorageError


class SupabaseStorageClient:
    """Object storage client over the Supabase Storage REST API."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        bucket: str = "pages",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        """Initialize storage client.

        Args:
            base_url: Supabase project URL (from SUPABASE_URL env var)
            service_role_key: Service role key (from SUPABASE_SERVICE_ROLE_KEY env var)
            bucket: Storage bucket holding generated pages
            http_client: Shared AsyncClient; one is created when omitted
            timeout: Request timeout in seconds for the created client
        """
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.http = http_client or httpx.AsyncClient(timeout=timeout)
        self.headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path)}"

    async def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        """Upload bytes to ``path`` inside the bucket.

        Returns:
            The storage path

        Raises:
            StorageError: Provider rejected the upload or the request failed
        """
        headers = {**self.headers, "Content-Type": content_type, "x-upsert": "false"}
        response = await self._request("POST", self._object_url(path), headers=headers, content=data)
        self._raise_for_status(response, f"upload {path}")
        return path

    async def download(self, url: str) -> bytes:
        """Download bytes from an arbitrary URL (e.g. a provider CDN link).

        Raises:
            DownloadError: Non-2xx response, timeout or network failure
        """
        try:
            response = await self.http.get(url, timeout=self.timeout, follow_redirects=True)
        except httpx.TimeoutException as e:
            raise DownloadError(f"Download timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Download network error: {e}") from e

        if not response.is_success:
            raise DownloadError(f"Download failed ({response.status_code}) for {url}")
        return response.content

    async def move(self, from_path: str, to_path: str) -> None:
        """Move an object within the bucket.

        Raises:
            StorageError: Provider rejected the move or the request failed
        """
        response = await self._request(
            "POST",
            f"{self.base_url}/storage/v1/object/move",
            headers={**self.headers, "Content-Type": "application/json"},
            json={"bucketId": self.bucket, "sourceKey": from_path, "destinationKey": to_path},
        )
        self._raise_for_status(response, f"move {from_path} -> {to_path}")

    def get_public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        """Create a time-limited download URL for a private object.

        Raises:
            StorageError: Provider rejected the request or returned no URL
        """
        response = await self._request(
            "POST",
            f"{self.base_url}/storage/v1/object/sign/{self.bucket}/{quote(path)}",
            headers={**self.headers, "Content-Type": "application/json"},
            json={"expiresIn": ttl_seconds},
        )
        self._raise_for_status(response, f"sign {path}")

        signed = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed:
            raise StorageError(f"No signed URL returned for {path}")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self.http.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise StorageError(f"Storage request timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise StorageError(f"Storage network error: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        if response.is_success:
            return
        if response.status_code in (401, 403):
            raise StorageError(
                f"Storage {operation} unauthorized ({response.status_code}). "
                "Check SUPABASE_SERVICE_ROLE_KEY configuration."
            )
        if response.status_code == 409:
            raise StorageError(f"Storage {operation} conflict: object already exists")
        if response.status_code == 404:
            raise StorageError(f"Storage {operation} failed: object or bucket not found")
        raise StorageError(
            f"Storage {operation} failed ({response.status_code}): {response.text[:500]}"
        )
