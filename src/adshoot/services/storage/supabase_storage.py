"""Supabase Storage client for uploading and fetching images."""

import httpx

from adshoot.services.exceptions import (
    StorageAuthError,
    StorageNetworkError,
    StorageRateLimitError,
    StorageValidationError,
)


def raise_for_storage_status(response: httpx.Response) -> None:
    """Map an HTTP error status to the storage error hierarchy.

    Raises:
        StorageRateLimitError: 429
        StorageNetworkError: 500, 502, 503, 504
        StorageAuthError: 401, 403
        StorageValidationError: any other 4xx
    """
    if response.status_code < 400:
        return
    if response.status_code == 429:
        raise StorageRateLimitError(f"Rate limit exceeded: {response.text}")
    elif response.status_code in (500, 502, 503, 504):
        raise StorageNetworkError(f"Service unavailable ({response.status_code}): {response.text}")
    elif response.status_code == 401:
        raise StorageAuthError(
            "Unauthorized: Invalid service role key. "
            "Check SUPABASE_SERVICE_ROLE_KEY configuration in .env file."
        )
    elif response.status_code == 403:
        raise StorageAuthError(
            "Forbidden: Access denied. "
            "Check that the storage bucket exists and the key has write access."
        )
    raise StorageValidationError(f"Bad request ({response.status_code}): {response.text}")


class SupabaseStorageClient:
    """Asset store backed by Supabase Storage (REST API)."""

    def __init__(self, base_url: str, service_key: str, bucket: str = "images", timeout: float = 30.0):
        """Initialize Supabase Storage client.

        Args:
            base_url: Project URL (from SUPABASE_URL env var)
            service_key: Service role key (from SUPABASE_SERVICE_ROLE_KEY env var)
            bucket: Public bucket holding reference and generated images
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def public_url(self, path: str) -> str:
        """Public URL of an object in the bucket."""
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        """Upload bytes to path, replacing any existing object.

        Args:
            path: Object path inside the bucket (e.g. "<user>/generated/<task>.png")
            data: Object content
            content_type: MIME type stored with the object

        Returns:
            Public URL of the stored object

        Raises:
            StorageNetworkError: Network timeout or service unavailable
            StorageRateLimitError: Rate limit exceeded (429)
            StorageAuthError: Invalid key (401) or forbidden (403)
            StorageValidationError: Bad request
        """
        headers = {**self.headers, "Content-Type": content_type, "x-upsert": "true"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
                    headers=headers,
                    content=data,
                )
        except httpx.TimeoutException as e:
            raise StorageNetworkError(f"Request timeout after {self.timeout}s: {str(e)}")
        except httpx.HTTPError as e:
            raise StorageNetworkError(f"Network error: {str(e)}")

        raise_for_storage_status(response)
        return self.public_url(path)

    async def download(self, url: str) -> bytes:
        """Fetch an object (or any public image URL).

        Raises:
            StorageNetworkError: Network timeout or service unavailable
            StorageValidationError: Object not found, or URL cannot be requested
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise StorageValidationError(f"Invalid URL {url!r}: {str(e)}")
        except httpx.TimeoutException as e:
            raise StorageNetworkError(f"Request timeout after {self.timeout}s: {str(e)}")
        except httpx.HTTPError as e:
            raise StorageNetworkError(f"Network error: {str(e)}")

        raise_for_storage_status(response)
        return response.content
