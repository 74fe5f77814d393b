"""Asset store interface for reference and generated images."""

from typing import Protocol


class AssetStore(Protocol):
    """Stores binary assets and exposes them under public URLs.

    Implementations raise StorageNetworkError / StorageRateLimitError for
    retryable failures and StorageAuthError / StorageValidationError otherwise.
    """

    async def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        """Store data at path (overwriting) and return its public URL."""
        ...

    async def download(self, url: str) -> bytes: ...

    def public_url(self, path: str) -> str: ...


def reference_path(user_id: str, filename: str, unique: str) -> str:
    """Storage path of a user-uploaded reference image."""
    safe_name = filename.replace("/", "_").replace("\\", "_") or "reference.png"
    return f"{user_id}/references/{unique}-{safe_name}"


def generated_path(user_id: str, task_id: str) -> str:
    """Storage path of the image generated for a task."""
    return f"{user_id}/generated/{task_id}.png"
