"""Fetch reference images for a generation task."""

import mimetypes
from urllib.parse import urlparse

import structlog

from adshoot.services.exceptions import ServiceError
from adshoot.services.image_generation.base import ReferenceImage
from adshoot.services.storage.base import AssetStore

logger = structlog.get_logger(__name__)


async def download_references(
    asset_store: AssetStore, urls: list[str], task_id: str | None = None
) -> list[ReferenceImage]:
    """Download reference images, skipping any that fail.

    A broken reference degrades the result but must not fail the task, so
    individual download errors are logged and the image is left out.

    Args:
        asset_store: Store used to fetch the URLs
        urls: Public reference image URLs
        task_id: Task id for log context

    Returns:
        Successfully downloaded references, in input order
    """
    references = []
    for index, url in enumerate(urls):
        try:
            data = await asset_store.download(url)
        except ServiceError as e:
            logger.warning(
                "task.reference.download_failed",
                task_id=task_id,
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue

        name = urlparse(url).path.rsplit("/", 1)[-1] or f"reference-{index}.png"
        content_type = mimetypes.guess_type(name)[0] or "image/png"
        references.append(ReferenceImage(filename=name, data=data, content_type=content_type))

    return references
