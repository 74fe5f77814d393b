"""Construction of shared collaborators and FastAPI UoW injection."""

from typing import AsyncGenerator

from fastapi import Request

from adshoot.core.config import Settings
from adshoot.services.image_generation.base import ImageGenerator
from adshoot.services.image_generation.openai_client import OpenAIImageGenerator
from adshoot.services.image_generation.replicate_client import ReplicateImageGenerator
from adshoot.services.storage.base import AssetStore
from adshoot.services.storage.local_storage import LocalAssetStore
from adshoot.services.storage.supabase_storage import SupabaseStorageClient
from adshoot.uow import UnitOfWork


def build_image_generator(settings: Settings) -> ImageGenerator:
    """Create the image generator selected by IMAGE_PROVIDER."""
    if settings.image_provider == "replicate":
        return ReplicateImageGenerator(
            api_token=settings.replicate_api_token,
            model_version=settings.replicate_model_version,
        )
    return OpenAIImageGenerator(api_key=settings.openai_api_key, model=settings.openai_image_model)


def build_asset_store(settings: Settings) -> AssetStore:
    """Create the asset store selected by STORAGE_BACKEND."""
    if settings.storage_backend == "supabase":
        return SupabaseStorageClient(
            base_url=settings.supabase_url,
            service_key=settings.supabase_service_role_key,
            bucket=settings.storage_bucket,
            timeout=settings.storage_timeout_seconds,
        )
    return LocalAssetStore(
        root=settings.local_storage_dir,
        base_url=settings.local_assets_base_url,
        timeout=settings.storage_timeout_seconds,
    )


async def get_uow(request: Request) -> AsyncGenerator[UnitOfWork, None]:
    """FastAPI dependency for Unit of Work injection.

    Retrieves the UoW factory from app.state and yields a UoW instance.
    The UoW is automatically committed on successful request completion
    or rolled back if an exception occurs.

    Example:
        @router.get("/api/batches/{batch_id}")
        async def get_batch(batch_id: UUID, uow: UnitOfWork = Depends(get_uow)):
            return await get_batch_progress(uow, batch_id)
    """
    uow_factory = request.app.state.uow_factory
    async with await uow_factory() as uow:
        yield uow
