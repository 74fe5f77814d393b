"""Image generator interface shared by all providers."""

from dataclasses import dataclass, field
from typing import Protocol

from adshoot.models.generation_task import ImageQuality, ImageSize

# Output dimensions requested from providers that take explicit pixel sizes
SIZE_MAP: dict[ImageSize, str] = {
    ImageSize.SQUARE: "1024x1024",
    ImageSize.LANDSCAPE: "1536x1024",
    ImageSize.PORTRAIT: "1024x1536",
    ImageSize.AUTO: "1024x1024",
}


@dataclass(frozen=True)
class ReferenceImage:
    filename: str
    data: bytes
    content_type: str = "image/png"


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    reference_images: list[ReferenceImage] = field(default_factory=list)
    variant_count: int = 1
    size: ImageSize = ImageSize.AUTO
    quality: ImageQuality = ImageQuality.HIGH


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    content_type: str
    provider: str
    model: str


class ImageGenerator(Protocol):
    """Generates images from a prompt and optional reference images.

    Implementations raise GenerationTransientError, ContentPolicyError or
    GenerationPermanentError (see services.exceptions) on failure.
    """

    name: str

    async def generate(self, request: GenerationRequest) -> list[GeneratedImage]: ...
