"""OpenAI image generation client (gpt-image-1)."""

import base64
import binascii

import openai
import structlog
from openai import AsyncOpenAI

from adshoot.services.exceptions import GenerationPermanentError, MalformedResponseError
from adshoot.services.image_generation.base import (
    SIZE_MAP,
    GeneratedImage,
    GenerationRequest,
)
from adshoot.services.image_generation.classification import classify_error

logger = structlog.get_logger(__name__)


class OpenAIImageGenerator:
    """Generates product ad images with the OpenAI Images API.

    Uses images.edit when reference images are supplied (the product photo
    anchors the composition) and images.generate otherwise.
    """

    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-image-1", client: AsyncOpenAI | None = None):
        """Initialize OpenAI generator.

        Args:
            api_key: OpenAI API key (from OPENAI_API_KEY env var)
            model: Image model identifier
            client: Preconfigured client (tests inject a stub)
        """
        if not api_key and client is None:
            raise GenerationPermanentError("OPENAI_API_KEY not configured")
        self.model = model
        # SDK retries disabled; the caller owns the overall timeout
        self.client = client or AsyncOpenAI(api_key=api_key, max_retries=0)

    async def generate(self, request: GenerationRequest) -> list[GeneratedImage]:
        """Generate request.variant_count images.

        Args:
            request: Prompt, references and output options

        Returns:
            Decoded PNG images

        Raises:
            GenerationTransientError: Network, rate limit or 5xx failures
            ContentPolicyError: Request rejected by moderation
            GenerationPermanentError: Authentication or validation failures
            MalformedResponseError: Response carried no image data
        """
        size = SIZE_MAP[request.size]
        try:
            if request.reference_images:
                response = await self.client.images.edit(
                    model=self.model,
                    image=[
                        (ref.filename, ref.data, ref.content_type)
                        for ref in request.reference_images
                    ],
                    prompt=request.prompt,
                    n=request.variant_count,
                    size=size,  # type: ignore[arg-type]
                    quality=request.quality.value,  # type: ignore[arg-type]
                )
            else:
                response = await self.client.images.generate(
                    model=self.model,
                    prompt=request.prompt,
                    n=request.variant_count,
                    size=size,  # type: ignore[arg-type]
                    quality=request.quality.value,  # type: ignore[arg-type]
                )
        except openai.OpenAIError as e:
            raise classify_error(e) from e

        if not response or not response.data:
            raise MalformedResponseError("OpenAI response contained no images")

        images = []
        for item in response.data:
            if not item.b64_json:
                raise MalformedResponseError("OpenAI response missing b64_json image data")
            try:
                data = base64.b64decode(item.b64_json)
            except (binascii.Error, ValueError) as e:
                raise MalformedResponseError(f"Invalid base64 image data: {e}") from e
            images.append(
                GeneratedImage(data=data, content_type="image/png", provider=self.name, model=self.model)
            )

        logger.debug(
            "openai.images.received",
            count=len(images),
            edit=bool(request.reference_images),
            size=size,
        )
        return images
