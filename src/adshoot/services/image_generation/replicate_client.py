"""Replicate image generation client with error classification."""

import asyncio
import base64
from typing import Any

import httpx
import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from adshoot.models.generation_task import ImageSize
from adshoot.services.exceptions import (
    GenerationPermanentError,
    GenerationTransientError,
    MalformedResponseError,
)
from adshoot.services.image_generation.base import GeneratedImage, GenerationRequest
from adshoot.services.image_generation.classification import classify_error

ASPECT_RATIOS: dict[ImageSize, str] = {
    ImageSize.SQUARE: "1:1",
    ImageSize.LANDSCAPE: "3:2",
    ImageSize.PORTRAIT: "2:3",
    ImageSize.AUTO: "match_input_image",
}


class ReplicateImageGenerator:
    """Generates images with an image-editing model hosted on Replicate.

    The first reference image is sent inline as a data URI; output URLs are
    downloaded immediately because Replicate CDN links expire.
    """

    name = "replicate"

    def __init__(self, api_token: str, model_version: str = "black-forest-labs/flux-kontext-pro"):
        """Initialize Replicate generator.

        Args:
            api_token: Replicate API authentication token
            model_version: Model identifier
        """
        if not api_token:
            raise GenerationPermanentError("REPLICATE_API_TOKEN not configured")
        self.model = model_version
        self.client = replicate.Client(api_token=api_token)

    def _build_input(self, request: GenerationRequest) -> dict[str, Any]:
        model_input: dict[str, Any] = {
            "prompt": request.prompt,
            "output_format": "png",
        }
        aspect_ratio = ASPECT_RATIOS[request.size]
        if request.reference_images:
            ref = request.reference_images[0]
            encoded = base64.b64encode(ref.data).decode("ascii")
            model_input["input_image"] = f"data:{ref.content_type};base64,{encoded}"
        elif aspect_ratio == "match_input_image":
            aspect_ratio = "1:1"
        model_input["aspect_ratio"] = aspect_ratio
        return model_input

    async def generate(self, request: GenerationRequest) -> list[GeneratedImage]:
        """Generate request.variant_count images, one prediction each.

        Raises:
            GenerationTransientError: Temporary failure, may succeed later
            ContentPolicyError: Prompt or image rejected by the safety filter
            GenerationPermanentError: Permanent failure
        """
        model_input = self._build_input(request)
        images = []
        for _ in range(request.variant_count):
            try:
                # SDK is synchronous; run in thread pool
                output = await asyncio.to_thread(self.client.run, self.model, input=model_input)
            except ReplicateAPIError as e:
                raise classify_error(e) from e
            except (ConnectionError, OSError, TimeoutError) as e:
                raise classify_error(e) from e

            images.append(await self._download(self._extract_url(output)))
        return images

    def _extract_url(self, output: Any) -> str:
        # Output format varies by model: list of URLs, a URL, or a FileOutput
        if isinstance(output, list) and len(output) > 0:
            return str(output[0])
        if output is not None and str(output).startswith("http"):
            return str(output)
        raise MalformedResponseError(f"Unexpected output format from Replicate: {type(output)}")

    async def _download(self, url: str) -> GeneratedImage:
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise GenerationTransientError(f"Image download timeout: {e}") from e
        except httpx.HTTPError as e:
            raise GenerationTransientError(f"Image download failed: {e}") from e

        return GeneratedImage(
            data=response.content,
            content_type=response.headers.get("content-type", "image/png"),
            provider=self.name,
            model=self.model,
        )
