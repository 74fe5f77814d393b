"""Error classification for image generation providers."""

import openai

from adshoot.services.exceptions import (
    ContentPolicyError,
    GenerationPermanentError,
    GenerationTransientError,
    ServiceError,
)


def classify_error(exception: Exception) -> ServiceError:
    """Classify a provider exception into a retry category.

    The orchestrator retries GenerationTransientError (bounded, inside the
    generation timeout); permanent errors fail the task on the first attempt.

    Args:
        exception: Original exception from a provider SDK or the network layer

    Returns:
        Classified error instance (not raised)

    Classification rules:
        - Timeout errors → GenerationTransientError
        - 429 (rate limit) → GenerationTransientError
        - 500/502/503 (service unavailable) → GenerationTransientError
        - Content policy / moderation / safety → ContentPolicyError
        - 401/403 (authentication) → GenerationPermanentError
        - Connection errors → GenerationTransientError
        - Anything else → GenerationPermanentError
    """
    if isinstance(exception, ServiceError):
        return exception

    error_message = str(exception)
    error_message_lower = error_message.lower()

    # Typed OpenAI SDK errors first
    if isinstance(exception, (openai.APITimeoutError, openai.APIConnectionError)):
        return GenerationTransientError(f"Network error: {error_message}")
    if isinstance(exception, openai.RateLimitError):
        return GenerationTransientError(f"Rate limit exceeded: {error_message}")
    if isinstance(exception, openai.InternalServerError):
        return GenerationTransientError(f"Service unavailable: {error_message}")
    if isinstance(exception, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return GenerationPermanentError(f"Authentication failed: {error_message}")

    if "timeout" in error_message_lower or "timed out" in error_message_lower:
        return GenerationTransientError(f"Network timeout: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return GenerationTransientError(f"Rate limit exceeded: {error_message}")

    if (
        "502" in error_message
        or "503" in error_message
        or "service unavailable" in error_message_lower
    ):
        return GenerationTransientError(f"Service unavailable: {error_message}")

    if (
        "content policy" in error_message_lower
        or "moderation" in error_message_lower
        or "safety" in error_message_lower
        or "nsfw" in error_message_lower
    ):
        return ContentPolicyError(f"Content policy violation: {error_message}")

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "invalid api" in error_message_lower
    ):
        return GenerationPermanentError(f"Authentication failed: {error_message}")

    if isinstance(exception, (ConnectionError, OSError)):
        return GenerationTransientError(f"Connection error: {error_message}")

    return GenerationPermanentError(f"Image generation failed: {error_message}")
