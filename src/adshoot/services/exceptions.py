"""Service error hierarchy for batch submission, storage and image generation.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, validation)
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Content policy rejections
    """

    pass


# Batch submission errors
class BatchValidationError(PermanentError):
    """Batch request rejected before any resource was touched."""

    pass


class InsufficientCreditsError(PermanentError):
    """User does not have enough credits for the requested variants."""

    def __init__(self, required: int, balance: int):
        self.required = required
        self.balance = balance
        super().__init__(f"You need {required} credits but only have {balance} available.")


class TaskNotFoundError(PermanentError):
    """Generation task id does not exist."""

    pass


class PhotoshootNotFoundError(PermanentError):
    """Photoshoot id does not exist."""

    pass


# Storage-specific errors
class StorageError(ServiceError):
    """Base exception for asset storage errors."""

    pass


class StorageNetworkError(TransientError):
    """Network timeout or storage service unavailable."""

    pass


class StorageRateLimitError(TransientError):
    """Rate limit exceeded (429)."""

    pass


class StorageAuthError(PermanentError):
    """Authentication failure (401, 403)."""

    pass


class StorageValidationError(PermanentError):
    """Bad request or unknown object (400, 404)."""

    pass


class ReferenceUploadError(PermanentError):
    """A reference image could not be stored; the batch is not created."""

    pass


# Image generation errors
class GenerationError(ServiceError):
    """Base exception for image generation errors."""

    pass


class GenerationTransientError(TransientError):
    """Generator temporarily unavailable (network, rate limit, 5xx)."""

    pass


class GenerationTimeoutError(GenerationTransientError):
    """Generator did not answer within the configured timeout."""

    pass


class ContentPolicyError(PermanentError):
    """Prompt or reference images rejected by the provider's safety system."""

    pass


class GenerationPermanentError(PermanentError):
    """Generator rejected the request (auth, validation, unknown failure)."""

    pass


class MalformedResponseError(GenerationPermanentError):
    """Generator answered without usable image data."""

    pass
