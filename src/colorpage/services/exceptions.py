"""Service error hierarchy for the generation pipeline and job queue.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors, carries a user-facing message
- Stage errors: raised by a pipeline stage and routed through the retry path
- ValidationError / OwnershipConflict: rejected requests, never retried

Every class carries ``user_message``: prose safe to show on the external job
record. Exception text (``str(exc)``) is for logs and ``last_error`` only.
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    user_message: str = "Something went wrong. Please try again."


class ValidationError(ServiceError):
    """Malformed enqueue payload - rejected before a row is written."""

    user_message = "Your request could not be processed. Please check your inputs and try again."


class JobNotFoundError(ServiceError):
    """No queue row or generation job exists for the given identifier."""

    user_message = "We could not find that job."


# Photo analysis errors
class VisionParseError(ServiceError):
    """Vision reply failed JSON parsing or schema validation.

    Recovered inside the analysis stage by falling back to a canned analysis.
    """

    def __init__(self, message: str, raw_content: str | None = None):
        super().__init__(message)
        self.raw_content = raw_content


class AnalysisError(ServiceError):
    """Vision API call itself failed (network, auth, empty reply)."""

    user_message = "Failed to analyze your photo. Please try again."


# Image generation errors
class GenerationError(ServiceError):
    """Image generation returned no usable result or the provider call failed."""

    user_message = "Failed to generate your coloring page. Please try again."


class ContentPolicyError(GenerationError):
    """Provider rejected the prompt or photo on content-policy grounds."""

    user_message = (
        "The uploaded image or description violates content policy. "
        "Please try with different content."
    )


# Storage errors
class DownloadError(ServiceError):
    """Downloading a remote image failed (non-2xx response or network error)."""

    user_message = "Failed to save your coloring page. Please try again."


class StorageError(ServiceError):
    """Object storage provider rejected or failed an operation."""

    user_message = "Failed to save your coloring page. Please try again."


class OwnershipConflict(ServiceError):
    """Anonymous-file claim with an invalid or already-used nonce. Not retryable."""

    user_message = "This file has already been claimed or the claim code is invalid."


# Database errors
class PersistenceError(ServiceError):
    """Database write failed."""

    user_message = "Failed to save your coloring page. Please try again."


def user_message_for(exc: BaseException) -> str:
    """Return the human-readable message to show for ``exc``.

    Non-service exceptions map to the generic message so raw exception text
    never reaches the user.
    """
    if isinstance(exc, ServiceError):
        return exc.user_message
    return ServiceError.user_message
