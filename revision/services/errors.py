"""
Failure taxonomy and error classification for the edit pipeline.

Provider SDKs raise their own exception types; everything that crosses the
pipeline boundary is mapped onto a FailureKind so the caller can decide on
retries, fallback and the message shown to the user. Raw provider messages
are logged but never returned as user-facing text.
"""

import asyncio
from enum import Enum

import httpx
import openai
from google.genai import errors as genai_errors

from revision.models.schemas import FailureKind

USER_MESSAGES: dict[FailureKind, str] = {
    FailureKind.VALIDATION: "The image or marked areas are not valid. Please check them and try again.",
    FailureKind.NETWORK: "The AI service could not be reached. Please check your connection and try again.",
    FailureKind.QUOTA: "The AI service is over its usage limit right now. Please try again later.",
    FailureKind.AUTH: "The AI service is not configured correctly. Please contact support.",
    FailureKind.UNKNOWN: "Something went wrong while editing the image.",
}

QUOTA_KEYWORDS = ("quota", "429", "rate limit", "resource_exhausted", "resource exhausted")
AUTH_KEYWORDS = ("api key", "api_key", "permission", "unauthorized", "unauthenticated", "401", "403")
NETWORK_KEYWORDS = ("timeout", "timed out", "network", "connection", "unavailable", "500", "502", "503", "504")


class ValidationReason(str, Enum):
    EMPTY_IMAGE = "empty_image"
    IMAGE_TOO_LARGE = "image_too_large"
    UNSUPPORTED_FORMAT = "unsupported_format"
    TOO_MANY_AREAS = "too_many_areas"
    MARKED_AREA_INVALID = "marked_area_invalid"


class PipelineError(Exception):
    """Base class for failures surfaced to the pipeline's caller."""

    kind: FailureKind = FailureKind.UNKNOWN

    def __init__(self, message: str, *, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or USER_MESSAGES[self.kind]

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)


class ValidationFailure(PipelineError):
    kind = FailureKind.VALIDATION

    def __init__(
        self,
        reason: ValidationReason,
        message: str,
        *,
        index: int | None = None,
    ) -> None:
        # Validation messages describe the caller's own input, so they are safe to show
        super().__init__(message, user_message=message)
        self.reason = reason
        self.index = index


class NetworkFailure(PipelineError):
    kind = FailureKind.NETWORK


class QuotaFailure(PipelineError):
    kind = FailureKind.QUOTA


class AuthFailure(PipelineError):
    kind = FailureKind.AUTH


class UnknownFailure(PipelineError):
    kind = FailureKind.UNKNOWN


FAILURE_TYPES: dict[FailureKind, type[PipelineError]] = {
    FailureKind.NETWORK: NetworkFailure,
    FailureKind.QUOTA: QuotaFailure,
    FailureKind.AUTH: AuthFailure,
    FailureKind.UNKNOWN: UnknownFailure,
}


class EmptyModelResponse(Exception):
    """The model answered but the response held nothing usable."""


class StageError(Exception):
    """A pipeline stage gave up after classifying its last error."""

    stage = "stage"

    def __init__(self, message: str, kind: FailureKind, attempts: int) -> None:
        super().__init__(message)
        self.kind = kind
        self.attempts = attempts


class AnalysisException(StageError):
    stage = "analysis"


class GenerationException(StageError):
    stage = "generation"


def classify_error(error: BaseException) -> FailureKind:
    """Map any exception raised around a model call onto a FailureKind."""
    if isinstance(error, (PipelineError, StageError)):
        return error.kind

    # Empty candidates are usually transient on the provider side
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError, EmptyModelResponse)):
        return FailureKind.NETWORK
    if isinstance(error, httpx.TransportError):
        return FailureKind.NETWORK

    if isinstance(error, genai_errors.APIError):
        return _classify_status(error.code, str(error.status or ""))

    if isinstance(error, openai.RateLimitError):
        return FailureKind.QUOTA
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return FailureKind.AUTH
    if isinstance(error, (openai.APIConnectionError, openai.InternalServerError)):
        return FailureKind.NETWORK
    if isinstance(error, openai.APIStatusError):
        return _classify_status(error.status_code, "")

    return _classify_message(str(error))


def _classify_status(code: int | None, status: str) -> FailureKind:
    if code == 429 or status.upper() == "RESOURCE_EXHAUSTED":
        return FailureKind.QUOTA
    if code in (401, 403):
        return FailureKind.AUTH
    if code is not None and code >= 500:
        return FailureKind.NETWORK
    return FailureKind.UNKNOWN


def _classify_message(message: str) -> FailureKind:
    text = message.lower()
    if any(keyword in text for keyword in QUOTA_KEYWORDS):
        return FailureKind.QUOTA
    if any(keyword in text for keyword in AUTH_KEYWORDS):
        return FailureKind.AUTH
    if any(keyword in text for keyword in NETWORK_KEYWORDS):
        return FailureKind.NETWORK
    return FailureKind.UNKNOWN


def is_retryable(kind: FailureKind) -> bool:
    return kind is FailureKind.NETWORK


def user_message(kind: FailureKind) -> str:
    return USER_MESSAGES[kind]


def failure_for(kind: FailureKind, message: str) -> PipelineError:
    """Build the typed failure for a non-validation kind."""
    if kind is FailureKind.VALIDATION:
        raise ValueError("Validation failures need a ValidationReason")
    return FAILURE_TYPES[kind](message)
