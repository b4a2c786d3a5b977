"""Error taxonomy and user-facing error messages for Transcriptr."""

import asyncio
import logging
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Lost internet connection. Please check your network and try again."
SERVER_ERROR_MESSAGE = "Our servers are having trouble. Please try again in a moment."
RATE_LIMIT_MESSAGE = "Too many requests. Please wait a moment and try again."
TOO_LARGE_MESSAGE = "The audio file is too large. Please try a smaller file."
GENERIC_ERROR_MESSAGE = (
    "Something went wrong. Please try again or contact support if the issue persists."
)


class TranscriptrError(Exception):
    """Base class for all orchestrator errors."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class UnsupportedFormat(TranscriptrError):
    """Payload format is not accepted by the transcription provider."""


class StagingFailure(TranscriptrError):
    """Upload to the external object store failed."""


class SubmissionFailure(TranscriptrError):
    """Remote job creation failed."""


class PollingTransportError(TranscriptrError):
    """Network or parse failure while checking job status."""


class RemoteJobFailure(TranscriptrError):
    """Provider reported the job as failed."""


class RemoteJobCanceled(TranscriptrError):
    """Provider reported the job as canceled."""


class PollingTimeout(TranscriptrError):
    """Attempt bound exceeded while the job was still running."""


class PersistenceUnavailable(TranscriptrError):
    """Local session store cannot be read or written."""


_NETWORK_HINTS = ("network", "connection", "offline", "timeout", "enotfound", "econnrefused")


def is_network_error(error: BaseException) -> bool:
    """Check whether an exception looks like a connectivity problem."""
    network_types = (aiohttp.ClientConnectionError, asyncio.TimeoutError)
    if isinstance(error, network_types) or isinstance(error.__cause__, network_types):
        return True
    message = str(error).lower()
    return any(hint in message for hint in _NETWORK_HINTS)


def user_friendly_message(error: BaseException) -> str:
    """Convert an exception into a message suitable for the user.

    Args:
        error: Exception raised by a remote call or local check

    Returns:
        Short human readable message
    """
    if is_network_error(error):
        return NETWORK_ERROR_MESSAGE

    status = getattr(error, "status", None)
    message = getattr(error, "message", None) or str(error)

    if status == 413 or "413" in message or "too large" in message:
        return TOO_LARGE_MESSAGE
    if status == 429 or "429" in message or "rate limit" in message:
        return RATE_LIMIT_MESSAGE
    if (status is not None and 500 <= status < 600) or any(
        code in message for code in ("500", "502", "503")
    ):
        return SERVER_ERROR_MESSAGE

    # Already readable
    if message and "Error:" not in message and len(message) < 150:
        return message

    logger.debug(f"Falling back to generic message for: {message}")
    return GENERIC_ERROR_MESSAGE
