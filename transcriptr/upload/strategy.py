"""Decides how an audio payload is transmitted to the transcription provider."""

import logging
import mimetypes
from enum import Enum
from typing import Iterable, Optional

from ..exceptions import UnsupportedFormat
from ..models.audio import AudioPayload

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_BYTES = 4 * 1024 * 1024

# Formats the provider accepts without conversion
DEFAULT_SUPPORTED_FORMATS = ("mp3", "wav", "flac", "ogg")

_MEDIA_TYPE_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/flac": "flac",
    "audio/x-flac": "flac",
    "audio/ogg": "ogg",
}


class UploadStrategy(str, Enum):
    INLINE = "inline"
    STAGED = "staged"


class UploadStrategySelector:
    """Chooses between inline and staged transmission for a payload."""

    def __init__(self,
                 threshold_bytes: int = DEFAULT_THRESHOLD_BYTES,
                 supported_formats: Iterable[str] = DEFAULT_SUPPORTED_FORMATS):
        """Initialize selector.

        Args:
            threshold_bytes: Payloads of this size or larger are staged
            supported_formats: Accepted file extensions, without the dot
        """
        if threshold_bytes <= 0:
            raise ValueError("threshold_bytes must be positive")
        self.threshold_bytes = threshold_bytes
        self.supported_formats = frozenset(fmt.lower().lstrip(".") for fmt in supported_formats)

    def resolve_format(self, payload: AudioPayload) -> Optional[str]:
        """Find the payload format from its extension, falling back to its media type."""
        if payload.extension:
            return payload.extension
        if payload.content_type:
            media_type = payload.content_type.split(";")[0].strip().lower()
            if media_type in _MEDIA_TYPE_EXTENSIONS:
                return _MEDIA_TYPE_EXTENSIONS[media_type]
            guessed = mimetypes.guess_extension(media_type)
            if guessed:
                return guessed.lstrip(".")
        return None

    def validate(self, payload: AudioPayload) -> None:
        """Reject payloads whose format is not supported.

        Raises:
            UnsupportedFormat: If the format is missing or not in the supported set
        """
        fmt = self.resolve_format(payload)
        supported_list = ", ".join(sorted(self.supported_formats))

        if not fmt:
            raise UnsupportedFormat(
                "File has no extension. Please ensure your file has a valid audio format extension."
            )
        if fmt not in self.supported_formats:
            raise UnsupportedFormat(
                f"{fmt.upper()} files are not supported. Supported formats: {supported_list}"
            )

    def is_large(self, payload: AudioPayload) -> bool:
        return payload.size >= self.threshold_bytes

    def select_strategy(self, payload: AudioPayload) -> UploadStrategy:
        """Validate the payload and pick its transmission method."""
        self.validate(payload)
        strategy = UploadStrategy.STAGED if self.is_large(payload) else UploadStrategy.INLINE
        logger.debug(
            f"Payload {payload.name} ({payload.size} bytes, threshold {self.threshold_bytes}): {strategy.value}"
        )
        return strategy
