"""Normalization of provider output into transcript text."""

import json
import logging
from typing import Any

from ..exceptions import RemoteJobFailure

logger = logging.getLogger(__name__)


def normalize_output(output: Any) -> str:
    """Turn a provider result payload into transcript text.

    Accepted shapes are a plain string, an object with ``text``, an object
    with ``segments`` and a list of strings. Anything else is serialized to
    JSON rather than discarded.

    Raises:
        RemoteJobFailure: If the provider reported success without output
    """
    if output is None:
        raise RemoteJobFailure("Transcription succeeded but returned no output")

    if isinstance(output, str):
        return output

    if isinstance(output, dict):
        if isinstance(output.get("text"), str):
            return output["text"]
        segments = output.get("segments")
        if isinstance(segments, list) and all(isinstance(s, dict) for s in segments):
            return "\n".join(str(s.get("text", "")).strip() for s in segments)

    if isinstance(output, list) and output and all(isinstance(item, str) for item in output):
        return "\n".join(output)

    logger.warning(f"Unrecognized transcription output format ({type(output).__name__}), keeping raw JSON")
    return json.dumps(output, ensure_ascii=False, default=str)
