"""HTTP client for the transcription, staging and cleanup endpoints."""

import json
import logging
import random
import string
import time
from typing import Any, Dict, Optional, Type

import aiohttp
from pydantic import ValidationError

from ..exceptions import (
    TranscriptrError,
    SubmissionFailure,
    PollingTransportError,
    StagingFailure,
)
from ..models.api import SubmissionResponse, JobStatusResponse, StagedFile

logger = logging.getLogger(__name__)

STAGING_PREFIX = "temp_audio/"


def generate_staged_filename(original_name: str) -> str:
    """Build a collision-free object name such as ``audio_1718000000000_k3j9x0.mp3``."""
    timestamp = int(time.time() * 1000)
    random_string = ''.join(random.choices(string.ascii_lowercase + string.digits, k=6))
    extension = original_name.rsplit(".", 1)[-1] if "." in original_name else "bin"
    return f"audio_{timestamp}_{random_string}.{extension}"


async def error_message_from_response(response: aiohttp.ClientResponse) -> str:
    """Extract an error message from a non-success response.

    The structured ``{"error": ..., "details": ...}`` body is preferred; the
    raw status line is the fallback.
    """
    fallback = f"{response.status} {response.reason or ''}".strip()
    try:
        body = await response.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        return fallback

    if isinstance(body, dict) and body.get("error"):
        message = str(body["error"])
        details = body.get("details")
        if isinstance(details, str) and details:
            message = f"{message}: {details}"
        return message
    return fallback


class TranscriptionApiClient:
    """Async client for the remote transcription provider and object store."""

    def __init__(self,
                 base_url: str,
                 staging_upload_url: Optional[str] = None,
                 timeout_seconds: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize API client.

        Args:
            base_url: Base URL of the API (e.g. http://localhost:3000/api)
            staging_upload_url: Object store upload URL (defaults to <base_url>/upload)
            timeout_seconds: Total timeout for each request
            session: Existing aiohttp session to reuse
        """
        self.base_url = base_url.rstrip("/")
        self.staging_upload_url = staging_upload_url or f"{self.base_url}/upload"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

        logger.info(f"TranscriptionApiClient initialized with base URL: {self.base_url}")

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb):
        await self.close()

    async def _parse(self,
                     response: aiohttp.ClientResponse,
                     model: Type,
                     error_cls: Type[TranscriptrError]):
        try:
            body = await response.json(content_type=None)
            return model.model_validate(body)
        except (aiohttp.ContentTypeError, ValueError, ValidationError) as e:
            raise error_cls(f"Invalid response from {response.url}: {e}", status=response.status)

    async def create_job(self, body: Dict[str, Any]) -> SubmissionResponse:
        """POST the job submission body.

        Raises:
            SubmissionFailure: On transport error, non-2xx response or bad body
        """
        session = await self._get_session()
        try:
            async with session.post(self._url("transcribe"), json=body) as response:
                if response.status >= 400:
                    message = await error_message_from_response(response)
                    raise SubmissionFailure(f"Server responded with {message}", status=response.status)
                return await self._parse(response, SubmissionResponse, SubmissionFailure)
        except aiohttp.ClientError as e:
            raise SubmissionFailure(f"Failed to submit transcription: {e}") from e

    async def get_job(self, job_id: str) -> JobStatusResponse:
        """GET the status of a job.

        Raises:
            PollingTransportError: On transport error, non-2xx response or bad body
        """
        session = await self._get_session()
        try:
            async with session.get(self._url(f"prediction/{job_id}")) as response:
                if response.status >= 400:
                    message = await error_message_from_response(response)
                    raise PollingTransportError(
                        f"Failed to check prediction status: {message}", status=response.status
                    )
                return await self._parse(response, JobStatusResponse, PollingTransportError)
        except aiohttp.ClientError as e:
            raise PollingTransportError(str(e) or e.__class__.__name__) from e

    async def upload_staged_file(self,
                                 data: bytes,
                                 content_type: Optional[str],
                                 original_name: str) -> StagedFile:
        """Upload raw bytes to the object store.

        Raises:
            StagingFailure: On transport error, non-2xx response or bad body
        """
        filename = generate_staged_filename(original_name)
        headers = {
            "Content-Type": content_type or "application/octet-stream",
            "X-File-Name": f"{STAGING_PREFIX}{filename}",
        }
        session = await self._get_session()
        logger.info(f"Starting staging upload for: {STAGING_PREFIX}{filename} ({len(data)} bytes)")
        try:
            async with session.post(self.staging_upload_url, data=data, headers=headers) as response:
                if response.status >= 400:
                    message = await error_message_from_response(response)
                    raise StagingFailure(
                        f"Failed to upload audio file: {message}", status=response.status
                    )
                return await self._parse(response, StagedFile, StagingFailure)
        except aiohttp.ClientError as e:
            raise StagingFailure(f"Failed to upload audio file: {e}") from e

    async def delete_staged_file(self, file_path: str) -> bool:
        """Ask the cleanup endpoint to delete a staged file.

        A missing file counts as deleted.

        Returns:
            True if the file is gone
        """
        session = await self._get_session()
        async with session.post(self._url("cleanup"), json={"filePath": file_path}) as response:
            if response.status == 404:
                logger.debug(f"Staged file already gone: {file_path}")
                return True
            if response.status >= 400:
                error_text = await response.text()
                logger.error(f"Failed to cleanup file {file_path}: {response.status} {error_text}")
                return False
            text = await response.text()
            logger.debug(f"Cleanup response for {file_path}: {text}")
            return True


def summarize_body(body: Dict[str, Any]) -> Dict[str, Any]:
    """Loggable view of a submission body without the encoded payload."""
    summary = {k: v for k, v in body.items() if k != "audioData"}
    if "audioData" in body:
        summary["audioDataLength"] = f"{len(body['audioData']) / 1024 / 1024:.2f}MB"
    return json.loads(json.dumps(summary, default=str))
