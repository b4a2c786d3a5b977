"""Builds and sends transcription job requests."""

import logging
from typing import Any, Dict, Optional

from ..exceptions import SubmissionFailure
from ..models.session import TranscriptionOptions
from .api_client import TranscriptionApiClient, summarize_body

logger = logging.getLogger(__name__)


class JobSubmitter:
    """Submits transcription jobs and returns the provider's job id."""

    def __init__(self, api_client: TranscriptionApiClient, model_id: str):
        """Initialize job submitter.

        Args:
            api_client: Client used to reach the submission endpoint
            model_id: Provider model identifier sent with every job
        """
        self.api_client = api_client
        self.model_id = model_id

    def build_request(self,
                      options: TranscriptionOptions,
                      audio_data: Optional[str] = None,
                      audio_url: Optional[str] = None) -> Dict[str, Any]:
        """Build the submission body.

        Exactly one payload field is populated; a staged URL takes precedence
        over inline data.

        Raises:
            SubmissionFailure: If neither payload field is given
        """
        if not audio_data and not audio_url:
            raise SubmissionFailure("No audio data or URL provided")

        body: Dict[str, Any] = {
            "options": {
                "modelId": self.model_id,
                "language": options.language,
                "diarize": options.diarize,
            }
        }
        if audio_url:
            if audio_data:
                logger.debug("Dropping inline audio data in favour of staged URL")
            body["audioUrl"] = audio_url
        else:
            body["audioData"] = audio_data
        return body

    async def submit(self,
                     options: TranscriptionOptions,
                     audio_data: Optional[str] = None,
                     audio_url: Optional[str] = None) -> str:
        """Submit a job.

        Returns:
            Job id assigned by the provider

        Raises:
            SubmissionFailure: If the request is rejected or cannot be sent
        """
        body = self.build_request(options, audio_data=audio_data, audio_url=audio_url)
        logger.info(f"Submitting transcription job using {'URL' if 'audioUrl' in body else 'base64 data'}")
        logger.debug(f"Submission body: {summarize_body(body)}")

        response = await self.api_client.create_job(body)
        logger.info(f"Transcription job submitted: {response.id}")
        return response.id
