"""Wire models for the transcription and staging endpoints."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class SubmissionResponse(BaseModel):
    """Response of the job submission endpoint."""
    model_config = ConfigDict(extra="allow")

    id: str
    status: Optional[str] = None


class JobStatusResponse(BaseModel):
    """Response of the job status endpoint."""
    model_config = ConfigDict(extra="allow")

    status: str
    output: Any = None
    error: Optional[str] = None


class StagedFile(BaseModel):
    """Location of a payload uploaded to the object store."""
    url: str
    path: str
