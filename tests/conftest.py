"""Pytest configuration and fixtures for Transcriptr tests."""

import asyncio
import logging
import tempfile
from typing import Any, List, Optional
from uuid import uuid4

import pytest

from transcriptr.exceptions import SubmissionFailure
from transcriptr.models.api import JobStatusResponse, StagedFile, SubmissionResponse
from transcriptr.transcription.polling import PollingPolicy


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without network or hardware")


class FakeApiClient:
    """In-memory stand-in for TranscriptionApiClient.

    ``statuses`` is consumed one entry per status check; the last entry
    repeats. An entry may be a status string, a JobStatusResponse or an
    exception to raise.
    """

    def __init__(self, statuses: Optional[List[Any]] = None, job_id: str = "abc"):
        self.statuses = list(statuses or ["processing"])
        self.job_id = job_id
        self.create_error: Optional[Exception] = None
        self.submitted: List[dict] = []
        self.uploads: List[dict] = []
        self.deleted: List[str] = []
        self.status_calls = 0
        self.closed = False
        # Optional gates that hold a call until set
        self.poll_gate: Optional[asyncio.Event] = None
        self.poll_gate_call: int = 0
        self.upload_gate: Optional[asyncio.Event] = None

    async def create_job(self, body):
        self.submitted.append(body)
        if self.create_error is not None:
            raise self.create_error
        return SubmissionResponse(id=self.job_id, status="starting")

    async def get_job(self, job_id):
        self.status_calls += 1
        call = self.status_calls
        index = min(call - 1, len(self.statuses) - 1)
        entry = self.statuses[index]

        if self.poll_gate is not None and call == self.poll_gate_call:
            await self.poll_gate.wait()

        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, JobStatusResponse):
            return entry
        return JobStatusResponse(status=entry)

    async def upload_staged_file(self, data, content_type, original_name):
        self.uploads.append({"size": len(data), "content_type": content_type, "name": original_name})
        if self.upload_gate is not None:
            await self.upload_gate.wait()
        path = f"temp_audio/audio_{len(self.uploads)}_{original_name}"
        return StagedFile(url=f"https://storage.example.com/{path}", path=path)

    async def delete_staged_file(self, file_path):
        self.deleted.append(file_path)
        return True

    async def close(self):
        self.closed = True


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fast_policy():
    """Polling policy that completes in milliseconds."""
    return PollingPolicy(
        interval_seconds=0.01,
        initial_delay_seconds=0.0,
        max_attempts=5,
        progress_floor=25.0,
        progress_ceiling=98.0,
    )


@pytest.fixture
def topic():
    """Unique pub/sub topic so tests never share listeners."""
    return f"test_{uuid4().hex}"


@pytest.fixture
def fake_api():
    return FakeApiClient()


@pytest.fixture
def failing_submission_api():
    api = FakeApiClient()
    api.create_error = SubmissionFailure("Server responded with Invalid audio", status=400)
    return api


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_api():
    """Factory for FakeApiClient with scripted status responses."""
    return FakeApiClient
