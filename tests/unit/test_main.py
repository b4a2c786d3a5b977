"""Unit tests for the transcriptr command line interface."""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from transcriptr.main import cli
from transcriptr.models.session import AudioSource, SessionStatus, TranscriptionOptions
from transcriptr.storage.session_store import SessionStore


@pytest.fixture
def config_file(temp_data_dir):
    path = Path(temp_data_dir) / "transcriptr.yaml"
    path.write_text(yaml.safe_dump({
        "storage": {"data_directory": "data"},
        "logging": {"file_path": "data/logs/test.log"},
    }), encoding="utf-8")
    return str(path)


@pytest.fixture
def runner():
    with patch("transcriptr.main.setup_logging"):
        yield CliRunner()


@pytest.mark.unit
class TestCli:
    """Test cases for the click command group."""

    def test_history_empty(self, runner, config_file):
        result = runner.invoke(cli, ["--config", config_file, "history"], env={"COLUMNS": "200"})

        assert result.exit_code == 0
        assert "Transcription History" in result.output

    def test_history_lists_sessions(self, runner, config_file, temp_data_dir):
        store = SessionStore(str(Path(temp_data_dir) / "data"))
        session = store.create(TranscriptionOptions(), AudioSource(type="file", name="talk.mp3", size=10))

        result = runner.invoke(cli, ["--config", config_file, "history"], env={"COLUMNS": "200"})

        assert result.exit_code == 0
        assert "talk.mp3" in result.output
        assert session.status.value in result.output

    def test_sweep(self, runner, config_file):
        result = runner.invoke(cli, ["--config", config_file, "sweep"])

        assert result.exit_code == 0
        assert "Removed 0 expired session(s)" in result.output

    def test_delete(self, runner, config_file, temp_data_dir):
        store = SessionStore(str(Path(temp_data_dir) / "data"))
        session = store.create(TranscriptionOptions(), AudioSource(type="url", url="https://x/a.mp3"))

        result = runner.invoke(cli, ["--config", config_file, "delete", session.id])

        assert result.exit_code == 0
        assert f"Deleted session {session.id}" in result.output
        assert store.get(session.id) is None

    def test_delete_unknown(self, runner, config_file):
        result = runner.invoke(cli, ["--config", config_file, "delete", "nope"])

        assert result.exit_code == 1
        assert "Session not found: nope" in result.output

    def test_resume_without_session(self, runner, config_file):
        result = runner.invoke(cli, ["--config", config_file, "resume"])

        assert result.exit_code == 0
        assert "No recoverable session found." in result.output

    def test_resume_unknown_job(self, runner, config_file, temp_data_dir):
        store = SessionStore(str(Path(temp_data_dir) / "data"))
        session = store.create(TranscriptionOptions(), AudioSource(type="url", url="https://x/a.mp3"))
        store.update(session.id, job_id="job-1", status=SessionStatus.PROCESSING)

        result = runner.invoke(cli, ["--config", config_file, "resume", "--job-id", "job-2"])

        assert result.exit_code == 0
        assert "No recoverable session found." in result.output

    def test_transcribe_missing_file(self, runner, config_file, temp_data_dir):
        missing = str(Path(temp_data_dir) / "missing.mp3")

        result = runner.invoke(cli, ["--config", config_file, "transcribe", missing])

        assert result.exit_code == 1
        assert "Audio file not found" in result.output

    def test_missing_config(self, runner, temp_data_dir):
        result = runner.invoke(cli, ["--config", str(Path(temp_data_dir) / "nope.yaml"), "history"])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output
