"""Unit tests for TranscriptrConfig."""

from pathlib import Path

import pytest
import yaml

from transcriptr.config import DEFAULT_CONFIG, TranscriptrConfig
from transcriptr.transcription.polling import PollingPolicy


def _write_config(directory, data):
    path = Path(directory) / "transcriptr.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.mark.unit
class TestTranscriptrConfig:
    """Test cases for TranscriptrConfig class."""

    def test_defaults(self):
        config = TranscriptrConfig()

        assert config.get_api_base_url() == "http://localhost:3000/api"
        assert config.get_staging_upload_url() == "http://localhost:3000/api/upload"
        assert config.get_upload_threshold_bytes() == 4 * 1024 * 1024
        assert config.get_supported_formats() == ["mp3", "wav", "flac", "ogg"]
        assert config.get_session_expiry_ms() == 24 * 60 * 60 * 1000
        assert config.get_polling_policy() == PollingPolicy()

    def test_defaults_are_not_shared(self):
        config = TranscriptrConfig()
        config.set("api.base_url", "http://elsewhere")

        assert DEFAULT_CONFIG["api"]["base_url"] == "http://localhost:3000/api"

    def test_file_overrides_merge_with_defaults(self, temp_data_dir):
        path = _write_config(temp_data_dir, {
            "api": {"base_url": "https://api.example.com/"},
            "polling": {"max_attempts": 10, "interval_seconds": 0.5},
            "upload": {"large_file_threshold_mb": 1.5},
        })

        config = TranscriptrConfig(str(path))

        assert config.get_api_base_url() == "https://api.example.com"
        assert config.get("api.model_id") == "universal"
        policy = config.get_polling_policy()
        assert policy.max_attempts == 10
        assert policy.interval_seconds == 0.5
        assert policy.progress_ceiling == 98.0
        assert config.get_upload_threshold_bytes() == int(1.5 * 1024 * 1024)

    def test_relative_paths_resolve_against_config_file(self, temp_data_dir):
        path = _write_config(temp_data_dir, {"storage": {"data_directory": "store"}})

        config = TranscriptrConfig(str(path))

        assert config.get_data_directory() == str((Path(temp_data_dir) / "store").absolute())
        assert config.get("logging.file_path") == str(Path(temp_data_dir) / "data/logs/transcriptr.log")

    def test_missing_file(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            TranscriptrConfig(str(Path(temp_data_dir) / "nope.yaml"))

    @pytest.mark.parametrize("content", ["", "- just\n- a list\n", "api: [unclosed\n"])
    def test_invalid_file(self, temp_data_dir, content):
        path = Path(temp_data_dir) / "bad.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(ValueError):
            TranscriptrConfig(str(path))

    def test_get_and_set(self):
        config = TranscriptrConfig()

        config.set("custom.nested.value", 3)

        assert config.get("custom.nested.value") == 3
        assert config.get("custom.missing", "fallback") == "fallback"
        assert config.get("staging.upload_url", "default-url") == "default-url"

    def test_sample_config_loads(self):
        sample = Path(__file__).resolve().parents[2] / "transcriptr.yaml"

        config = TranscriptrConfig(str(sample))

        assert config.get_polling_policy() == PollingPolicy()
        assert config.get_upload_threshold_bytes() == 4 * 1024 * 1024
