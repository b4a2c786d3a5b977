"""Simple YAML configuration loader for Transcriptr."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
import logging

from ..transcription.polling import PollingPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'api': {
        'base_url': 'http://localhost:3000/api',
        'model_id': 'universal',
        'request_timeout_seconds': 30,
    },
    'staging': {
        'upload_url': None,  # defaults to <api.base_url>/upload
    },
    'upload': {
        'large_file_threshold_mb': 4,
        'supported_formats': ['mp3', 'wav', 'flac', 'ogg'],
    },
    'polling': {
        'interval_seconds': 1.5,
        'initial_delay_seconds': 0.1,
        'max_attempts': 200,
        'progress_floor': 25.0,
        'progress_ceiling': 98.0,
    },
    'storage': {
        'data_directory': 'data',
        'session_expiry_hours': 24,
    },
    'logging': {
        'level': 'INFO',
        'file_path': 'data/logs/transcriptr.log',
        'console_output': True,
    },
}


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class TranscriptrConfig:
    """Transcriptr configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used and relative paths resolve against the
                        current directory.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULT_CONFIG)
            return

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not loaded:
            raise ValueError("Configuration file is empty")
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _merge(copy.deepcopy(DEFAULT_CONFIG), loaded)
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        data_dir = config['storage'].get('data_directory')
        if data_dir and not os.path.isabs(data_dir):
            config['storage']['data_directory'] = str(config_dir / data_dir)

        log_path = config['logging'].get('file_path')
        if log_path and not os.path.isabs(log_path):
            config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'polling.max_attempts').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return default if value is None else value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'api.base_url')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_api_base_url(self) -> str:
        return str(self.get('api.base_url')).rstrip('/')

    def get_staging_upload_url(self) -> str:
        return self.get('staging.upload_url') or f"{self.get_api_base_url()}/upload"

    def get_polling_policy(self) -> PollingPolicy:
        """Build the polling policy from the 'polling' section."""
        return PollingPolicy(
            interval_seconds=float(self.get('polling.interval_seconds')),
            initial_delay_seconds=float(self.get('polling.initial_delay_seconds')),
            max_attempts=int(self.get('polling.max_attempts')),
            progress_floor=float(self.get('polling.progress_floor')),
            progress_ceiling=float(self.get('polling.progress_ceiling')),
        )

    def get_upload_threshold_bytes(self) -> int:
        return int(float(self.get('upload.large_file_threshold_mb')) * 1024 * 1024)

    def get_supported_formats(self) -> List[str]:
        return [fmt.lower().lstrip('.') for fmt in self.get('upload.supported_formats', [])]

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_session_expiry_ms(self) -> int:
        hours = float(self.get('storage.session_expiry_hours', 24))
        return int(hours * 60 * 60 * 1000)
