"""Config manager module for artifact-archive.

Handles configuration loading and default parameters. Settings are built once
by the caller and passed to the components that need them; nothing here is
global state.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from .codecs import Algorithm

logger = logging.getLogger(__name__)

# File processing
COMPRESSION_LEVEL = int(os.getenv('COMPRESSION_LEVEL', '9'))
MAX_FILE_SIZE = int(os.getenv('MAX_FILE_SIZE', str(1000 * 1024 * 1024)))
LARGE_FILE_THRESHOLD = int(os.getenv('LARGE_FILE_THRESHOLD', str(100 * 1024 * 1024)))
STREAM_CHUNK_SIZE = int(os.getenv('STREAM_CHUNK_SIZE', str(1024 * 1024)))
# Artifacts above this size are packaged without JSON validation
ARTIFACT_PARSE_LIMIT = int(os.getenv('ARTIFACT_PARSE_LIMIT', str(50 * 1024 * 1024)))
ARTIFACT_FILE_NAME = os.getenv('ARTIFACT_FILE_NAME', 'bbOut.json')

# Backend API
API_BASE_URL = os.getenv('API_BASE_URL', 'https://api.buildbear.io')
API_TIMEOUT = float(os.getenv('API_TIMEOUT', '600'))
API_RETRY_ATTEMPTS = int(os.getenv('API_RETRY_ATTEMPTS', '3'))
API_INITIAL_BACKOFF = float(os.getenv('API_INITIAL_BACKOFF', '1.0'))

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'info')

FORMAT_VERSION = "2.0.0"
TOOL_NAME = "artifact-archive"


class CompressionOptions(BaseModel):
    """Every option recognized by the archive builder."""

    compression_level: int = Field(default=COMPRESSION_LEVEL, ge=1, le=9)
    algorithm: Algorithm = Algorithm.LZMA
    deduplication: bool = True
    delta_compression: bool = True
    # Whitespace normalization and comment stripping; extraction then yields
    # the normalized text rather than the original bytes.
    lossy_text_normalization: bool = False
    validate_after_compression: bool = True
    strict: bool = False
    # Files above this size are skipped
    max_file_size: int = Field(default=MAX_FILE_SIZE, gt=0)
    large_file_threshold: int = Field(default=LARGE_FILE_THRESHOLD, gt=0)
    stream_chunk_size: int = Field(default=STREAM_CHUNK_SIZE, gt=0)

    model_config = {
        "extra": "forbid",
    }


class ApiConfig(BaseModel):
    base_url: str = API_BASE_URL
    timeout: float = Field(default=API_TIMEOUT, gt=0)
    retry_attempts: int = Field(default=API_RETRY_ATTEMPTS, ge=0)
    initial_backoff: float = Field(default=API_INITIAL_BACKOFF, ge=0)
    api_token: str = os.environ.get("BUILDBEAR_TOKEN", "")


class ConfigModel(BaseModel):
    """Typed configuration validated by Pydantic."""

    compression: CompressionOptions = Field(default_factory=CompressionOptions)
    api: ApiConfig = Field(default_factory=ApiConfig)
    artifact_parse_limit: int = ARTIFACT_PARSE_LIMIT
    artifact_file_name: str = ARTIFACT_FILE_NAME
    output_dir: Optional[str] = None
    log_level: str = LOG_LEVEL
    progress_log: Optional[str] = None


class Config:
    """Configuration manager for artifact-archive.

    Loads defaults from the environment and merges an optional JSON file.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.load_failed = False
        self.settings: ConfigModel = ConfigModel()

    @property
    def config(self) -> Dict[str, Any]:
        """Dictionary representation of the current settings."""
        return self.settings.model_dump(mode="json")

    @config.setter
    def config(self, new_config: Dict[str, Any]) -> None:
        try:
            self.settings = ConfigModel(**new_config)
        except ValidationError as exc:
            self.load_failed = True
            raise ValueError(f"Invalid configuration: {exc}") from exc

    def get_default_config(self) -> Dict[str, Any]:
        """Return default configuration as dictionary."""
        return ConfigModel().model_dump(mode="json")

    def load(self, config_path: Optional[str] = None) -> ConfigModel:
        """Load configuration from environment defaults and an optional JSON file."""
        json_path = config_path or self.config_path
        runtime_config: Dict[str, Any] = self.get_default_config()

        if json_path:
            if not os.path.exists(json_path):
                logger.warning("Configuration file not found: %s", json_path)
            else:
                try:
                    with open(json_path, 'r', encoding='utf-8') as f:
                        user_config = json.load(f)
                except json.JSONDecodeError as exc:
                    self.load_failed = True
                    raise ValueError(f"Invalid JSON in {json_path}: {exc}") from exc
                if isinstance(user_config, dict):
                    _deep_update(runtime_config, user_config)
                else:
                    logger.error("Ignoring non-object configuration in %s", json_path)

        self.config = runtime_config
        logger.debug("Configuration loaded")
        return self.settings


def _deep_update(target: Dict[str, Any], updates: Dict[str, Any]) -> None:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value


def load_config(config_path: Optional[str] = None) -> ConfigModel:
    """Build a fresh, validated configuration."""
    return Config(config_path).load()
