"""
Application configuration manager.
Stores settings in a JSON file under the app support dir; environment
variables (optionally from a .env file) override the saved values.
"""

import json
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from ytclip.core.constants import (
    CONFIG_PATH, DEFAULT_UPLOAD_DIR, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_YTDLP,
    DEFAULT_RETENTION_SEC, DEFAULT_MAX_CONCURRENT_JOBS, DEFAULT_METADATA_TABLE,
)

# Validation bounds
_RETENTION_MIN = 0.1
_RETENTION_MAX = 86400       # 1 day
_CONCURRENCY_MIN = 1
_CONCURRENCY_MAX = 32

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'host': DEFAULT_HOST,
    'port': DEFAULT_PORT,
    'upload_dir': str(DEFAULT_UPLOAD_DIR),
    'ytdlp_path': DEFAULT_YTDLP,
    'public_base_url': '',
    'retention_sec': DEFAULT_RETENTION_SEC,
    'max_concurrent_jobs': DEFAULT_MAX_CONCURRENT_JOBS,
    'supabase_url': '',
    'supabase_key': '',
    'storage_bucket': '',
    'metadata_table': DEFAULT_METADATA_TABLE,
}

# config key -> environment variable
_ENV_OVERRIDES = {
    'host': 'HOST',
    'port': 'PORT',
    'upload_dir': 'UPLOAD_DIR',
    'ytdlp_path': 'YTDLP_PATH',
    'public_base_url': 'PUBLIC_BASE_URL',
    'retention_sec': 'JOB_RETENTION_SEC',
    'max_concurrent_jobs': 'MAX_CONCURRENT_JOBS',
    'supabase_url': 'SUPABASE_URL',
    'supabase_key': 'SUPABASE_KEY',
    'storage_bucket': 'SUPABASE_BUCKET',
    'metadata_table': 'SUPABASE_TABLE',
}


def load_env(dotenv_path: Path | None = None) -> bool:
    """Load a .env file into os.environ (existing variables win)."""
    return load_dotenv(dotenv_path=dotenv_path, override=False)


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None, use_env: bool = True,
                 overrides: dict | None = None):
        self.path = config_path or CONFIG_PATH
        self.use_env = use_env
        self._data: dict = {}
        self.load()
        for key, value in (overrides or {}).items():
            self._data[key] = self._validate(key, value)

    def load(self):
        """Load config from disk and environment, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                self._data.update(saved)
            except Exception as e:
                logger.warning("Failed to load config: %s", e)

        if self.use_env:
            for key, env_name in _ENV_OVERRIDES.items():
                value = os.environ.get(env_name)
                if value is not None and value != '':
                    self._data[key] = value

        for key in list(self._data):
            self._data[key] = self._validate(key, self._data[key])

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'retention_sec':
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Invalid retention_sec %r — using default", value)
                return DEFAULT_RETENTION_SEC
            return max(_RETENTION_MIN, min(_RETENTION_MAX, value))

        if key == 'max_concurrent_jobs':
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid max_concurrent_jobs %r — using default", value)
                return DEFAULT_MAX_CONCURRENT_JOBS
            return max(_CONCURRENCY_MIN, min(_CONCURRENCY_MAX, value))

        if key == 'port':
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid port %r — using default", value)
                return DEFAULT_PORT
            if not 0 < value < 65536:
                logger.warning("Port %r out of range — using default", value)
                return DEFAULT_PORT
            return value

        if key == 'public_base_url':
            return str(value or '').rstrip('/')

        return value

    @property
    def upload_dir(self) -> Path:
        return Path(self._data.get('upload_dir', str(DEFAULT_UPLOAD_DIR)))

    @property
    def ytdlp_path(self) -> str:
        return self._data.get('ytdlp_path', DEFAULT_YTDLP)

    @property
    def retention_sec(self) -> float:
        return self._data.get('retention_sec', DEFAULT_RETENTION_SEC)

    @property
    def max_concurrent_jobs(self) -> int:
        return self._data.get('max_concurrent_jobs', DEFAULT_MAX_CONCURRENT_JOBS)

    @property
    def public_base_url(self) -> str:
        return self._data.get('public_base_url', '')

    @property
    def relay_enabled(self) -> bool:
        return bool(self._data.get('supabase_url') and self._data.get('supabase_key')
                    and self._data.get('storage_bucket'))

    @property
    def persistence_enabled(self) -> bool:
        return bool(self._data.get('supabase_url') and self._data.get('supabase_key')
                    and self._data.get('metadata_table'))
