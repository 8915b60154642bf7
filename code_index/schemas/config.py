"""Service configuration schema.

Settings live in one JSON file. Missing file means defaults; a present but
invalid file is an error, never silently ignored.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pydantic

from code_index.schemas.base import StrictModel

__all__ = [
    'CONFIG_ENV_VAR',
    'CONFIG_PATH',
    'IndexerSettings',
    'LeaseSettings',
    'PlatformSettings',
    'RedisSettings',
    'Settings',
    'load_settings',
    'resolve_config_path',
    'save_settings',
]

logger = logging.getLogger(__name__)

# Default config file location, overridable via CODE_INDEX_CONFIG
CONFIG_PATH = Path.home() / '.code-index' / 'config.json'
CONFIG_ENV_VAR = 'CODE_INDEX_CONFIG'


class RedisSettings(StrictModel):
    host: str = '127.0.0.1'
    port: int = 6379
    db: int = 0


class IndexerSettings(StrictModel):
    """External indexer binary and index partitioning."""

    binary_path: str | None = None
    timeout_seconds: int = 1800
    collection_name: str = 'code_embeddings'
    number_of_partitions: int = pydantic.Field(default=16, ge=1)
    gitaly_address: str = 'unix:/var/run/gitaly/gitaly.socket'
    gitaly_token: str = ''


class PlatformSettings(StrictModel):
    """Platform API for projects, namespaces and eligibility."""

    base_url: str = 'http://127.0.0.1:3000/api/internal/code_index'
    token: str = ''
    timeout_seconds: float = 30.0


class LeaseSettings(StrictModel):
    """Per-repository exclusive lease.

    attempts/wait_seconds bound how long a worker retries a busy lease
    before rescheduling the job reschedule_delay_seconds later.
    """

    ttl_seconds: int = 3600
    attempts: int = pydantic.Field(default=3, ge=1)
    wait_seconds: float = 1.0
    reschedule_delay_seconds: int = 60


class Settings(StrictModel):
    indexing_enabled: bool = True
    saas: bool = False
    # Disables the scheduling throttle
    development: bool = False

    redis: RedisSettings = RedisSettings()
    indexer: IndexerSettings = IndexerSettings()
    platform: PlatformSettings = PlatformSettings()

    # Root directory holding bare repositories by relative path
    repositories_root: str = '/var/opt/repositories'
    lease: LeaseSettings = LeaseSettings()

    worker_concurrency: int = pydantic.Field(default=8, ge=1)
    ref_queue_shards: int = pydantic.Field(default=16, ge=1)
    # Project id range per repository table partition
    repository_partition_size: int = pydantic.Field(default=1_000_000, ge=1)


def resolve_config_path(path: Path | None = None) -> Path:
    if path is not None:
        return path
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return CONFIG_PATH


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from file, or defaults if the file does not exist.

    Raises:
        ValueError: If the config file exists but is invalid.
    """
    config_path = resolve_config_path(path)
    if not config_path.exists():
        logger.info(f'No config at {config_path}, using defaults')
        return Settings()

    try:
        return Settings.model_validate_json(config_path.read_text())
    except pydantic.ValidationError as e:
        raise ValueError(f'Invalid config file at {config_path}: {e}') from e


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Save settings to file, creating parent directories if needed."""
    config_path = resolve_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(settings.model_dump(mode='json'), indent=2) + '\n')
    logger.info(f'Saved config to {config_path}')
    return config_path
