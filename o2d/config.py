from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_SYNC_INTERVAL_SECONDS, SUNDAY


class SyncConfig(BaseModel):
    """Settings for the periodic refresh loop."""

    interval_seconds: float = Field(default=DEFAULT_SYNC_INTERVAL_SECONDS, gt=0)


class ScheduleConfig(BaseModel):
    """Clock and calendar settings used for planned deadlines."""

    timezone: str = "UTC"
    non_working_day: int = Field(default=SUNDAY, ge=0, le=6)


class HttpConfig(BaseModel):
    """Settings for the REST persistence backend."""

    timeout_seconds: float = 10.0


class O2DConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    sync: SyncConfig = SyncConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    http: HttpConfig = HttpConfig()


def load_config(path: Optional[str] = None) -> O2DConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to O2D_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("O2D_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = O2DConfig(**data)
    else:
        config = O2DConfig()

    env_db_url = os.getenv("O2D_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
