"""Environment driven settings for localnet."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .. import constants
from .base import NetworkDefaults


class LocalnetSettings(BaseSettings):
    """Settings read from LOCALNET_* environment variables."""
    model_config = SettingsConfigDict(env_prefix="LOCALNET_", extra="ignore")

    home: str = Field(
        default=constants.DEFAULT_HOME,
        description="Base directory holding every network"
    )
    keygen: Literal["docker", "local"] = Field(
        default="docker",
        description="Key generator: 'docker' runs the daemon image, 'local' uses software keys"
    )

    # Image overrides
    daemon_image: Optional[str] = None
    archive_image: Optional[str] = None
    postgres_image: Optional[str] = None
    proxy_image: Optional[str] = None

    # Archive database, passed through untouched
    pg_host: Optional[str] = None
    pg_port: Optional[int] = None
    pg_user: Optional[str] = None
    pg_password: Optional[str] = None
    pg_db: Optional[str] = None

    @property
    def home_path(self) -> Path:
        return Path(os.path.expanduser(self.home))

    def network_defaults(self) -> NetworkDefaults:
        """Build the role-default table, applying environment overrides."""
        overrides = {
            field: getattr(self, field)
            for field in ("daemon_image", "archive_image", "postgres_image", "proxy_image",
                          "pg_host", "pg_port", "pg_user", "pg_password", "pg_db")
            if getattr(self, field) is not None
        }
        return NetworkDefaults(**overrides)
