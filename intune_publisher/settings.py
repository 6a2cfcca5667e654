"""
Runtime configuration.

All values can be overridden via environment variables (prefix
``INTUNE_PUBLISHER_``) or a ``.env`` file in the working directory, e.g.::

    INTUNE_PUBLISHER_TENANT_ID=...
    INTUNE_PUBLISHER_CLIENT_ID=...
    INTUNE_PUBLISHER_CLIENT_SECRET=...
    INTUNE_PUBLISHER_CONVERTER_PATH=C:\\Tools\\IntuneWinAppUtil.exe
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .functions.blob_uploader import BLOCK_SIZE


class PublisherSettings(BaseSettings):
    graph_base_url: str = "https://graph.microsoft.com/beta"
    http_timeout: float = Field(default=30 * 60, description="Seconds; uploads of large payloads are slow.")

    converter_path: str = "IntuneWinAppUtil.exe"
    converter_timeout: float = 60 * 60
    application_folder_name: str = "Application"
    output_folder_name: str = "Intune"
    setup_file_name: str = "Deploy-Application.exe"

    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = Field(default=None, description="Pre-acquired bearer token; skips OAuth.")

    block_size: int = BLOCK_SIZE
    storage_uri_max_attempts: int = 60
    storage_uri_delay: float = 10
    processing_max_attempts: int = 120
    processing_delay: float = 5
    minimum_windows_release: str = "1607"

    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(env_prefix="INTUNE_PUBLISHER_", env_file=".env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> PublisherSettings:
    return PublisherSettings()


def configure_logging(level: Optional[str] = None) -> None:
    """Apply a basic root logging configuration once (host processes only)."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
