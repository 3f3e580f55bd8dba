"""Application settings loaded from environment variables via Pydantic."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional
from urllib.parse import urlsplit

from pydantic_settings import BaseSettings

from infrastructure.database.config import DatabaseSettings


DEFAULT_REALTIME_SERVICE_URL = "http://localhost:4003"


class AppSettings(BaseSettings):
    """Central configuration for the provisioning control plane.

    Environment variable names match the field names (case-insensitive,
    no prefix) so the same ``.env`` is shared with the platform's other
    services.
    """

    model_config = {"case_sensitive": False, "env_file": ".env", "extra": "ignore"}

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "control_plane"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_ssl_mode: Optional[str] = None
    database_user: Optional[str] = None

    # Remote services
    auth_service_url: Optional[str] = None
    auth_service_timeout_seconds: float = 10.0
    realtime_service_url: Optional[str] = None
    control_plane_url: Optional[str] = None
    telegram_storage_api_url: Optional[str] = None
    telegram_storage_api_key: Optional[str] = None
    cloudinary_cloud_name: Optional[str] = None

    # Health probes
    gateway_url_dev: str = "http://localhost:3000"
    gateway_url: str = "https://api.nextmavens.com"
    health_check_timeout_seconds: float = 3.0
    gateway_health_timeout_seconds: float = 5.0

    # Test seam: short-circuit remote calls with deterministic metadata
    integration_test: bool = False

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"
    auto_status_transition_interval_seconds: float = 300.0

    # Logging
    log_level: str = "INFO"

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings(
            host=self.postgres_host,
            port=self.postgres_port,
            user=self.postgres_user,
            password=self.postgres_password,
            name=self.postgres_db,
            pool_size=self.db_pool_size,
            max_overflow=self.db_max_overflow,
            ssl_mode=self.db_ssl_mode,
        )

    @property
    def storage_telegram_configured(self) -> bool:
        return bool(self.telegram_storage_api_url and self.telegram_storage_api_key)

    @property
    def storage_cloudinary_configured(self) -> bool:
        return bool(self.cloudinary_cloud_name)

    def resolve_realtime_service_url(self) -> str:
        """``REALTIME_SERVICE_URL``, else ``realtime.<host>`` of the control
        plane URL, else the local development default."""
        if self.realtime_service_url:
            return self.realtime_service_url
        if self.control_plane_url:
            parts = urlsplit(self.control_plane_url)
            if parts.scheme and parts.hostname:
                return f"{parts.scheme}://realtime.{parts.hostname}"
        return DEFAULT_REALTIME_SERVICE_URL

    def gateway_base_url(self, environment: str) -> str:
        return self.gateway_url_dev if environment == "dev" else self.gateway_url


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Return the application settings singleton."""
    return AppSettings()
