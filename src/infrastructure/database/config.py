"""
Control-plane database connection settings.

``AppSettings.database`` projects the flat environment settings onto
:class:`DatabaseSettings`; the engine and Alembic read URLs from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_SYNC_DRIVER = "postgresql+psycopg2"
_ASYNC_DRIVER = "postgresql+asyncpg"


@dataclass(frozen=True)
class DatabaseSettings:
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = "postgres"
    name: str = "control_plane"

    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    ssl_mode: Optional[str] = None

    def _dsn(self, driver: str, ssl_param: str) -> str:
        url = f"{driver}://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"
        if self.ssl_mode:
            url += f"?{ssl_param}={self.ssl_mode}"
        return url

    @property
    def sync_url(self) -> str:
        """psycopg2 DSN, used by Alembic."""
        return self._dsn(_SYNC_DRIVER, "sslmode")

    @property
    def async_url(self) -> str:
        return self._dsn(_ASYNC_DRIVER, "ssl")
