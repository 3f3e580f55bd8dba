"""Typed records stored under namespaced keys of ``projects.metadata``.

Each handler owns exactly one key and writes it with
``ProjectRepository.merge_metadata``; other keys are never touched.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _MetadataRecord(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    #: key under ``projects.metadata`` this record is stored at
    metadata_key: ClassVar[str] = ""

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class AuthServiceConfig(_MetadataRecord):
    metadata_key = "auth_service"

    registered_at: datetime = Field(default_factory=_utcnow)
    tenant_id: str
    environment: str = "dev"
    auth_tenant_id: str | None = None
    auth_user_id: str | None = None
    placeholder_admin_email: str | None = None


class RealtimeServiceConfig(_MetadataRecord):
    metadata_key = "realtime_service"

    registered_at: datetime = Field(default_factory=_utcnow)
    tenant_id: str
    environment: str = "dev"
    channel_prefix: str
    service_url: str
    health_status: str = "unknown"
    max_connections: int | None = None


class StorageServiceConfig(_MetadataRecord):
    metadata_key = "storage_service"

    registered_at: datetime = Field(default_factory=_utcnow)
    tenant_id: str
    environment: str = "dev"
    storage_path_prefix: str | None = None
    bucket_prefix: str | None = None
    max_file_size: int | None = None
    telegram_enabled: bool = False
    cloudinary_enabled: bool = False


class ApiKeyPreview(BaseModel):
    key_type: str
    key_prefix: str
    scopes: list[str] = Field(default_factory=list)


class ApiKeysSummary(_MetadataRecord):
    metadata_key = "api_keys"

    generated_at: datetime = Field(default_factory=_utcnow)
    environment: str = "dev"
    keys: list[ApiKeyPreview] = Field(default_factory=list)


class SuspensionRecord(_MetadataRecord):
    metadata_key = "suspension"

    suspended_at: datetime = Field(default_factory=_utcnow)
    automatic: bool = True
    reason: str = "quota_exceeded"
    exceeded_caps: list[str] = Field(default_factory=list)
