from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4


class ProjectStatus(str, enum.Enum):
    CREATED = "created"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"
    DELETED = "deleted"


class Environment(str, enum.Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class ServiceType(str, enum.Enum):
    AUTH = "auth"
    REALTIME = "realtime"
    STORAGE = "storage"
    GRAPHQL = "graphql"


VALID_STATE_TRANSITIONS: dict[ProjectStatus, list[ProjectStatus]] = {
    ProjectStatus.CREATED: [ProjectStatus.ACTIVE, ProjectStatus.DELETED],
    ProjectStatus.ACTIVE: [ProjectStatus.SUSPENDED, ProjectStatus.ARCHIVED, ProjectStatus.DELETED],
    ProjectStatus.SUSPENDED: [ProjectStatus.ACTIVE, ProjectStatus.ARCHIVED, ProjectStatus.DELETED],
    ProjectStatus.ARCHIVED: [],
    ProjectStatus.DELETED: [],
}


@dataclass
class ProjectService:
    service_type: ServiceType
    enabled: bool = True


@dataclass
class Project:
    id: UUID = field(default_factory=uuid4)
    name: str = ""
    slug: str = ""
    tenant_id: str = ""
    environment: Environment = Environment.DEV
    status: ProjectStatus = ProjectStatus.CREATED
    metadata: dict[str, Any] = field(default_factory=dict)
    services: list[ProjectService] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def enabled_services(self) -> list[ServiceType]:
        return sorted(
            (s.service_type for s in self.services if s.enabled),
            key=lambda service_type: service_type.value,
        )
