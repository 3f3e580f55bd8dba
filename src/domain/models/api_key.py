from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4


class ApiKeyType(str, enum.Enum):
    PUBLIC = "public"
    SECRET = "secret"
    SERVICE_ROLE = "service_role"

    @property
    def short_code(self) -> str:
        return _SHORT_CODES[self]

    @property
    def scopes(self) -> list[str]:
        return list(_DEFAULT_SCOPES[self])


_SHORT_CODES: dict[ApiKeyType, str] = {
    ApiKeyType.PUBLIC: "pk",
    ApiKeyType.SECRET: "sk",
    ApiKeyType.SERVICE_ROLE: "sr",
}

_DEFAULT_SCOPES: dict[ApiKeyType, tuple[str, ...]] = {
    ApiKeyType.PUBLIC: ("read",),
    ApiKeyType.SECRET: ("read", "write"),
    ApiKeyType.SERVICE_ROLE: ("read", "write", "admin"),
}


@dataclass
class ApiKey:
    project_id: UUID
    key_type: ApiKeyType
    key_prefix: str
    key_hash: str
    scopes: list[str] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
