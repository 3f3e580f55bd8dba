from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ServiceHealthResult:
    """Outcome of one health probe."""

    service_name: str
    healthy: bool
    latency_ms: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"service_name": self.service_name, "healthy": self.healthy}
        if self.latency_ms is not None:
            payload["latency_ms"] = self.latency_ms
        if self.error is not None:
            payload["error"] = self.error
        return payload
