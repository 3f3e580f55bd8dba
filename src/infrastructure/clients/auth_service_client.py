"""HTTP client for the platform auth service's tenant registration API."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from domain.exceptions import ConfigurationError, ServiceConnectionError, ServiceError

logger = logging.getLogger(__name__)

CREATE_TENANT_PATH = "/api/auth/create-tenant"


class AuthServiceClient:
    """Registers tenants with the auth service.

    Parameters
    ----------
    base_url:
        ``AUTH_SERVICE_URL``. ``None`` means the service is not configured.
    timeout:
        Request timeout in seconds.
    transport:
        Optional httpx transport; tests pass an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self._base_url is not None

    @property
    def create_tenant_url(self) -> str:
        if self._base_url is None:
            raise ConfigurationError("AUTH_SERVICE_URL environment variable is not configured")
        return f"{self._base_url}{CREATE_TENANT_PATH}"

    async def create_tenant(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST *payload* and return the decoded ``{tenant, user}`` body.

        Raises
        ------
        ConfigurationError
            If no base URL is configured.
        ServiceConnectionError
            If the service cannot be reached.
        ServiceError
            If the service answers with a non-2xx status.
        """
        url = self.create_tenant_url
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
        except httpx.TransportError as exc:
            raise ServiceConnectionError(
                "auth",
                str(exc) or exc.__class__.__name__,
                context={"createTenantUrl": url},
            ) from exc

        if not response.is_success:
            raise ServiceError(
                "auth",
                response.status_code,
                response.reason_phrase,
                context={"createTenantUrl": url},
            )

        body = response.json()
        logger.debug("Auth service create-tenant responded with keys %s", sorted(body))
        return body if isinstance(body, dict) else {}
