"""Tests for infrastructure.clients.auth_service_client."""

from __future__ import annotations

import json

import httpx
import pytest

from domain.exceptions import ConfigurationError, ServiceConnectionError, ServiceError
from infrastructure.clients.auth_service_client import AuthServiceClient


def _client(handler, base_url: str = "http://auth.test/") -> AuthServiceClient:
    return AuthServiceClient(base_url, transport=httpx.MockTransport(handler))


class TestAuthServiceClient:

    async def test_posts_payload_and_returns_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"tenant": {"id": "t-1"}, "user": {"id": "u-1"}})

        body = await _client(handler).create_tenant({"slug": "acme"})

        assert body == {"tenant": {"id": "t-1"}, "user": {"id": "u-1"}}
        assert seen == {"url": "http://auth.test/api/auth/create-tenant", "body": {"slug": "acme"}}

    async def test_non_2xx_raises_service_error(self):
        client = _client(lambda request: httpx.Response(409, json={"error": "exists"}))

        with pytest.raises(ServiceError) as exc_info:
            await client.create_tenant({"slug": "acme"})

        assert exc_info.value.status == 409
        assert exc_info.value.detail == "Auth service returned error: 409 Conflict"
        assert exc_info.value.context == {"createTenantUrl": "http://auth.test/api/auth/create-tenant"}

    async def test_connection_failure_raises_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ServiceConnectionError) as exc_info:
            await _client(handler).create_tenant({"slug": "acme"})

        assert exc_info.value.kind == "ConnectionError"

    async def test_unconfigured(self):
        client = AuthServiceClient(None)
        assert client.configured is False
        with pytest.raises(ConfigurationError):
            await client.create_tenant({"slug": "acme"})
