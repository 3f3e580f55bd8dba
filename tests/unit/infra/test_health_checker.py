"""Tests for infrastructure.health.health_checker."""

from __future__ import annotations

import asyncio

import httpx
from prometheus_client import REGISTRY

from infrastructure.health.health_checker import USER_AGENT, HttpHealthChecker


def _checker(handler) -> HttpHealthChecker:
    return HttpHealthChecker(transport=httpx.MockTransport(handler))


class TestHttpHealthChecker:

    async def test_2xx_is_healthy(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user_agent"] = request.headers["user-agent"]
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(204)

        result = await _checker(handler).check(
            "storage", "http://storage.test/health", 3.0, headers={"Authorization": "Bearer k"}
        )

        assert result.healthy is True
        assert result.error is None
        assert result.latency_ms is not None
        assert seen == {"user_agent": USER_AGENT, "auth": "Bearer k"}

    async def test_non_2xx_is_unhealthy(self):
        result = await _checker(lambda request: httpx.Response(503)).check("auth", "http://auth.test/health", 3.0)

        assert result.healthy is False
        assert result.error == "HTTP 503: Service Unavailable"

    async def test_transport_error_is_unhealthy(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await _checker(handler).check("realtime", "http://realtime.test/health", 3.0)

        assert result.healthy is False
        assert result.error == "connection refused"

    async def test_slow_service_times_out(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200)

        result = await _checker(handler).check("graphql", "http://graphql.test/health", 0.05)

        assert result.healthy is False
        assert result.error == "Timeout after 0.05s"

    async def test_records_metric(self):
        before = REGISTRY.get_sample_value(
            "service_health_checks_total", {"service": "metrics-probe", "healthy": "true"}
        ) or 0.0
        await _checker(lambda request: httpx.Response(200)).check("metrics-probe", "http://x.test/health", 1.0)
        after = REGISTRY.get_sample_value("service_health_checks_total", {"service": "metrics-probe", "healthy": "true"})
        assert after == before + 1
