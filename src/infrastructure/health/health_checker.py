"""
HTTP health probing for provisioned services.

Any 2xx response is healthy. Non-2xx responses, transport errors and
timeouts are unhealthy and carry the measured latency plus an error text.
Probes never raise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import httpx

from domain.models.health import ServiceHealthResult
from infrastructure.observability.metrics import record_health_check

logger = logging.getLogger(__name__)

USER_AGENT = "NextMavens-Provisioning/1.0"


class HttpHealthChecker:
    """Probe URLs with a bounded ``GET``.

    Parameters
    ----------
    transport:
        Optional httpx transport; tests pass an ``httpx.MockTransport``.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def check(
        self,
        service_name: str,
        url: str,
        timeout: float,
        headers: Optional[dict[str, str]] = None,
    ) -> ServiceHealthResult:
        request_headers = {"User-Agent": USER_AGENT, **(headers or {})}
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await asyncio.wait_for(
                    client.get(url, headers=request_headers),
                    timeout=timeout,
                )
        except asyncio.TimeoutError:
            result = ServiceHealthResult(
                service_name=service_name,
                healthy=False,
                latency_ms=_elapsed_ms(started),
                error=f"Timeout after {timeout:g}s",
            )
        except httpx.HTTPError as exc:
            result = ServiceHealthResult(
                service_name=service_name,
                healthy=False,
                latency_ms=_elapsed_ms(started),
                error=str(exc) or exc.__class__.__name__,
            )
        else:
            if response.is_success:
                result = ServiceHealthResult(
                    service_name=service_name,
                    healthy=True,
                    latency_ms=_elapsed_ms(started),
                )
            else:
                result = ServiceHealthResult(
                    service_name=service_name,
                    healthy=False,
                    latency_ms=_elapsed_ms(started),
                    error=f"HTTP {response.status_code}: {response.reason_phrase}",
                )

        record_health_check(service_name, result.healthy)
        if not result.healthy:
            logger.warning("Health check failed for %s at %s: %s", service_name, url, result.error)
        return result


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
