"""HTTP health probe for the monitored API."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from alerting.core.config import HealthCheckConfig
from alerting.core.scheduling import now_ms
from alerting.core.types import HealthCheckResult

logger = structlog.get_logger(__name__)


class HealthProbe:
    """GETs the health endpoint and summarises it as a HealthCheckResult.

    The endpoint is expected to answer JSON shaped like::

        {"database": "healthy", "ai_service": {"success_rate": 97.0}}

    ``success_rate`` is a percentage (0-100), matching the ``ai_success_rate
    lt 90`` seed rule.

    Any transport error, timeout or non-2xx status produces an unhealthy
    result whose ``response_time_ms`` is the configured timeout sentinel.
    """

    def __init__(
        self,
        config: HealthCheckConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._config = config or HealthCheckConfig()
        self._http = client
        self._clock = clock

    @property
    def url(self) -> str:
        return self._config.url

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_secs))
        return self._http

    async def check(self) -> HealthCheckResult:
        started = time.monotonic()
        try:
            response = await self._get_client().get(self._config.url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            return self._failed(f"health endpoint returned {exc.response.status_code}")
        except httpx.HTTPError as exc:
            return self._failed(f"health request failed: {exc!r}")

        elapsed_ms = int((time.monotonic() - started) * 1000)
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        result = HealthCheckResult(
            healthy=True,
            response_time_ms=elapsed_ms,
            database_healthy=body.get("database") == "healthy",
            ai_success_rate=_success_rate(body),
            timestamp=self._clock(),
        )
        logger.debug(
            "health_check_completed",
            response_time_ms=result.response_time_ms,
            database_healthy=result.database_healthy,
        )
        return result

    def _failed(self, error: str) -> HealthCheckResult:
        logger.warning("health_check_failed", url=self._config.url, error=error)
        return HealthCheckResult(
            healthy=False,
            response_time_ms=self._config.timeout_sentinel_ms,
            database_healthy=False,
            error=error,
            timestamp=self._clock(),
        )

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def _success_rate(body: dict[str, Any]) -> float | None:
    ai = body.get("ai_service")
    if not isinstance(ai, dict):
        return None
    rate = ai.get("success_rate")
    if isinstance(rate, bool) or not isinstance(rate, (int, float)):
        return None
    return float(rate)
