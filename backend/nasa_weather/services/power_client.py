from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

import httpx

from nasa_weather.config import Settings
from nasa_weather.errors import (
    UpstreamBadRequest,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamTimeout,
    UpstreamUnavailable,
)


logger = logging.getLogger("nasa_weather.power_client")

HOURLY_POINT_PATH = "/temporal/hourly/point"
CONNECTIVITY_PROBE_DATE = date(2023, 1, 1)

UPSTREAM_STATUS_MESSAGES = {
    500: "NASA POWER API internal server error",
    503: "NASA POWER API service unavailable",
}


@dataclass
class PowerClient:
    settings: Settings
    _client: httpx.AsyncClient = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.settings.nasa_power_base_url,
            timeout=self.settings.request_timeout_seconds,
            headers={
                "User-Agent": f"{self.settings.app_name}/{self.settings.app_version}",
                "Accept": "application/json",
            },
            limits=connection_limits(self.settings),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch(
        self,
        latitude: float,
        longitude: float,
        start_date: date,
        end_date: date,
        parameters: Sequence[str],
    ) -> dict:
        params: dict[str, Any] = {
            "latitude": latitude,
            "longitude": longitude,
            "start": format_api_date(start_date),
            "end": format_api_date(end_date),
            "parameters": ",".join(parameters),
            "community": self.settings.nasa_power_community,
            "format": "JSON",
        }
        logger.info(
            "Fetching NASA data for %s to %s at [%s, %s]",
            start_date.isoformat(),
            end_date.isoformat(),
            latitude,
            longitude,
        )
        return await self._get_json(HOURLY_POINT_PATH, params=params)

    async def check_connectivity(self) -> dict:
        try:
            await self.fetch(0, 0, CONNECTIVITY_PROBE_DATE, CONNECTIVITY_PROBE_DATE, ["T2M"])
        except UpstreamError as exc:
            return {
                "status": "disconnected",
                "message": "NASA POWER API is not accessible",
                "error": exc.message,
            }
        return {"status": "connected", "message": "NASA POWER API is accessible"}

    async def _get_json(self, path: str, *, params: dict[str, Any]) -> dict:
        attempts = max(1, self.settings.retry_attempts)
        last_error: UpstreamError = UpstreamUnavailable()

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.get(path, params=params)
            except httpx.TimeoutException as exc:
                last_error = UpstreamTimeout(reason=str(exc) or type(exc).__name__)
            except httpx.RequestError as exc:
                last_error = UpstreamUnavailable(
                    "Unable to connect to NASA POWER API",
                    reason=str(exc) or type(exc).__name__,
                )
            else:
                status_code = response.status_code
                if status_code == 429:
                    raise UpstreamRateLimited()
                if 400 <= status_code < 500:
                    raise UpstreamBadRequest(upstream_status=status_code)
                if status_code == 200:
                    try:
                        return response.json()
                    except ValueError:
                        last_error = UpstreamUnavailable(
                            "NASA POWER API returned an unreadable body",
                            upstream_status=status_code,
                        )
                else:
                    last_error = UpstreamUnavailable(
                        UPSTREAM_STATUS_MESSAGES.get(status_code, f"NASA POWER API error ({status_code})"),
                        upstream_status=status_code,
                    )

            if attempt < attempts:
                delay = self.settings.retry_delay_seconds * attempt
                logger.warning(
                    "NASA POWER request attempt %s/%s failed (%s), retrying in %.2fs",
                    attempt,
                    attempts,
                    last_error.message,
                    delay,
                )
                await asyncio.sleep(delay)

        logger.error("NASA POWER request failed after %s attempts: %s", attempts, last_error.message)
        raise last_error


def connection_limits(settings: Settings) -> httpx.Limits:
    # every bulk item may fan out to max_historical_years concurrent calls
    max_connections = settings.bulk_concurrency * settings.max_historical_years
    return httpx.Limits(max_connections=max_connections, max_keepalive_connections=min(max_connections, 50))


def format_api_date(value: date) -> str:
    return value.strftime("%Y%m%d")
