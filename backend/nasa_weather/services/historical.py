from __future__ import annotations

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Sequence

from nasa_weather.errors import AllHistoricalYearsFailed, WeatherApiError
from nasa_weather.services.power_client import PowerClient
from nasa_weather.services.power_data import PowerDataset, YearDataset, parse_power_payload


logger = logging.getLogger("nasa_weather.historical")


@dataclass
class HistoricalFetcher:
    """Fetches the same calendar day across the previous ``years_count`` years.

    Every year is requested concurrently and settles on its own; a failing year
    is recorded on its ``YearDataset`` instead of cancelling the others. Only
    the case where no year succeeds is raised, as ``AllHistoricalYearsFailed``.
    """

    client: PowerClient
    fill_value: float
    degraded_success_ratio: float = 0.7
    clock: Callable[[], date] = field(default=date.today)

    async def fetch_years(
        self,
        latitude: float,
        longitude: float,
        target_date: date,
        years_count: int,
        parameters: Sequence[str],
    ) -> list[YearDataset]:
        current_year = self.clock().year
        years = [current_year - offset for offset in range(1, years_count + 1)]
        logger.info("Fetching %s years of historical data for %s", years_count, target_date.isoformat())

        outcomes = await asyncio.gather(
            *(
                self._fetch_year(latitude, longitude, same_day_in_year(target_date, year), parameters)
                for year in years
            ),
            return_exceptions=True,
        )

        results: list[YearDataset] = []
        failures: list[tuple[int, str]] = []
        for year, outcome in zip(years, outcomes):
            if isinstance(outcome, BaseException):
                reason = _describe_failure(outcome)
                logger.warning("Failed to fetch data for year %s: %s", year, reason)
                failures.append((year, reason))
                results.append(YearDataset(year=year, error=reason))
                continue
            results.append(YearDataset(year=year, data=outcome))

        succeeded = len(results) - len(failures)
        if succeeded == 0:
            raise AllHistoricalYearsFailed(failures)
        if succeeded < years_count * self.degraded_success_ratio:
            logger.warning("Only %s out of %s years of data available", succeeded, years_count)

        return results

    async def _fetch_year(
        self, latitude: float, longitude: float, day: date, parameters: Sequence[str]
    ) -> PowerDataset:
        payload = await self.client.fetch(latitude, longitude, day, day, parameters)
        return parse_power_payload(payload, fill_value=self.fill_value)


def same_day_in_year(target_date: date, year: int) -> date:
    day = target_date.day
    if target_date.month == 2 and day == 29 and not calendar.isleap(year):
        day = 28
    return date(year, target_date.month, day)


def _describe_failure(exc: BaseException) -> str:
    if isinstance(exc, WeatherApiError):
        return exc.message
    return str(exc) or type(exc).__name__
