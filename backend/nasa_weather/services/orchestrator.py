from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Sequence

from nasa_weather.config import Settings
from nasa_weather.errors import WeatherApiError
from nasa_weather.schemas import WeatherRequestItem, WeatherResult
from nasa_weather.services.historical import HistoricalFetcher
from nasa_weather.services.power_client import PowerClient
from nasa_weather.services.power_data import parse_power_payload
from nasa_weather.services.prediction import PredictionAggregator
from nasa_weather.services.weather_data import build_weather_result


logger = logging.getLogger("nasa_weather.orchestrator")


class FetchMode(str, enum.Enum):
    HISTORICAL = "historical"
    PREDICTION = "prediction"


@dataclass(frozen=True)
class BulkOutcome:
    results: list[WeatherResult]
    errors: list[dict]

    @property
    def total(self) -> int:
        return len(self.results) + len(self.errors)

    def to_response(self) -> dict:
        return {
            "totalRequests": self.total,
            "successfulRequests": len(self.results),
            "failedRequests": len(self.errors),
            "results": [result.to_response() for result in self.results],
            "errors": self.errors,
        }


@dataclass
class WeatherOrchestrator:
    """Routes each request to real NASA POWER data or a historical-average prediction.

    NASA POWER lags real time by ``settings.data_delay_days``; anything on or
    after ``today - data_delay_days`` is predicted, even dates in the past.
    """

    settings: Settings
    client: PowerClient
    fetcher: HistoricalFetcher
    aggregator: PredictionAggregator
    clock: Callable[[], date] = field(default=date.today)

    def cutoff_date(self) -> date:
        return self.clock() - timedelta(days=self.settings.data_delay_days)

    def select_mode(self, request_date: date) -> FetchMode:
        if request_date < self.cutoff_date():
            return FetchMode.HISTORICAL
        return FetchMode.PREDICTION

    async def get_weather(
        self,
        latitude: float,
        longitude: float,
        request_date: date,
        parameters: Sequence[str],
        historical_years: int,
    ) -> WeatherResult:
        mode = self.select_mode(request_date)
        logger.info(
            "Processing %s request for [%s, %s] on %s",
            mode.value,
            latitude,
            longitude,
            request_date.isoformat(),
        )
        if mode is FetchMode.HISTORICAL:
            return await self._fetch_historical(latitude, longitude, request_date, parameters)
        return await self._generate_prediction(latitude, longitude, request_date, parameters, historical_years)

    async def get_bulk(self, items: Sequence[WeatherRequestItem], historical_years: int) -> BulkOutcome:
        semaphore = asyncio.Semaphore(self.settings.bulk_concurrency)

        async def run(index: int, item: WeatherRequestItem) -> tuple[int, WeatherResult | None, dict | None]:
            async with semaphore:
                try:
                    result = await self.get_weather(
                        item.latitude,
                        item.longitude,
                        item.target_date,
                        item.parameters,
                        historical_years,
                    )
                except WeatherApiError as exc:
                    logger.warning("Bulk request %s failed: %s", index, exc.message)
                    return index, None, {"code": exc.code, "message": exc.message}
                except Exception as exc:
                    logger.exception("Bulk request %s failed unexpectedly", index)
                    return index, None, {"code": "PROCESSING_ERROR", "message": str(exc)}
                return index, result, None

        logger.info("Processing bulk request with %s locations", len(items))
        settled = await asyncio.gather(*(run(index, item) for index, item in enumerate(items)))

        results = [result for _, result, _ in settled if result is not None]
        errors = [{"index": index, "error": error} for index, _, error in settled if error is not None]
        return BulkOutcome(results=results, errors=errors)

    def historical_range(self, latitude: float, longitude: float) -> dict:
        today = self.clock()
        return {
            "location": {"latitude": latitude, "longitude": longitude},
            "historicalRange": {
                "startDate": self.settings.min_date,
                "endDate": today.isoformat(),
            },
            "predictionRange": {
                "startDate": (today + timedelta(days=1)).isoformat(),
                "endDate": (today + timedelta(days=self.settings.max_future_years * 365)).isoformat(),
            },
            "dataAvailableUntil": (self.cutoff_date() - timedelta(days=1)).isoformat(),
        }

    async def _fetch_historical(
        self, latitude: float, longitude: float, request_date: date, parameters: Sequence[str]
    ) -> WeatherResult:
        payload = await self.client.fetch(latitude, longitude, request_date, request_date, parameters)
        dataset = parse_power_payload(payload, fill_value=self.settings.fill_value)
        return build_weather_result(dataset, request_date, parameters, "historical")

    async def _generate_prediction(
        self,
        latitude: float,
        longitude: float,
        target_date: date,
        parameters: Sequence[str],
        historical_years: int,
    ) -> WeatherResult:
        year_datasets = await self.fetcher.fetch_years(latitude, longitude, target_date, historical_years, parameters)
        prediction, metadata = self.aggregator.aggregate(year_datasets, target_date, parameters)
        return build_weather_result(prediction, target_date, parameters, "prediction", metadata)


def build_orchestrator(settings: Settings, client: PowerClient, clock: Callable[[], date] = date.today) -> WeatherOrchestrator:
    return WeatherOrchestrator(
        settings=settings,
        client=client,
        fetcher=HistoricalFetcher(
            client=client,
            fill_value=settings.fill_value,
            degraded_success_ratio=settings.degraded_success_ratio,
            clock=clock,
        ),
        aggregator=PredictionAggregator(fill_value=settings.fill_value),
        clock=clock,
    )
