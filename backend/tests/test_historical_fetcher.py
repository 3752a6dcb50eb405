import asyncio
import logging
from datetime import date

import pytest

from nasa_weather.errors import AllHistoricalYearsFailed, UpstreamTimeout, UpstreamUnavailable
from nasa_weather.services.historical import HistoricalFetcher, same_day_in_year
from nasa_weather.services.prediction import PredictionAggregator

from power_payloads import FILL, make_power_payload


class _FakePowerClient:
    def __init__(self, failing_years: dict[int, Exception] | None = None, delay: float = 0.0) -> None:
        self.failing_years = failing_years or {}
        self.delay = delay
        self.requested: list[date] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, latitude, longitude, start_date, end_date, parameters):  # noqa: ANN001
        self.requested.append(start_date)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            error = self.failing_years.get(start_date.year)
            if error is not None:
                raise error
            return make_power_payload(start_date, {name: float(start_date.year % 100) for name in parameters})
        finally:
            self.in_flight -= 1


def _fetcher(client: _FakePowerClient, today: date = date(2026, 10, 19)) -> HistoricalFetcher:
    return HistoricalFetcher(client=client, fill_value=FILL, clock=lambda: today)


@pytest.mark.anyio
async def test_fetches_same_day_for_each_previous_year() -> None:
    client = _FakePowerClient()

    results = await _fetcher(client).fetch_years(41.0, 29.0, date(2026, 11, 2), 5, ["T2M"])

    assert [item.year for item in results] == [2025, 2024, 2023, 2022, 2021]
    assert sorted(client.requested) == [date(year, 11, 2) for year in range(2021, 2026)]
    assert all(item.data is not None and item.error is None for item in results)


@pytest.mark.anyio
async def test_all_years_are_requested_concurrently() -> None:
    client = _FakePowerClient(delay=0.01)

    await _fetcher(client).fetch_years(41.0, 29.0, date(2026, 11, 2), 30, ["T2M"])

    assert client.max_in_flight == 30


@pytest.mark.anyio
async def test_partial_failures_are_recorded_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    client = _FakePowerClient(failing_years={2020: UpstreamTimeout(), 2011: UpstreamTimeout()})

    with caplog.at_level(logging.WARNING, logger="nasa_weather.historical"):
        results = await _fetcher(client).fetch_years(41.0, 29.0, date(2027, 3, 1), 20, ["T2M"])

    failed = [item for item in results if item.data is None]
    assert [item.year for item in failed] == [2020, 2011]
    assert all(item.error == "NASA POWER API request timed out" for item in failed)
    assert "Only" not in caplog.text

    _, metadata = PredictionAggregator(fill_value=FILL).aggregate(results, date(2027, 3, 1), ["T2M"])
    assert metadata.years_used == 18
    assert metadata.missing_years == [2020, 2011]
    assert metadata.reliability == "high"


@pytest.mark.anyio
async def test_unexpected_exceptions_are_isolated_per_year() -> None:
    client = _FakePowerClient(failing_years={2024: RuntimeError("boom")})

    results = await _fetcher(client).fetch_years(41.0, 29.0, date(2027, 3, 1), 5, ["T2M"])

    assert [item.error for item in results if item.data is None] == ["boom"]


@pytest.mark.anyio
async def test_degraded_coverage_logs_a_warning(caplog: pytest.LogCaptureFixture) -> None:
    failing = {year: UpstreamUnavailable() for year in (2025, 2024, 2023, 2022)}
    client = _FakePowerClient(failing_years=failing)

    with caplog.at_level(logging.WARNING, logger="nasa_weather.historical"):
        results = await _fetcher(client).fetch_years(41.0, 29.0, date(2027, 3, 1), 10, ["T2M"])

    assert sum(1 for item in results if item.data is not None) == 6
    assert "Only 6 out of 10 years of data available" in caplog.text


@pytest.mark.anyio
async def test_all_years_failing_raises_aggregate_error() -> None:
    failing = {year: UpstreamTimeout() for year in range(2006, 2026)}
    client = _FakePowerClient(failing_years=failing)

    with pytest.raises(AllHistoricalYearsFailed) as exc_info:
        await _fetcher(client).fetch_years(41.0, 29.0, date(2027, 3, 1), 20, ["T2M"])

    assert len(exc_info.value.failures) == 20
    assert exc_info.value.status_code == 502
    assert "Year 2025: NASA POWER API request timed out" in exc_info.value.message
    assert len(client.requested) == 20


def test_leap_day_maps_to_february_28_in_common_years() -> None:
    assert same_day_in_year(date(2028, 2, 29), 2023) == date(2023, 2, 28)
    assert same_day_in_year(date(2028, 2, 29), 2024) == date(2024, 2, 29)
    assert same_day_in_year(date(2028, 7, 4), 2001) == date(2001, 7, 4)


@pytest.mark.anyio
async def test_cancelled_year_is_recorded_as_a_failure() -> None:
    client = _FakePowerClient(failing_years={2025: asyncio.CancelledError()})

    results = await _fetcher(client).fetch_years(41.0, 29.0, date(2027, 3, 1), 5, ["T2M"])

    failed = [item for item in results if not item.ok]
    assert [(item.year, item.error) for item in failed] == [(2025, "CancelledError")]

    _, metadata = PredictionAggregator(fill_value=FILL).aggregate(results, date(2027, 3, 1), ["T2M"])
    assert metadata.years_used == 4
    assert metadata.missing_years == [2025]
