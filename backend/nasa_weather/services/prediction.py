from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from statistics import mean
from typing import Sequence

from nasa_weather.services.power_data import (
    HOURS_PER_DAY,
    HourlyValue,
    Location,
    PowerDataset,
    YearDataset,
)


logger = logging.getLogger("nasa_weather.prediction")

PREDICTION_SOURCE = "NASA Weather Prediction API"
PREDICTION_VERSION = "1.0.0"


@dataclass(frozen=True)
class PredictionMetadata:
    years_used: int
    total_data_points: int
    missing_years: list[int]
    date_range: str
    samples_used: dict[str, int] = field(default_factory=dict)

    @property
    def reliability(self) -> str:
        return reliability_label(self.years_used, self.total_data_points)


@dataclass
class PredictionAggregator:
    fill_value: float = -999.0

    def aggregate(
        self,
        year_datasets: Sequence[YearDataset],
        target_date: date,
        parameters: Sequence[str],
    ) -> tuple[PowerDataset, PredictionMetadata]:
        available = [item for item in year_datasets if item.ok]
        logger.info(
            "Calculating prediction for %s using %s years of data",
            target_date.isoformat(),
            len(available),
        )

        series: dict[str, tuple[HourlyValue, ...]] = {}
        samples_used: dict[str, int] = {}
        for parameter in parameters:
            hourly: list[HourlyValue] = []
            used = 0
            for hour in range(HOURS_PER_DAY):
                values = _collect_hour_values(available, parameter, hour)
                used += len(values)
                predicted = round(mean(values), 2) if values else None
                hourly.append(HourlyValue(target_date, hour, predicted))
            series[parameter] = tuple(hourly)
            samples_used[parameter] = used

        first = available[0].data if available else None
        prediction = PowerDataset(
            location=first.location if first else Location(0.0, 0.0, 0.0),
            series=series,
            units=dict(first.units) if first else {},
            source=PREDICTION_SOURCE,
            version=PREDICTION_VERSION,
            fill_value=self.fill_value,
            time_standard="LST",
        )

        valid_years = [item.year for item in available]
        metadata = PredictionMetadata(
            years_used=len(valid_years),
            total_data_points=len(valid_years) * HOURS_PER_DAY * len(parameters),
            missing_years=[item.year for item in year_datasets if not item.ok],
            date_range=_date_range(valid_years, target_date),
            samples_used=samples_used,
        )
        return prediction, metadata


def reliability_label(years_used: int, total_data_points: int) -> str:
    if years_used >= 15 and total_data_points > 0:
        return "high"
    if years_used >= 10:
        return "medium"
    if years_used >= 5:
        return "low"
    return "very_low"


def _collect_hour_values(available: Sequence[YearDataset], parameter: str, hour: int) -> list[float]:
    values: list[float] = []
    for item in available:
        value = item.data.first_value_at_hour(parameter, hour)
        if value is not None:
            values.append(value)
    return values


def _date_range(years: list[int], target_date: date) -> str:
    if not years:
        return ""
    month_day = target_date.strftime("%m-%d")
    return f"{min(years)}-{month_day} to {max(years)}-{month_day}"
