from __future__ import annotations

from datetime import date
from statistics import mean, pstdev
from typing import Literal, Sequence

from nasa_weather.schemas import (
    DailyAggregate,
    LocationOut,
    PredictionDetails,
    WeatherMetadata,
    WeatherResult,
)
from nasa_weather.services.power_data import HOURS_PER_DAY, PowerDataset, hour_key
from nasa_weather.services.prediction import PredictionMetadata


def summarize_values(values: Sequence[float | None]) -> tuple[float, float, float] | None:
    valid = [value for value in values if value is not None]
    if not valid:
        return None
    return round(min(valid), 2), round(max(valid), 2), round(mean(valid), 2)


def population_std(values: Sequence[float | None]) -> float:
    valid = [value for value in values if value is not None]
    if len(valid) <= 1:
        return 0.0
    return pstdev(valid)


def confidence_label(available_points: int, total_points: int) -> str:
    if total_points <= 0:
        return "very_low"
    ratio = available_points / total_points
    if ratio >= 0.9:
        return "high"
    if ratio >= 0.7:
        return "medium"
    if ratio >= 0.5:
        return "low"
    return "very_low"


def build_weather_result(
    dataset: PowerDataset,
    request_date: date,
    parameters: Sequence[str],
    data_type: Literal["historical", "prediction"] = "historical",
    prediction: PredictionMetadata | None = None,
) -> WeatherResult:
    """Reshape one day of hourly data into the response entity.

    Hourly series always carry 24 entries for ``request_date``; hours without
    data are written as the dataset's fill value. Daily aggregates skip those
    hours and are omitted entirely for a parameter with no valid hour.
    """
    hourly_data: dict[str, dict[str, float]] = {}
    daily_aggregates: dict[str, DailyAggregate] = {}

    for parameter in parameters:
        values = dataset.day_series(parameter, request_date)
        hourly_data[parameter] = {
            hour_key(request_date, hour): dataset.fill_value if value is None else value
            for hour, value in zip(range(HOURS_PER_DAY), values)
        }

        summary = summarize_values(values)
        if summary is None:
            continue
        low, high, average = summary
        aggregate: dict = {
            "min": low,
            "max": high,
            "mean": average,
            "units": dataset.units.get(parameter, "unknown"),
        }
        if data_type == "prediction" and prediction is not None:
            aggregate["confidence"] = confidence_label(
                prediction.samples_used.get(parameter, 0),
                prediction.total_data_points,
            )
            aggregate["standard_deviation"] = round(population_std(values), 2)
        daily_aggregates[parameter] = DailyAggregate(**aggregate)

    result: dict = {
        "location": LocationOut(
            latitude=dataset.location.latitude,
            longitude=dataset.location.longitude,
            elevation=dataset.location.elevation,
        ),
        "date": request_date.isoformat(),
        "data_type": data_type,
        "parameters": list(parameters),
        "hourly_data": hourly_data,
        "daily_aggregates": daily_aggregates,
        "metadata": WeatherMetadata(
            source=dataset.source,
            version=dataset.version,
            fill_value=dataset.fill_value,
            time_standard=dataset.time_standard,
        ),
    }
    if data_type == "prediction" and prediction is not None:
        result.update(
            prediction_method="historical_average",
            historical_years_used=prediction.years_used,
            historical_date_range=prediction.date_range,
            prediction_metadata=PredictionDetails(
                years_used=prediction.years_used,
                total_data_points=prediction.total_data_points,
                missing_years=list(prediction.missing_years),
                date_range=prediction.date_range,
                reliability=prediction.reliability,
            ),
        )
    return WeatherResult(**result)
