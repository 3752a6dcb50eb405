from datetime import date

import pytest

from nasa_weather.services.power_data import YearDataset, parse_power_payload
from nasa_weather.services.prediction import PredictionAggregator, reliability_label
from nasa_weather.services.weather_data import build_weather_result, confidence_label, population_std

from power_payloads import FILL, hourly, make_power_payload


TARGET = date(2030, 6, 15)


def _year(year: int, parameters: dict) -> YearDataset:
    payload = make_power_payload(date(year, 6, 15), parameters)
    return YearDataset(year=year, data=parse_power_payload(payload, fill_value=FILL))


def _failed(year: int) -> YearDataset:
    return YearDataset(year=year, error="NASA POWER API request timed out")


def test_hour_mean_skips_fill_values() -> None:
    datasets = [
        _year(2029, {"T2M": hourly(10.0)}),
        _year(2028, {"T2M": hourly(12.0)}),
        _year(2027, {"T2M": hourly(FILL)}),
    ]

    prediction, metadata = PredictionAggregator(fill_value=FILL).aggregate(datasets, TARGET, ["T2M"])
    result = build_weather_result(prediction, TARGET, ["T2M"], "prediction", metadata)

    assert result.hourly_data["T2M"]["2030061500"] == 11.0
    assert metadata.samples_used["T2M"] == 2
    assert metadata.total_data_points == 3 * 24 * 1
    assert result.daily_aggregates["T2M"].confidence == confidence_label(2, 72)
    assert result.daily_aggregates["T2M"].confidence == "very_low"


def test_hour_with_no_valid_values_propagates_fill() -> None:
    datasets = [_year(year, {"T2M": hourly(FILL, 5.0)}) for year in (2029, 2028, 2027)]

    prediction, metadata = PredictionAggregator(fill_value=FILL).aggregate(datasets, TARGET, ["T2M"])
    result = build_weather_result(prediction, TARGET, ["T2M"], "prediction", metadata)

    assert result.hourly_data["T2M"]["2030061500"] == FILL
    assert result.hourly_data["T2M"]["2030061501"] == 5.0
    # the fill hour must not drag the daily minimum down
    assert result.daily_aggregates["T2M"].min == 5.0


def test_mean_uses_exactly_the_valid_values_per_hour() -> None:
    datasets = [
        _year(2029, {"T2M": [0.0] * 5 + [1.0]}),
        _year(2028, {"T2M": [0.0] * 5 + [FILL]}),
        _year(2027, {"T2M": [0.0] * 5 + [2.5]}),
        _year(2026, {"T2M": [0.0] * 5 + ["n/a"]}),
        _year(2025, {"T2M": [0.0] * 5 + [3.0]}),
    ]

    prediction, metadata = PredictionAggregator(fill_value=FILL).aggregate(datasets, TARGET, ["T2M"])
    values = prediction.day_series("T2M", TARGET)

    assert values[5] == round((1.0 + 2.5 + 3.0) / 3, 2)
    assert values[0] == 0.0
    # hours 6-23 are absent from every year
    assert values[6:] == [None] * 18
    assert metadata.samples_used["T2M"] == 5 * 5 + 3


def test_hour_matching_ignores_the_historical_date_prefix() -> None:
    datasets = [
        _year(2029, {"RH2M": [float(hour) for hour in range(24)]}),
        _year(2020, {"RH2M": [float(hour) + 2 for hour in range(24)]}),
    ]

    prediction, _ = PredictionAggregator(fill_value=FILL).aggregate(datasets, TARGET, ["RH2M"])

    assert prediction.day_series("RH2M", TARGET) == [float(hour) + 1 for hour in range(24)]


def test_missing_years_and_date_range_reflect_failed_fetches() -> None:
    datasets = [
        _year(2029, {"T2M": 20.0}),
        _failed(2028),
        _year(2027, {"T2M": 22.0}),
        _failed(2026),
        _year(2025, {"T2M": 24.0}),
    ]

    prediction, metadata = PredictionAggregator(fill_value=FILL).aggregate(datasets, TARGET, ["T2M"])

    assert metadata.years_used == 3
    assert metadata.missing_years == [2028, 2026]
    assert metadata.date_range == "2025-06-15 to 2029-06-15"
    assert prediction.day_series("T2M", TARGET) == [22.0] * 24


def test_prediction_takes_location_and_units_from_first_successful_year() -> None:
    payload = make_power_payload(date(2028, 6, 15), {"PS": 101.3}, latitude=-33.9, longitude=18.4, units={"PS": "kPa"})
    datasets = [_failed(2029), YearDataset(year=2028, data=parse_power_payload(payload, fill_value=FILL))]

    prediction, _ = PredictionAggregator(fill_value=FILL).aggregate(datasets, TARGET, ["PS"])

    assert prediction.location.latitude == -33.9
    assert prediction.location.longitude == 18.4
    assert prediction.units["PS"] == "kPa"
    assert prediction.source == "NASA Weather Prediction API"


def test_eighteen_of_twenty_years_is_still_high_reliability() -> None:
    datasets = [
        _failed(year) if year in (2015, 2022) else _year(year, {"T2M": 15.0})
        for year in range(2029, 2009, -1)
    ]

    prediction, metadata = PredictionAggregator(fill_value=FILL).aggregate(datasets, TARGET, ["T2M"])
    result = build_weather_result(prediction, TARGET, ["T2M"], "prediction", metadata)

    assert metadata.years_used == 18
    assert len(metadata.missing_years) == 2
    assert result.prediction_metadata is not None
    assert result.prediction_metadata.reliability == "high"
    assert result.historical_years_used == 18
    assert result.prediction_method == "historical_average"


@pytest.mark.parametrize(
    ("years_used", "expected"),
    [(0, "very_low"), (4, "very_low"), (5, "low"), (9, "low"), (10, "medium"), (14, "medium"), (15, "high"), (30, "high")],
)
def test_reliability_thresholds(years_used: int, expected: str) -> None:
    assert reliability_label(years_used, years_used * 24 * 3) == expected


def test_reliability_requires_data_points_only_for_high() -> None:
    assert reliability_label(20, 0) == "medium"
    assert reliability_label(12, 0) == "medium"
    assert reliability_label(6, 0) == "low"


@pytest.mark.parametrize(
    ("available", "total", "expected"),
    [(90, 100, "high"), (89, 100, "medium"), (70, 100, "medium"), (50, 100, "low"), (49, 100, "very_low"), (5, 0, "very_low")],
)
def test_confidence_thresholds(available: int, total: int, expected: str) -> None:
    assert confidence_label(available, total) == expected


def test_population_standard_deviation() -> None:
    assert population_std([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]) == 2.0
    assert population_std([3.0, None]) == 0.0
    assert population_std([]) == 0.0


def test_prediction_daily_aggregates_include_spread() -> None:
    datasets = [
        _year(2029, {"T2M": [10.0, 20.0] + [FILL] * 22}),
        _year(2028, {"T2M": [10.0, 20.0] + [FILL] * 22}),
    ]

    prediction, metadata = PredictionAggregator(fill_value=FILL).aggregate(datasets, TARGET, ["T2M"])
    aggregate = build_weather_result(prediction, TARGET, ["T2M"], "prediction", metadata).daily_aggregates["T2M"]

    assert (aggregate.min, aggregate.max, aggregate.mean) == (10.0, 20.0, 15.0)
    assert aggregate.standard_deviation == 5.0
    assert aggregate.units == "C"


def test_historical_result_has_no_prediction_fields() -> None:
    payload = make_power_payload(date(2023, 1, 1), {"T2M": [1.0, 2.0, FILL] + [3.0] * 21})
    dataset = parse_power_payload(payload, fill_value=FILL)

    result = build_weather_result(dataset, date(2023, 1, 1), ["T2M"])
    response = result.to_response()

    assert response["dataType"] == "historical"
    assert len(response["hourlyData"]["T2M"]) == 24
    assert response["hourlyData"]["T2M"]["2023010102"] == FILL
    assert response["dailyAggregates"]["T2M"] == {"min": 1.0, "max": 3.0, "mean": 2.87, "units": "C"}
    assert response["location"] == {"latitude": 41.0, "longitude": 29.0, "elevation": 52.3}
    assert response["metadata"]["source"] == "POWER Hourly API"
    assert "predictionMetadata" not in response


def test_parameter_without_any_valid_hour_has_no_daily_aggregate() -> None:
    payload = make_power_payload(date(2023, 1, 1), {"T2M": 4.0, "RH2M": FILL})
    dataset = parse_power_payload(payload, fill_value=FILL)

    result = build_weather_result(dataset, date(2023, 1, 1), ["T2M", "RH2M"])

    assert set(result.daily_aggregates) == {"T2M"}
    assert list(result.hourly_data["RH2M"].values()) == [FILL] * 24
