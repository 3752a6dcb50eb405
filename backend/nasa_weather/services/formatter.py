from __future__ import annotations

from datetime import datetime, timezone
from time import perf_counter

from nasa_weather.errors import WeatherApiError
from nasa_weather.schemas import WeatherResult


def utc_timestamp() -> str:
    return datetime.now(tz=timezone.utc).isoformat().replace("+00:00", "Z")


def elapsed_ms(started_at: float) -> int:
    return int(round((perf_counter() - started_at) * 1000))


def success_envelope(data: object, started_at: float | None = None) -> dict:
    envelope = {"success": True, "data": data, "requestTimestamp": utc_timestamp()}
    if started_at is not None:
        envelope["processingTime"] = elapsed_ms(started_at)
    return envelope


def error_envelope(error: WeatherApiError) -> dict:
    return {"success": False, "error": error.to_dict(), "requestTimestamp": utc_timestamp()}


def csv_filename(request_date: str, latitude: float, longitude: float) -> str:
    return f"weather_{request_date}_{latitude}_{longitude}.csv"


def to_csv(result: WeatherResult) -> str:
    lines = [
        "# NASA Weather Data Export",
        f"# Location: {result.location.latitude}, {result.location.longitude}",
        f"# Date: {result.date}",
        f"# Data Type: {result.data_type}",
        "",
        "Parameter,Min,Max,Mean,Units",
    ]
    for parameter in result.parameters:
        stats = result.daily_aggregates.get(parameter)
        if stats is None:
            continue
        lines.append(f"{parameter},{stats.min},{stats.max},{stats.mean},{stats.units}")

    lines.append("")
    lines.append("# Hourly Data")
    lines.append(",".join(["Hour", *result.parameters]))

    hourly_columns = [list(result.hourly_data.get(parameter, {}).values()) for parameter in result.parameters]
    for hour in range(24):
        row = [f"{hour:02d}"]
        for column in hourly_columns:
            row.append(str(column[hour]) if hour < len(column) else "N/A")
        lines.append(",".join(row))

    return "\n".join(lines)
