from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, NamedTuple

from nasa_weather.errors import UpstreamUnavailable


HOURS_PER_DAY = 24


class HourlyValue(NamedTuple):
    day: date
    hour: int
    value: float | None


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    elevation: float | None = None


@dataclass(frozen=True)
class PowerDataset:
    """Hourly NASA POWER data with fill values already mapped to ``None``."""

    location: Location
    series: dict[str, tuple[HourlyValue, ...]]
    units: dict[str, str] = field(default_factory=dict)
    source: str = "NASA POWER API"
    version: str = "unknown"
    fill_value: float = -999.0
    time_standard: str = "LST"

    def day_series(self, parameter: str, day: date) -> list[float | None]:
        values: list[float | None] = [None] * HOURS_PER_DAY
        seen: set[int] = set()
        for entry in self.series.get(parameter, ()):
            if entry.day != day or entry.hour in seen:
                continue
            seen.add(entry.hour)
            values[entry.hour] = entry.value
        return values

    def first_value_at_hour(self, parameter: str, hour: int) -> float | None:
        for entry in self.series.get(parameter, ()):
            if entry.hour == hour:
                return entry.value
        return None


@dataclass(frozen=True)
class YearDataset:
    year: int
    data: PowerDataset | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.data is not None


def hour_key(day: date, hour: int) -> str:
    return f"{day.strftime('%Y%m%d')}{hour:02d}"


def parse_hour_key(stamp: object) -> tuple[date, int] | None:
    if not isinstance(stamp, str) or len(stamp) != 10 or not stamp.isdigit():
        return None
    try:
        parsed = datetime.strptime(stamp[:8], "%Y%m%d").date()
    except ValueError:
        return None
    hour = int(stamp[8:])
    if hour >= HOURS_PER_DAY:
        return None
    return parsed, hour


def parse_power_payload(payload: Any, *, fill_value: float) -> PowerDataset:
    if not isinstance(payload, dict):
        raise UpstreamUnavailable("NASA POWER API returned an unexpected payload")

    properties = payload.get("properties")
    parameter_block = properties.get("parameter") if isinstance(properties, dict) else None
    if not isinstance(parameter_block, dict):
        raise UpstreamUnavailable("NASA POWER API response has no parameter data")

    header = payload.get("header") if isinstance(payload.get("header"), dict) else {}
    payload_fill = _as_float(header.get("fill_value"))
    effective_fill = fill_value if payload_fill is None else payload_fill

    series: dict[str, tuple[HourlyValue, ...]] = {}
    for name, raw_values in parameter_block.items():
        if not isinstance(raw_values, dict):
            continue
        entries: list[HourlyValue] = []
        for stamp, raw in raw_values.items():
            parsed_key = parse_hour_key(stamp)
            if parsed_key is None:
                continue
            day, hour = parsed_key
            entries.append(HourlyValue(day, hour, _valid_value(raw, effective_fill)))
        entries.sort(key=lambda entry: (entry.day, entry.hour))
        series[name] = tuple(entries)

    parameter_info = payload.get("parameters") if isinstance(payload.get("parameters"), dict) else {}
    units = {
        name: str(info["units"])
        for name, info in parameter_info.items()
        if isinstance(info, dict) and info.get("units") is not None
    }

    api_info = header.get("api") if isinstance(header.get("api"), dict) else {}
    return PowerDataset(
        location=_parse_location(payload.get("geometry")),
        series=series,
        units=units,
        source=str(api_info.get("name") or "NASA POWER API"),
        version=str(api_info.get("version") or "unknown"),
        fill_value=effective_fill,
        time_standard=str(header.get("time_standard") or "LST"),
    )


def _parse_location(geometry: object) -> Location:
    coordinates = geometry.get("coordinates") if isinstance(geometry, dict) else None
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 2:
        raise UpstreamUnavailable("NASA POWER API response has no coordinates")
    longitude = _as_float(coordinates[0])
    latitude = _as_float(coordinates[1])
    if latitude is None or longitude is None:
        raise UpstreamUnavailable("NASA POWER API response has invalid coordinates")
    elevation = _as_float(coordinates[2]) if len(coordinates) > 2 else None
    return Location(latitude=latitude, longitude=longitude, elevation=elevation)


def _valid_value(value: object, fill_value: float) -> float | None:
    if isinstance(value, bool):
        return None
    parsed = _as_float(value)
    if parsed is None or math.isnan(parsed) or parsed == fill_value:
        return None
    return parsed


def _as_float(value: object) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
