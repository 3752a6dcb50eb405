from __future__ import annotations

import re
from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel

from nasa_weather.config import Settings


FLEXIBLE_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")

VALID_PARAMETERS = (
    "T2M",
    "RH2M",
    "WS10M",
    "WD10M",
    "PS",
    "ALLSKY_SFC_SW_DWN",
    "PRECTOTCORR",
    "T2MDEW",
    "CLRSKY_SFC_SW_DWN",
    "ALLSKY_SFC_LW_DWN",
    "T2M_MAX",
    "T2M_MIN",
    "T2M_RANGE",
    "WS2M",
    "WS50M",
    "ALLSKY_TOA_SW_DWN",
    "CLRSKY_SFC_LW_DWN",
)

PARAMETER_INFO = {
    "T2M": {"units": "C", "longname": "Temperature at 2 Meters"},
    "RH2M": {"units": "%", "longname": "Relative Humidity at 2 Meters"},
    "WS10M": {"units": "m/s", "longname": "Wind Speed at 10 Meters"},
    "WD10M": {"units": "Degrees", "longname": "Wind Direction at 10 Meters"},
    "PS": {"units": "kPa", "longname": "Surface Pressure"},
    "ALLSKY_SFC_SW_DWN": {"units": "MJ/hr", "longname": "All Sky Surface Shortwave Downward Irradiance"},
    "PRECTOTCORR": {"units": "mm/day", "longname": "Precipitation Corrected"},
    "T2MDEW": {"units": "C", "longname": "Dew Point Temperature at 2 Meters"},
    "CLRSKY_SFC_SW_DWN": {"units": "MJ/hr", "longname": "Clear Sky Surface Shortwave Downward Irradiance"},
    "ALLSKY_SFC_LW_DWN": {"units": "MJ/hr", "longname": "All Sky Surface Longwave Downward Irradiance"},
}


def normalize_date_string(value: str, *, settings: Settings, today: date | None = None) -> str:
    """Zero-pad ``YYYY-M-D`` input and check it falls inside the supported window."""
    match = FLEXIBLE_DATE_PATTERN.match(value.strip())
    if match is None:
        raise ValueError("Date must be in YYYY-MM-DD format (e.g., 2025-10-03 or 2025-1-1)")

    year, month, day = match.groups()
    normalized = f"{year}-{month.zfill(2)}-{day.zfill(2)}"
    try:
        parsed = date.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError("Invalid date provided (e.g., February 30th does not exist)") from exc

    reference = today or date.today()
    min_date = date.fromisoformat(settings.min_date)
    max_date = _add_years(reference, settings.max_future_years)
    if parsed < min_date or parsed > max_date:
        raise ValueError(f"Date must be between {min_date.isoformat()} and {max_date.isoformat()}")
    return normalized


def parse_parameter_list(value: str | None, *, settings: Settings) -> list[str]:
    if value is None or not value.strip():
        return list(settings.default_parameters)

    requested = [item.strip() for item in value.split(",") if item.strip()]
    unique = list(dict.fromkeys(requested))
    if not unique:
        return list(settings.default_parameters)
    if len(unique) > settings.max_parameters_per_request:
        raise ValueError(f"Maximum {settings.max_parameters_per_request} parameters allowed")

    invalid = [item for item in unique if item not in VALID_PARAMETERS]
    if invalid:
        raise ValueError(f"Invalid parameters: {', '.join(invalid)}")
    return unique


def _settings_from(info: ValidationInfo) -> Settings:
    context = info.context or {}
    return context.get("settings") or Settings()


def _today_from(info: ValidationInfo) -> date | None:
    context = info.context or {}
    return context.get("today")


def _add_years(value: date, years: int) -> date:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


class LocationQuery(BaseModel):
    model_config = ConfigDict(extra="ignore")

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class WeatherRequestItem(LocationQuery):
    date: str
    parameters: list[str] = Field(default_factory=list)

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, value: Any, info: ValidationInfo) -> str:
        if not isinstance(value, str):
            raise ValueError("Date must be a string in YYYY-MM-DD format")
        return normalize_date_string(value, settings=_settings_from(info), today=_today_from(info))

    @field_validator("parameters", mode="before")
    @classmethod
    def validate_parameters(cls, value: Any, info: ValidationInfo) -> list[str]:
        if isinstance(value, (list, tuple)):
            value = ",".join(str(item) for item in value)
        if value is not None and not isinstance(value, str):
            raise ValueError("Parameters must be a comma-separated string")
        return parse_parameter_list(value, settings=_settings_from(info))

    @model_validator(mode="before")
    @classmethod
    def default_parameters(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("parameters") is None:
            data = {**data, "parameters": ""}
        return data

    @property
    def target_date(self) -> date:
        return date.fromisoformat(self.date)


class WeatherDataQuery(WeatherRequestItem):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    historical_years: int | None = Field(default=None, alias="historicalYears")
    format: Literal["json", "csv"] = "json"

    @model_validator(mode="after")
    def validate_historical_years(self, info: ValidationInfo) -> "WeatherDataQuery":
        self.historical_years = _check_historical_years(self.historical_years, _settings_from(info))
        return self


class BulkWeatherRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    requests: list[WeatherRequestItem]
    historical_years: int | None = Field(default=None, alias="historicalYears")

    @model_validator(mode="after")
    def validate_bulk_limits(self, info: ValidationInfo) -> "BulkWeatherRequest":
        settings = _settings_from(info)
        if not self.requests:
            raise ValueError("At least one request is required")
        if len(self.requests) > settings.max_bulk_requests:
            raise ValueError(f"Maximum {settings.max_bulk_requests} requests allowed in bulk operation")
        self.historical_years = _check_historical_years(self.historical_years, settings)
        return self


def _check_historical_years(value: int | None, settings: Settings) -> int:
    if value is None:
        return settings.default_historical_years
    if value < settings.min_historical_years:
        raise ValueError(f"Historical years must be at least {settings.min_historical_years}")
    if value > settings.max_historical_years:
        raise ValueError(f"Historical years must be at most {settings.max_historical_years}")
    return value


class _ResponseModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class LocationOut(_ResponseModel):
    latitude: float
    longitude: float
    elevation: float | None = None


class DailyAggregate(_ResponseModel):
    min: float
    max: float
    mean: float
    units: str
    confidence: str | None = None
    standard_deviation: float | None = None


class WeatherMetadata(_ResponseModel):
    source: str
    version: str
    fill_value: float
    time_standard: str


class PredictionDetails(_ResponseModel):
    method: str = "arithmetic_mean"
    years_used: int
    total_data_points: int
    missing_years: list[int]
    date_range: str
    reliability: Literal["high", "medium", "low", "very_low"]


class WeatherResult(_ResponseModel):
    location: LocationOut
    date: str
    data_type: Literal["historical", "prediction"]
    parameters: list[str]
    hourly_data: dict[str, dict[str, float]]
    daily_aggregates: dict[str, DailyAggregate]
    metadata: WeatherMetadata
    prediction_method: str | None = None
    historical_years_used: int | None = None
    historical_date_range: str | None = None
    prediction_metadata: PredictionDetails | None = None

    def to_response(self) -> dict:
        payload = self.model_dump(by_alias=True, exclude_none=True)
        # elevation is reported as null rather than dropped
        payload["location"] = self.location.model_dump(by_alias=True)
        return payload
