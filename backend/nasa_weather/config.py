from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_PARAMETERS = ("T2M", "RH2M", "WS10M", "WD10M", "PS", "ALLSKY_SFC_SW_DWN")


@dataclass(frozen=True)
class Settings:
    app_name: str = "NASA Weather Data API"
    app_version: str = "1.0.0"
    environment: str = "development"
    log_level: str = "INFO"
    nasa_power_base_url: str = "https://power.larc.nasa.gov/api"
    nasa_power_community: str = "AG"
    request_timeout_seconds: float = 30.0
    server_timeout_seconds: float = 60.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    data_delay_days: int = 4
    default_historical_years: int = 20
    min_historical_years: int = 5
    max_historical_years: int = 30
    default_parameters: tuple[str, ...] = DEFAULT_PARAMETERS
    max_parameters_per_request: int = 20
    fill_value: float = -999.0
    min_date: str = "1981-01-01"
    max_future_years: int = 10
    max_bulk_requests: int = 10
    bulk_concurrency: int = 10
    degraded_success_ratio: float = 0.7
    rate_limit_window_seconds: float = 900.0
    rate_limit_max_requests: int = 100
    gzip_minimum_size: int = 1000
    frontend_origins: tuple[str, ...] = ("*",)


def get_settings() -> Settings:
    origins_raw = os.getenv("CORS_ORIGINS", "").strip()
    parameters_raw = os.getenv("DEFAULT_PARAMETERS", "").strip()
    base_url_raw = os.getenv("NASA_POWER_API_BASE_URL", "").strip()
    community_raw = os.getenv("NASA_POWER_COMMUNITY", "").strip()
    environment_raw = os.getenv("APP_ENV", "").strip()
    log_level_raw = os.getenv("LOG_LEVEL", "").strip()

    parsed_origins = tuple(item.strip() for item in origins_raw.split(",") if item.strip())
    parsed_parameters = tuple(item.strip().upper() for item in parameters_raw.split(",") if item.strip())

    timeout_seconds = _env_float("NASA_POWER_API_TIMEOUT", Settings.request_timeout_seconds)
    retry_attempts = _env_int("NASA_POWER_RETRY_ATTEMPTS", Settings.retry_attempts)
    retry_delay_seconds = _env_float("NASA_POWER_RETRY_DELAY", Settings.retry_delay_seconds)
    data_delay_days = _env_int("NASA_DATA_DELAY_DAYS", Settings.data_delay_days)
    min_years = _env_int("MIN_HISTORICAL_YEARS", Settings.min_historical_years)
    max_years = _env_int("MAX_HISTORICAL_YEARS", Settings.max_historical_years)
    default_years = _env_int("DEFAULT_HISTORICAL_YEARS", Settings.default_historical_years)
    server_timeout_ms = _env_float("REQUEST_TIMEOUT", Settings.server_timeout_seconds * 1000)
    rate_window_ms = _env_float("RATE_LIMIT_WINDOW_MS", Settings.rate_limit_window_seconds * 1000)
    rate_max_requests = _env_int("RATE_LIMIT_MAX_REQUESTS", Settings.rate_limit_max_requests)

    min_years = max(1, min_years)
    max_years = max(min_years, max_years)

    return Settings(
        environment=environment_raw or Settings.environment,
        log_level=(log_level_raw or Settings.log_level).upper(),
        nasa_power_base_url=(base_url_raw or Settings.nasa_power_base_url).rstrip("/"),
        nasa_power_community=community_raw or Settings.nasa_power_community,
        request_timeout_seconds=max(1.0, timeout_seconds),
        server_timeout_seconds=max(1.0, server_timeout_ms / 1000),
        retry_attempts=max(1, retry_attempts),
        retry_delay_seconds=max(0.0, retry_delay_seconds),
        data_delay_days=max(0, data_delay_days),
        default_historical_years=min(max_years, max(min_years, default_years)),
        min_historical_years=min_years,
        max_historical_years=max_years,
        default_parameters=parsed_parameters or Settings.default_parameters,
        rate_limit_window_seconds=max(1.0, rate_window_ms / 1000),
        rate_limit_max_requests=max(1, rate_max_requests),
        frontend_origins=parsed_origins or Settings.frontend_origins,
    )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default
