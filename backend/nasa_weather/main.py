from __future__ import annotations

import asyncio
import logging
from time import monotonic, perf_counter

from fastapi import FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from nasa_weather.config import get_settings
from nasa_weather.errors import (
    RateLimitExceeded,
    RequestTimedOut,
    RequestValidationFailed,
    RouteNotFound,
    WeatherApiError,
)
from nasa_weather.schemas import (
    PARAMETER_INFO,
    VALID_PARAMETERS,
    BulkWeatherRequest,
    LocationQuery,
    WeatherDataQuery,
)
from nasa_weather.services.formatter import csv_filename, error_envelope, success_envelope, to_csv, utc_timestamp
from nasa_weather.services.orchestrator import build_orchestrator
from nasa_weather.services.power_client import PowerClient
from nasa_weather.services.rate_limit import FixedWindowRateLimiter


settings = get_settings()

logger = logging.getLogger("nasa_weather")
if not logger.handlers:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

power_client = PowerClient(settings=settings)
orchestrator = build_orchestrator(settings, power_client)
started_at_monotonic = monotonic()

rate_limiter = FixedWindowRateLimiter(
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds,
)

app = FastAPI(title=settings.app_name, version=settings.app_version)


@app.middleware("http")
async def enforce_request_timeout(request: Request, call_next):
    timeout_seconds = settings.server_timeout_seconds
    try:
        return await asyncio.wait_for(call_next(request), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error("%s %s timed out after %.1fs", request.method, request.url.path, timeout_seconds)
        return _error_response(RequestTimedOut(timeout_seconds))


@app.middleware("http")
async def limit_api_requests(request: Request, call_next):
    if not request.url.path.startswith("/api/"):
        return await call_next(request)

    client_key = request.client.host if request.client else "anonymous"
    decision = rate_limiter.hit(client_key)
    if not decision.allowed:
        logger.warning("Rate limit exceeded for %s on %s", client_key, request.url.path)
        response = _error_response(RateLimitExceeded(decision.retry_after))
        response.headers["Retry-After"] = str(decision.retry_after)
        return response

    response = await call_next(request)
    response.headers["RateLimit-Limit"] = str(rate_limiter.max_requests)
    response.headers["RateLimit-Remaining"] = str(decision.remaining)
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = perf_counter()
    response = await call_next(request)
    dur_ms = (perf_counter() - start) * 1000.0
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, dur_ms)
    return response


app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_minimum_size)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.frontend_origins),
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await power_client.close()


@app.exception_handler(WeatherApiError)
async def weather_api_error_handler(request: Request, exc: WeatherApiError) -> JSONResponse:
    logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _validation_response(exc.errors())


@app.exception_handler(ValidationError)
async def model_validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _validation_response(exc.errors())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        error: WeatherApiError = RouteNotFound(request.method, request.url.path)
    else:
        error = WeatherApiError(str(exc.detail))
        error.status_code = exc.status_code
        error.code = "HTTP_ERROR"
    return _error_response(error)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if settings.environment == "development" else "An unexpected error occurred"
    error = WeatherApiError(message, details={"originalError": str(exc)} if settings.environment == "development" else {})
    return _error_response(error)


@app.get("/")
async def root() -> dict:
    return {
        "success": True,
        "message": settings.app_name,
        "version": settings.app_version,
        "endpoints": {
            "health": "/api/health",
            "weatherData": "/api/weather/data",
            "parameters": "/api/weather/parameters",
            "historicalRange": "/api/weather/historical-range",
            "bulk": "/api/weather/bulk",
        },
    }


@app.get("/api/health")
async def health() -> dict:
    start = perf_counter()
    nasa_status = await orchestrator.client.check_connectivity()
    response_time = int(round((perf_counter() - start) * 1000))
    return {
        "success": True,
        "status": "healthy",
        "timestamp": utc_timestamp(),
        "version": settings.app_version,
        "services": {
            "api": {"status": "operational", "responseTime": response_time},
            "nasaPowerApi": {
                "status": "operational" if nasa_status.get("status") == "connected" else "degraded",
                "message": nasa_status.get("message"),
                "error": nasa_status.get("error"),
            },
        },
        "uptime": round(monotonic() - started_at_monotonic, 3),
        "environment": settings.environment,
    }


@app.get("/api/weather/data")
async def weather_data(
    latitude: str | None = Query(default=None),
    longitude: str | None = Query(default=None),
    date: str | None = Query(default=None),
    parameters: str | None = Query(default=None),
    historical_years: str | None = Query(default=None, alias="historicalYears"),
    response_format: str | None = Query(default=None, alias="format"),
):
    started_at = perf_counter()
    raw = {
        "latitude": latitude,
        "longitude": longitude,
        "date": date,
        "parameters": parameters,
        "historicalYears": historical_years,
        "format": response_format or "json",
    }
    query = WeatherDataQuery.model_validate(
        {key: value for key, value in raw.items() if value is not None},
        context={"settings": settings},
    )

    result = await orchestrator.get_weather(
        latitude=query.latitude,
        longitude=query.longitude,
        request_date=query.target_date,
        parameters=query.parameters,
        historical_years=query.historical_years,
    )

    if query.format == "csv":
        filename = csv_filename(query.date, query.latitude, query.longitude)
        return Response(
            content=to_csv(result),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return success_envelope(result.to_response(), started_at)


@app.get("/api/weather/parameters")
async def weather_parameters() -> dict:
    return success_envelope(
        {
            "availableParameters": list(VALID_PARAMETERS),
            "parameterDetails": PARAMETER_INFO,
            "defaultParameters": list(settings.default_parameters),
            "maxParametersPerRequest": settings.max_parameters_per_request,
        }
    )


@app.get("/api/weather/historical-range")
async def historical_range(
    latitude: str | None = Query(default=None),
    longitude: str | None = Query(default=None),
) -> dict:
    raw = {"latitude": latitude, "longitude": longitude}
    location = LocationQuery.model_validate({key: value for key, value in raw.items() if value is not None})
    return success_envelope(orchestrator.historical_range(location.latitude, location.longitude))


@app.post("/api/weather/bulk")
async def bulk_weather_data(request: Request) -> dict:
    started_at = perf_counter()
    try:
        body = await request.json()
    except ValueError as exc:
        raise RequestValidationFailed(
            [{"field": "body", "message": "Request body must be valid JSON", "provided": None}]
        ) from exc

    payload = BulkWeatherRequest.model_validate(body, context={"settings": settings})
    outcome = await orchestrator.get_bulk(payload.requests, payload.historical_years)
    return success_envelope(outcome.to_response(), started_at)


def _validation_response(errors: list[dict]) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part not in ("query", "body")),
            "message": _clean_message(str(error.get("msg", ""))),
            "provided": error.get("input"),
        }
        for error in errors
    ]
    error = RequestValidationFailed(details)
    return _error_response(error)


def _clean_message(message: str) -> str:
    prefix = "Value error, "
    if message.startswith(prefix):
        return message[len(prefix):]
    return message


def _error_response(error: WeatherApiError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error_envelope(error)))
