from __future__ import annotations

from typing import Any


RETRY_AFTER_BY_STATUS = {429: 300, 503: 600, 500: 60}
DEFAULT_RETRY_AFTER_SECONDS = 30


class WeatherApiError(Exception):
    """Base error carrying everything the error envelope needs."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class RequestValidationFailed(WeatherApiError):
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, errors: list[dict], message: str = "Invalid input parameters") -> None:
        super().__init__(message, details=errors)


class RouteNotFound(WeatherApiError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, method: str, path: str) -> None:
        super().__init__(f"Route {method} {path} not found", details={"resource": path})


class UpstreamError(WeatherApiError):
    code = "UPSTREAM_UNAVAILABLE"
    status_code = 502

    def __init__(self, message: str, *, upstream_status: int | None = None, reason: str | None = None) -> None:
        self.upstream_status = upstream_status
        self.reason = reason
        super().__init__(message, details=self._build_details())

    @property
    def retry_after(self) -> int:
        if self.upstream_status is None:
            return DEFAULT_RETRY_AFTER_SECONDS
        return RETRY_AFTER_BY_STATUS.get(self.upstream_status, DEFAULT_RETRY_AFTER_SECONDS)

    def _build_details(self) -> dict:
        details: dict[str, Any] = {"retryAfter": self.retry_after}
        if self.upstream_status is not None:
            details["upstreamStatus"] = self.upstream_status
        if self.reason:
            details["reason"] = self.reason
        return details


class UpstreamTimeout(UpstreamError):
    code = "UPSTREAM_TIMEOUT"
    status_code = 504

    def __init__(self, message: str = "NASA POWER API request timed out", *, reason: str | None = None) -> None:
        super().__init__(message, reason=reason or "Request timeout")


class UpstreamRateLimited(UpstreamError):
    code = "UPSTREAM_RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str = "NASA API rate limit exceeded") -> None:
        super().__init__(message, upstream_status=429)


class UpstreamUnavailable(UpstreamError):
    code = "UPSTREAM_UNAVAILABLE"

    def __init__(
        self,
        message: str = "NASA POWER API is unavailable",
        *,
        upstream_status: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, upstream_status=upstream_status, reason=reason)
        if upstream_status == 503:
            self.status_code = 503


class UpstreamBadRequest(UpstreamError):
    code = "UPSTREAM_BAD_REQUEST"

    def __init__(self, message: str = "Invalid request parameters sent to NASA API", *, upstream_status: int) -> None:
        super().__init__(message, upstream_status=upstream_status)


class AllHistoricalYearsFailed(WeatherApiError):
    code = "ALL_HISTORICAL_YEARS_FAILED"
    status_code = 502

    def __init__(self, failures: list[tuple[int, str]]) -> None:
        reasons = ", ".join(f"Year {year}: {error}" for year, error in failures)
        super().__init__(
            f"No historical data available for prediction. Errors: {reasons}",
            details={"failures": [{"year": year, "error": error} for year, error in failures]},
        )
        self.failures = failures


class RequestTimedOut(WeatherApiError):
    code = "REQUEST_TIMEOUT"
    status_code = 504

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            "Request timeout",
            details={"timeoutSeconds": timeout_seconds, "retryAfter": DEFAULT_RETRY_AFTER_SECONDS},
        )


class RateLimitExceeded(WeatherApiError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, retry_after: int) -> None:
        super().__init__("Too many requests, please try again later.", details={"retryAfter": retry_after})
        self.retry_after = retry_after
