from nasa_weather.services.rate_limit import FixedWindowRateLimiter


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_requests_over_the_limit_are_refused_until_window_ends() -> None:
    clock = _Clock()
    limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)

    first = limiter.hit("10.0.0.1")
    second = limiter.hit("10.0.0.1")
    clock.now += 15.2
    third = limiter.hit("10.0.0.1")

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert third.allowed is False
    assert third.retry_after == 45

    clock.now += 45
    assert limiter.hit("10.0.0.1").allowed is True


def test_clients_are_counted_separately() -> None:
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=_Clock())

    assert limiter.hit("10.0.0.1").allowed is True
    assert limiter.hit("10.0.0.1").allowed is False
    assert limiter.hit("10.0.0.2").allowed is True


def test_expired_windows_are_pruned() -> None:
    clock = _Clock()
    limiter = FixedWindowRateLimiter(max_requests=5, window_seconds=10, clock=clock, prune_threshold=2)
    for client in ("a", "b", "c"):
        limiter.hit(client)

    clock.now += 11
    limiter.hit("d")

    assert set(limiter._windows) == {"d"}
