from ratelimit import RateLimiter


def make_limiter(max_requests=2, window_seconds=60):
    return RateLimiter("test", max_requests=max_requests, window_seconds=window_seconds, message="slow down")


def test_budget_per_window():
    limiter = make_limiter()
    assert limiter.hit("1.2.3.4", now=0)
    assert limiter.hit("1.2.3.4", now=1)
    assert not limiter.hit("1.2.3.4", now=2)
    assert limiter.hit("5.6.7.8", now=2)
    assert limiter.hit("1.2.3.4", now=60)


def test_expired_clients_are_evicted():
    limiter = make_limiter()
    limiter.hit("a", now=0)
    limiter.hit("b", now=30)
    limiter.hit("c", now=59)
    assert set(limiter._hits) == {"a", "b", "c"}

    limiter.hit("d", now=100)
    assert set(limiter._hits) == {"c", "d"}


def test_reset_clears_counters():
    limiter = make_limiter(max_requests=1)
    limiter.hit("a", now=0)
    limiter.reset()
    assert limiter.hit("a", now=1)
