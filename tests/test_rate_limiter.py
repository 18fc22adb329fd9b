from cfp.services.rate_limiter import InMemoryRateLimiter


def test_allows_up_to_limit_within_window():
    limiter = InMemoryRateLimiter()
    assert [limiter.allow("login:1.2.3.4", 3, 60) for _ in range(4)] == [True, True, True, False]
    assert limiter.remaining("login:1.2.3.4", 3, 60) == 0
    assert limiter.allow("login:5.6.7.8", 3, 60) is True


def test_window_expiry(monkeypatch):
    limiter = InMemoryRateLimiter()
    now = [1000.0]
    monkeypatch.setattr("cfp.services.rate_limiter.time.time", lambda: now[0])

    assert limiter.allow("k", 1, 60)
    assert not limiter.allow("k", 1, 60)
    now[0] += 61
    assert limiter.allow("k", 1, 60)


def test_reset_clears_key():
    limiter = InMemoryRateLimiter()
    limiter.allow("k", 1, 60)
    limiter.reset("k")
    assert limiter.remaining("k", 1, 60) == 1
