from propreg.rate_limit import RateLimiter


class FakeTime:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def test_limit_is_per_key():
    limiter = RateLimiter(2)
    assert limiter.allow("a")
    assert limiter.allow("a")
    assert not limiter.allow("a")
    assert limiter.allow("b")

    result = limiter.check("a")
    assert not result.allowed
    assert result.retry_after is not None

    limiter.reset("a")
    assert limiter.allow("a")


def test_window_slides():
    clock = FakeTime()
    limiter = RateLimiter(1, window_seconds=10, time_source=clock)
    assert limiter.allow("a")
    clock.now = 9.0
    result = limiter.check("a")
    assert not result.allowed
    assert result.retry_after == 1.0
    clock.now = 10.0
    assert limiter.allow("a")


def test_idle_keys_swept_by_cleanup():
    clock = FakeTime()
    limiter = RateLimiter(5, window_seconds=60, time_source=clock, cleanup_every=1_000_000)
    for i in range(5000):
        limiter.check(f"ip:10.0.{i // 256}.{i % 256}")
    assert len(limiter) == 5000

    clock.now = 61.0
    limiter.check("ip:fresh")
    assert limiter.cleanup_expired() == 5000
    assert len(limiter) == 1


def test_idle_keys_swept_during_checks():
    clock = FakeTime()
    limiter = RateLimiter(5, window_seconds=60, time_source=clock, cleanup_every=100)
    for i in range(5000):
        limiter.check(f"ip:{i}")

    clock.now = 61.0
    for _ in range(100):
        limiter.check("ip:fresh")

    assert len(limiter) <= 1


def test_rejected_hits_not_counted():
    clock = FakeTime()
    limiter = RateLimiter(1, window_seconds=10, time_source=clock)
    assert limiter.allow("a")
    clock.now = 5.0
    assert not limiter.allow("a")
    clock.now = 10.0
    assert limiter.allow("a")
