import unittest

from bsi_telemetry.services.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class RateLimiterTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(clock=self.clock)

    def test_blocks_after_limit_within_window(self):
        for i in range(5):
            lim = self.limiter.hit("login:1.2.3.4", limit=5, window_s=900)
            self.assertTrue(lim.allowed)
            self.assertEqual(lim.remaining, 4 - i)

        self.clock.now += 10
        blocked = self.limiter.hit("login:1.2.3.4", limit=5, window_s=900)
        self.assertFalse(blocked.allowed)
        self.assertEqual(blocked.remaining, 0)
        self.assertEqual(blocked.retry_after, 890)

    def test_window_resets(self):
        for _ in range(5):
            self.limiter.hit("k", limit=5, window_s=60)
        self.assertFalse(self.limiter.hit("k", limit=5, window_s=60).allowed)

        self.clock.now += 60
        self.assertTrue(self.limiter.hit("k", limit=5, window_s=60).allowed)

    def test_keys_are_independent(self):
        self.assertTrue(self.limiter.hit("a", limit=1, window_s=60).allowed)
        self.assertFalse(self.limiter.hit("a", limit=1, window_s=60).allowed)
        self.assertTrue(self.limiter.hit("b", limit=1, window_s=60).allowed)

    def test_reset_and_purge(self):
        self.limiter.hit("a", limit=1, window_s=60)
        self.limiter.reset("a")
        self.assertTrue(self.limiter.hit("a", limit=1, window_s=60).allowed)

        self.limiter.hit("b", limit=1, window_s=60)
        self.clock.now += 61
        self.assertEqual(self.limiter.purge_expired(window_s=60), 2)

    def test_hit_sweeps_expired_keys(self):
        for i in range(100):
            self.limiter.hit(f"login:10.0.0.{i}", limit=5, window_s=60)
        self.assertEqual(len(self.limiter._windows), 100)

        self.clock.now += 61
        self.limiter.hit("login:10.0.1.1", limit=5, window_s=60)
        self.assertEqual(list(self.limiter._windows), ["login:10.0.1.1"])
