from __future__ import annotations

import unittest

import httpx

from pipeline.errors import ProviderError, ProviderJobFailed, ProviderTimeout
from pipeline.polling import PollOutcome, poll_job


def _sequence(*outcomes):
    items = list(outcomes)

    def fetch():
        item = items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return fetch


class PollJobTests(unittest.TestCase):
    def setUp(self):
        self.sleeps: list[float] = []

    def _poll(self, fetch, **kwargs):
        params = {
            "provider": "Shotstack",
            "job_id": "job-1",
            "interval_seconds": 10,
            "max_attempts": 5,
            "sleep": self.sleeps.append,
        }
        params.update(kwargs)
        return poll_job(fetch, **params)

    def test_returns_url_when_done(self):
        fetch = _sequence(
            PollOutcome("pending", raw_status="queued"),
            PollOutcome("pending", raw_status="rendering"),
            PollOutcome("done", url="https://cdn.example/v.mp4"),
        )
        self.assertEqual(self._poll(fetch), "https://cdn.example/v.mp4")
        self.assertEqual(self.sleeps, [10, 10])

    def test_failed_status_is_terminal(self):
        fetch = _sequence(PollOutcome("failed", error="bad asset"), PollOutcome("done", url="never"))
        with self.assertRaises(ProviderJobFailed) as ctx:
            self._poll(fetch)
        self.assertEqual(str(ctx.exception), "Shotstack video rendering failed: bad asset")
        self.assertEqual(ctx.exception.provider, "Shotstack")

    def test_failed_without_reason(self):
        with self.assertRaises(ProviderJobFailed) as ctx:
            self._poll(_sequence(PollOutcome("failed")))
        self.assertIn("Unknown error", str(ctx.exception))

    def test_timeout_after_max_attempts(self):
        fetch = _sequence(*[PollOutcome("pending") for _ in range(3)])
        with self.assertRaises(ProviderTimeout) as ctx:
            self._poll(fetch, max_attempts=3)
        self.assertEqual(str(ctx.exception), "Shotstack video rendering timeout")
        # No sleep after the final attempt.
        self.assertEqual(self.sleeps, [10, 10])

    def test_tolerated_errors_count_as_attempts(self):
        request = httpx.Request("GET", "https://api.example/render/job-1")
        fetch = _sequence(
            httpx.ConnectError("reset", request=request),
            ProviderError("status check failed: 502"),
            PollOutcome("done", url="https://cdn.example/v.mp4"),
        )
        url = self._poll(fetch, tolerate_errors=True, error_interval_seconds=5)
        self.assertEqual(url, "https://cdn.example/v.mp4")
        self.assertEqual(self.sleeps, [5, 5])

    def test_tolerated_errors_still_time_out(self):
        fetch = _sequence(ValueError("bad json"), ValueError("bad json"))
        with self.assertRaises(ProviderTimeout):
            self._poll(fetch, max_attempts=2, tolerate_errors=True)

    def test_errors_propagate_without_tolerance(self):
        fetch = _sequence(ProviderError("Luma generation status check failed: 500"))
        with self.assertRaises(ProviderError):
            self._poll(fetch)
        self.assertEqual(self.sleeps, [])

    def test_sleep_first_waits_before_each_check(self):
        fetch = _sequence(PollOutcome("pending"), PollOutcome("done", url="u"))
        self.assertEqual(self._poll(fetch, interval_seconds=5, sleep_first=True), "u")
        self.assertEqual(self.sleeps, [5, 5])


if __name__ == "__main__":
    unittest.main()
