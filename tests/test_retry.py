import unittest
from unittest.mock import patch

import httpx

from pyapiq.core.exceptions import FetchExhausted
from pyapiq.utils.retry import RetryingFetcher, RetryPolicy, policy_from_mapping


class SleepRecorder:
    """Stands in for asyncio.sleep and records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def scripted_client(*outcomes):
    """Builds a client whose transport plays back `outcomes` in order.

    Each outcome is a status code or an exception instance to raise.
    """
    calls = []
    remaining = list(outcomes)

    def handler(request):
        calls.append(request)
        outcome = remaining.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"status": outcome})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), calls


class TestRetryPolicy(unittest.TestCase):

    def test_defaults(self):
        policy = RetryPolicy()
        self.assertEqual(policy.max_retries, 3)
        self.assertEqual(policy.initial_delay, 1.0)
        self.assertEqual(policy.max_delay, 30.0)
        self.assertEqual(policy.backoff_multiplier, 2.0)
        self.assertTrue(policy.jitter)
        self.assertEqual(policy.retryable_statuses, frozenset({408, 429, 500, 502, 503, 504}))

    def test_delay_without_jitter(self):
        policy = RetryPolicy(jitter=False)
        self.assertEqual([policy.compute_delay(n) for n in range(6)], [1, 2, 4, 8, 16, 30])

    def test_delay_with_jitter_stays_in_range(self):
        policy = RetryPolicy()
        for attempt in range(8):
            base = min(2 ** attempt, 30)
            delay = policy.compute_delay(attempt)
            self.assertGreaterEqual(delay, base)
            self.assertLessEqual(delay, base * 1.5)

    def test_jitter_uses_half_the_delay(self):
        with patch("pyapiq.utils.retry.random.uniform", return_value=0.25) as uniform:
            self.assertEqual(RetryPolicy().compute_delay(0), 1.25)
        uniform.assert_called_once_with(0, 0.5)

    def test_merge_replaces_only_given_fields(self):
        merged = RetryPolicy().merge({"max_retries": 0, "retryable_statuses": [503]})
        self.assertEqual(merged.max_retries, 0)
        self.assertEqual(merged.retryable_statuses, frozenset({503}))
        self.assertEqual(merged.initial_delay, 1.0)

    def test_merge_empty_returns_same_policy(self):
        policy = RetryPolicy()
        self.assertIs(policy.merge(None), policy)
        self.assertIs(policy.merge({}), policy)

    def test_merge_rejects_unknown_fields(self):
        with self.assertRaises(ValueError):
            RetryPolicy().merge({"retries": 2})

    def test_validation(self):
        with self.assertRaises(ValueError):
            RetryPolicy(max_retries=-1)
        with self.assertRaises(ValueError):
            RetryPolicy(initial_delay=10, max_delay=1)
        with self.assertRaises(ValueError):
            RetryPolicy(backoff_multiplier=0)

    def test_policy_from_mapping_ignores_unrelated_keys(self):
        policy = policy_from_mapping({"max_retries": 5, "comment": "x"})
        self.assertEqual(policy.max_retries, 5)


class TestRetryingFetcher(unittest.IsolatedAsyncioTestCase):

    async def test_success_first_try(self):
        client, calls = scripted_client(200)
        sleep = SleepRecorder()
        fetcher = RetryingFetcher(client=client, sleep=sleep)

        response = await fetcher.fetch("https://example.com/a")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(calls), 1)
        self.assertEqual(sleep.delays, [])
        await client.aclose()

    async def test_retries_retryable_status_then_succeeds(self):
        client, calls = scripted_client(503, 429, 200)
        sleep = SleepRecorder()
        fetcher = RetryingFetcher(policy=RetryPolicy(jitter=False), client=client, sleep=sleep)

        response = await fetcher.fetch("https://example.com/a")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(calls), 3)
        self.assertEqual(sleep.delays, [1.0, 2.0])
        await client.aclose()

    async def test_retries_transport_errors(self):
        client, calls = scripted_client(httpx.ConnectError("refused"), 200)
        sleep = SleepRecorder()
        fetcher = RetryingFetcher(policy=RetryPolicy(jitter=False), client=client, sleep=sleep)

        response = await fetcher.fetch("https://example.com/a")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(calls), 2)
        await client.aclose()

    async def test_non_retryable_status_is_returned(self):
        client, calls = scripted_client(404)
        sleep = SleepRecorder()
        fetcher = RetryingFetcher(client=client, sleep=sleep)

        response = await fetcher.fetch("https://example.com/a")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(len(calls), 1)
        self.assertEqual(sleep.delays, [])
        await client.aclose()

    async def test_exhaustion_after_max_retries(self):
        client, calls = scripted_client(500, 500, 500, 500)
        sleep = SleepRecorder()
        fetcher = RetryingFetcher(policy=RetryPolicy(jitter=False), client=client, sleep=sleep)

        with self.assertRaises(FetchExhausted) as cm:
            await fetcher.fetch("https://example.com/a")

        self.assertEqual(len(calls), 4)
        self.assertEqual(sleep.delays, [1.0, 2.0, 4.0])
        self.assertEqual(cm.exception.attempts, 4)
        self.assertEqual(cm.exception.last_status, 500)
        self.assertIn("after 4 attempt(s)", str(cm.exception))
        await client.aclose()

    async def test_two_retries_mean_three_calls(self):
        client, calls = scripted_client(500, 500, 500)
        fetcher = RetryingFetcher(policy=RetryPolicy(max_retries=2), client=client, sleep=SleepRecorder())

        with self.assertRaises(FetchExhausted):
            await fetcher.fetch("https://example.com/a")

        self.assertEqual(len(calls), 3)
        await client.aclose()

    async def test_exhaustion_keeps_transport_cause(self):
        error = httpx.ReadTimeout("slow")
        client, _ = scripted_client(error, error)
        fetcher = RetryingFetcher(policy=RetryPolicy(max_retries=1), client=client, sleep=SleepRecorder())

        with self.assertRaises(FetchExhausted) as cm:
            await fetcher.fetch("https://example.com/a")

        self.assertIsNone(cm.exception.last_status)
        self.assertIs(cm.exception.__cause__, error)
        await client.aclose()

    async def test_zero_retries_makes_one_attempt(self):
        client, calls = scripted_client(503)
        sleep = SleepRecorder()
        fetcher = RetryingFetcher(client=client, sleep=sleep)

        with self.assertRaises(FetchExhausted):
            await fetcher.fetch("https://example.com/a", policy=RetryPolicy(max_retries=0))

        self.assertEqual(len(calls), 1)
        self.assertEqual(sleep.delays, [])
        await client.aclose()

    async def test_fetch_options_are_passed_through(self):
        client, calls = scripted_client(200)
        fetcher = RetryingFetcher(client=client, sleep=SleepRecorder())

        await fetcher.fetch("https://example.com/a", {"method": "head", "headers": {"X-Test": "1"}, "params": {"q": "x"}})

        request = calls[0]
        self.assertEqual(request.method, "HEAD")
        self.assertEqual(request.headers["X-Test"], "1")
        self.assertEqual(request.url.params["q"], "x")
        await client.aclose()

    async def test_injected_client_is_not_closed(self):
        client, _ = scripted_client(200)
        fetcher = RetryingFetcher(client=client)
        await fetcher.aclose()
        self.assertFalse(client.is_closed)
        await client.aclose()


if __name__ == '__main__':
    unittest.main()
