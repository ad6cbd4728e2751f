import asyncio
import tempfile
import unittest
from pathlib import Path

import httpx

from pyapiq.core.config import Config
from pyapiq.core.exceptions import (
    ConfigError,
    FetchExhausted,
    GenericHTTPError,
    NotFoundError,
    ParseError,
    UnauthorizedError,
)
from pyapiq.utils.cache_manager import CacheManager
from pyapiq.utils.cache_store import CacheStore
from pyapiq.utils.retry import RetryingFetcher, RetryPolicy

URL = "https://api.example.com/items/1"


async def no_sleep(delay):
    return None


class TestCacheManager(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.calls = []
        self.status = 200
        self.body = {"id": 1, "name": "widget"}

    def tearDown(self):
        self._tmp.cleanup()

    async def handler(self, request):
        self.calls.append(request)
        await asyncio.sleep(0.01)
        return httpx.Response(self.status, json=self.body)

    def make_manager(self, root=None, policy=None):
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        self.addAsyncCleanup(self.client.aclose)
        policy = policy or RetryPolicy(jitter=False)
        fetcher = RetryingFetcher(policy=policy, client=self.client, sleep=no_sleep)
        store = CacheStore("test", root=root or self.root)
        return CacheManager("test", default_retry=policy, store=store, fetcher=fetcher)

    async def test_miss_then_hit(self):
        manager = self.make_manager()

        first = await manager.fetch_with_cache(URL, ttl=60)
        second = await manager.fetch_with_cache(URL, ttl=60)

        self.assertEqual(first, self.body)
        self.assertEqual(second, self.body)
        self.assertEqual(len(self.calls), 1)
        self.assertTrue(manager.store.path_for(manager.get_cache_key(URL)).exists())

    async def test_cache_survives_new_manager(self):
        await self.make_manager().fetch_with_cache(URL, ttl=60)
        value = await self.make_manager().fetch_with_cache(URL, ttl=60)
        self.assertEqual(value, self.body)
        self.assertEqual(len(self.calls), 1)

    async def test_expired_entry_is_refetched(self):
        manager = self.make_manager()
        await manager.fetch_with_cache(URL, ttl=60)
        await asyncio.sleep(0.01)
        await manager.fetch_with_cache(URL, ttl=0)
        self.assertEqual(len(self.calls), 2)

    async def test_bypass_fetches_and_writes_back(self):
        manager = self.make_manager()
        key = manager.get_cache_key(URL)
        await manager.set_cached(key, {"stale": True})

        value = await manager.fetch_with_cache(URL, ttl=60, bypass_cache=True)

        self.assertEqual(value, self.body)
        self.assertEqual(len(self.calls), 1)
        self.assertEqual((await manager.get_cached(key, 60)).data, self.body)

    async def test_bypass_twice_fetches_twice(self):
        manager = self.make_manager()
        await manager.fetch_with_cache(URL, ttl=60, bypass_cache=True)
        await manager.fetch_with_cache(URL, ttl=60, bypass_cache=True)
        self.assertEqual(len(self.calls), 2)

    async def test_explicit_cache_key(self):
        manager = self.make_manager()
        await manager.fetch_with_cache(URL, ttl=60, cache_key="custom")
        self.assertTrue(manager.store.path_for("custom").exists())
        self.assertEqual((await manager.get_cached("custom", 60)).data, self.body)

    async def test_custom_parser(self):
        manager = self.make_manager()
        value = await manager.fetch_with_cache(URL, ttl=60, parse_response=lambda r: r.json()["name"])
        self.assertEqual(value, "widget")

    async def test_async_parser(self):
        async def parse(response):
            return len(response.content)

        manager = self.make_manager()
        value = await manager.fetch_with_cache(URL, ttl=60, parse_response=parse)
        self.assertIsInstance(value, int)

    async def test_parser_failure_is_parse_error(self):
        def parse(response):
            raise KeyError("missing")

        manager = self.make_manager()
        with self.assertRaises(ParseError) as cm:
            await manager.fetch_with_cache(URL, ttl=60, parse_response=parse)

        self.assertIsInstance(cm.exception.__cause__, KeyError)
        self.assertIsNone(await manager.get_cached(manager.get_cache_key(URL), 60))

    async def test_not_found_is_not_retried(self):
        self.status = 404
        manager = self.make_manager()
        with self.assertRaises(NotFoundError) as cm:
            await manager.fetch_with_cache(URL, ttl=60)
        self.assertEqual(str(cm.exception), f"Resource not found: {URL}")
        self.assertEqual(len(self.calls), 1)

    async def test_unauthorized(self):
        for status in (401, 403):
            self.status = status
            manager = self.make_manager()
            with self.assertRaises(UnauthorizedError) as cm:
                await manager.fetch_with_cache(URL, ttl=60)
            self.assertEqual(str(cm.exception), f"Authentication/Authorization failed: {status}")

    async def test_other_status_is_generic(self):
        self.status = 418
        manager = self.make_manager()
        with self.assertRaises(GenericHTTPError) as cm:
            await manager.fetch_with_cache(URL, ttl=60)
        self.assertEqual(cm.exception.status, 418)
        self.assertTrue(str(cm.exception).startswith("HTTP 418"))

    async def test_errors_are_not_cached(self):
        self.status = 404
        manager = self.make_manager()
        with self.assertRaises(NotFoundError):
            await manager.fetch_with_cache(URL, ttl=60)
        self.status = 200
        self.assertEqual(await manager.fetch_with_cache(URL, ttl=60), self.body)

    async def test_retry_exhaustion(self):
        self.status = 503
        manager = self.make_manager()
        with self.assertRaises(FetchExhausted):
            await manager.fetch_with_cache(URL, ttl=60)
        self.assertEqual(len(self.calls), 4)

    async def test_per_call_retry_options(self):
        self.status = 503
        manager = self.make_manager()
        with self.assertRaises(FetchExhausted):
            await manager.fetch_with_cache(URL, ttl=60, retry_options={"max_retries": 1})
        self.assertEqual(len(self.calls), 2)

    async def test_concurrent_misses_share_one_request(self):
        manager = self.make_manager()
        results = await asyncio.gather(*(manager.fetch_with_cache(URL, ttl=60) for _ in range(5)))
        self.assertEqual(results, [self.body] * 5)
        self.assertEqual(len(self.calls), 1)
        self.assertEqual(manager._inflight, {})

    async def test_joining_caller_gets_owners_value(self):
        manager = self.make_manager()
        first, second = await asyncio.gather(
            manager.fetch_with_cache(URL, ttl=60, cache_key="shared", parse_response=lambda r: "first"),
            manager.fetch_with_cache(URL, ttl=60, cache_key="shared", parse_response=lambda r: "second"),
        )
        # Whichever caller went upstream, both see its parser's result.
        self.assertEqual(first, second)
        self.assertIn(first, ("first", "second"))
        self.assertEqual(len(self.calls), 1)

    async def test_concurrent_failure_reaches_every_caller(self):
        self.status = 404
        manager = self.make_manager()
        results = await asyncio.gather(
            *(manager.fetch_with_cache(URL, ttl=60) for _ in range(3)), return_exceptions=True
        )
        self.assertTrue(all(isinstance(r, NotFoundError) for r in results))
        self.assertEqual(manager._inflight, {})

    async def test_corrupt_entry_is_a_miss(self):
        manager = self.make_manager()
        key = manager.get_cache_key(URL)
        manager.cache_dir.mkdir(parents=True)
        manager.store.path_for(key).write_text("garbage", encoding="utf-8")

        self.assertIsNone(await manager.get_cached(key, 60))
        self.assertEqual(await manager.fetch_with_cache(URL, ttl=60), self.body)
        self.assertEqual((await manager.get_cached(key, 60)).data, self.body)

    async def test_undecodable_entry_is_a_miss(self):
        manager = self.make_manager()
        key = manager.get_cache_key(URL)
        manager.cache_dir.mkdir(parents=True)
        manager.store.path_for(key).write_bytes(b"\xff\xfe\x00garbage")

        self.assertEqual(await manager.fetch_with_cache(URL, ttl=60), self.body)
        self.assertEqual(len(self.calls), 1)
        self.assertEqual((await manager.get_cached(key, 60)).data, self.body)

    async def test_infinite_timestamp_is_a_miss(self):
        manager = self.make_manager()
        key = manager.get_cache_key(URL)
        manager.cache_dir.mkdir(parents=True)
        manager.store.path_for(key).write_text('{"data": 1, "localCacheTimestamp": Infinity}', encoding="utf-8")

        self.assertEqual(await manager.fetch_with_cache(URL, ttl=60), self.body)
        self.assertEqual(len(self.calls), 1)

    async def test_unwritable_cache_still_returns_data(self):
        blocker = self.root / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        manager = self.make_manager(root=blocker)

        self.assertEqual(await manager.fetch_with_cache(URL, ttl=60), self.body)
        self.assertEqual(await manager.fetch_with_cache(URL, ttl=60), self.body)
        self.assertEqual(len(self.calls), 2)
        self.assertEqual(await manager.clear_cache(), 0)

    async def test_set_cached_ignores_unserializable(self):
        manager = self.make_manager()
        await manager.set_cached("k", {"value": object()})
        self.assertIsNone(await manager.get_cached("k", 60))

    async def test_clear_cache(self):
        manager = self.make_manager()
        await manager.set_cached("a", 1)
        await manager.set_cached("b", 2)

        self.assertEqual(await manager.clear_cache(), 2)
        self.assertIsNone(await manager.get_cached("a", 60))
        self.assertEqual(await manager.clear_cache(), 0)

    async def test_default_ttl_applies(self):
        manager = self.make_manager()
        manager.default_ttl = 0
        await manager.fetch_with_cache(URL)
        await asyncio.sleep(0.01)
        await manager.fetch_with_cache(URL)
        self.assertEqual(len(self.calls), 2)


class TestCacheManagerFromConfig(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.config_file = self.root / "apiq.toml"
        self.config_file.write_text(
            f'[cache]\ndir = "{self.root.as_posix()}"\nttl = 120\n\n[retry]\nmax_retries = 1\n',
            encoding="utf-8",
        )

    def tearDown(self):
        self._tmp.cleanup()

    def test_settings_are_layered(self):
        config = Config(config_path=self.config_file)
        manager = CacheManager.from_config(
            "layered", config, default_ttl=9999, retry_defaults={"max_retries": 5, "initial_delay": 2.0}
        )

        self.assertEqual(manager.cache_dir, self.root / "layered-cache")
        self.assertEqual(manager.default_ttl, 120)
        self.assertEqual(manager.default_retry.max_retries, 1)
        self.assertEqual(manager.default_retry.initial_delay, 2.0)
        self.assertEqual(manager.fetcher.headers["User-Agent"], config.get("user_agent"))

    def config_from(self, text):
        self.config_file.write_text(text, encoding="utf-8")
        return Config(config_path=self.config_file)

    def test_unusable_retry_setting_is_named(self):
        config = self.config_from("[retry]\nretryable_statuses = 500\n")
        with self.assertRaises(ConfigError) as cm:
            CacheManager.from_config("bad", config)
        self.assertEqual(cm.exception.key, "retry.retryable_statuses")

    def test_delay_above_cap_is_named(self):
        config = self.config_from("[retry]\ninitial_delay = 60.0\n")
        with self.assertRaises(ConfigError) as cm:
            CacheManager.from_config("bad", config)
        self.assertEqual(cm.exception.key, "retry.initial_delay")

    def test_inconsistent_retry_settings(self):
        config = self.config_from("[retry]\ninitial_delay = 5.0\nmax_delay = 2.0\n")
        with self.assertRaises(ConfigError) as cm:
            CacheManager.from_config("bad", config)
        self.assertEqual(cm.exception.key, "retry")

    def test_settings_valid_only_together(self):
        config = self.config_from("[retry]\ninitial_delay = 0.1\nmax_delay = 0.5\n")
        manager = CacheManager.from_config("ok", config)
        self.assertEqual(manager.default_retry.max_delay, 0.5)

    def test_non_numeric_timeout(self):
        config = self.config_from('timeout = "soon"\n')
        with self.assertRaises(ConfigError) as cm:
            CacheManager.from_config("bad", config)
        self.assertEqual(cm.exception.key, "timeout")


if __name__ == '__main__':
    unittest.main()
