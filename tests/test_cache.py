import asyncio
import gc
import unittest

from store.cache import ALL, QueryCache


class Fetcher:
    """Counts calls; optionally blocks until released."""

    def __init__(self, value, gate: asyncio.Event = None):
        self.value = value
        self.gate = gate
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(self.value, BaseException):
            raise self.value
        return self.value


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


class QueryCacheTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.cache = QueryCache()
        self.events = []
        self.cache.subscribe(self.events.append)

    async def test_fresh_entry_is_served_without_fetching(self):
        fetcher = Fetcher(("a", "b"))
        self.assertEqual(await self.cache.fetch(("products",), fetcher), ("a", "b"))
        self.assertEqual(await self.cache.fetch(("products",), fetcher), ("a", "b"))
        self.assertEqual(fetcher.calls, 1)
        self.assertTrue(self.cache.is_fresh(("products",)))
        self.assertEqual(self.events, ["products"])

    async def test_concurrent_fetches_share_one_call(self):
        gate = asyncio.Event()
        fetcher = Fetcher("cart-data", gate)
        first = asyncio.ensure_future(self.cache.fetch(("cart",), fetcher))
        second = asyncio.ensure_future(self.cache.fetch(("cart",), fetcher))
        await settle()
        self.assertTrue(self.cache.is_fetching(("cart",)))

        gate.set()
        self.assertEqual(await asyncio.gather(first, second), ["cart-data", "cart-data"])
        self.assertEqual(fetcher.calls, 1)
        self.assertFalse(self.cache.is_fetching(("cart",)))

    async def test_invalidate_marks_every_slice_of_the_name_stale(self):
        await self.cache.fetch(("products",), Fetcher([1]))
        await self.cache.fetch(("products", "search", "abaya"), Fetcher([1]))
        await self.cache.fetch(("product", 1), Fetcher("one"))
        self.events.clear()

        self.cache.invalidate("products")

        self.assertEqual(self.events, ["products"])
        self.assertFalse(self.cache.is_fresh(("products",)))
        self.assertFalse(self.cache.is_fresh(("products", "search", "abaya")))
        self.assertTrue(self.cache.is_fresh(("product", 1)))
        # stale data stays visible until the refetch lands
        self.assertEqual(self.cache.peek(("products",)).data, [1])

        refetch = Fetcher([1, 2])
        self.assertEqual(await self.cache.fetch(("products",), refetch), [1, 2])
        self.assertEqual(refetch.calls, 1)

    async def test_result_started_before_invalidation_is_discarded(self):
        old_gate = asyncio.Event()
        old = asyncio.ensure_future(self.cache.fetch(("cart",), Fetcher("old", old_gate)))
        await settle()

        self.cache.invalidate("cart")
        new_gate = asyncio.Event()
        newer = Fetcher("new", new_gate)
        new = asyncio.ensure_future(self.cache.fetch(("cart",), newer))
        await settle()
        # the second caller did not join the superseded fetch
        self.assertEqual(newer.calls, 1)

        new_gate.set()
        self.assertEqual(await new, "new")
        old_gate.set()
        self.assertEqual(await old, "old")

        self.assertEqual(self.cache.peek(("cart",)).data, "new")
        self.assertTrue(self.cache.is_fresh(("cart",)))

    async def test_older_fetch_finishing_last_does_not_overwrite(self):
        old_gate = asyncio.Event()
        old = asyncio.ensure_future(self.cache.fetch(("cart",), Fetcher("old", old_gate)))
        await settle()
        self.cache.invalidate("cart")

        new_gate = asyncio.Event()
        new = asyncio.ensure_future(self.cache.fetch(("cart",), Fetcher("new", new_gate)))
        await settle()

        old_gate.set()
        await old
        self.assertIsNone(self.cache.peek(("cart",)))

        new_gate.set()
        await new
        self.assertEqual(self.cache.peek(("cart",)).data, "new")

    async def test_clear_drops_entries_and_in_flight_results(self):
        await self.cache.fetch(("products",), Fetcher([1]))
        gate = asyncio.Event()
        pending = asyncio.ensure_future(self.cache.fetch(("cart",), Fetcher("alice", gate)))
        await settle()

        self.cache.clear()
        self.assertEqual(self.events[-1], ALL)
        self.assertIsNone(self.cache.peek(("products",)))

        gate.set()
        await pending
        self.assertIsNone(self.cache.peek(("cart",)))

    async def test_failed_fetch_stores_nothing_and_can_retry(self):
        failing = Fetcher(RuntimeError("boom"))
        with self.assertRaises(RuntimeError):
            await self.cache.fetch(("orders",), failing)
        self.assertIsNone(self.cache.peek(("orders",)))
        self.assertFalse(self.cache.is_fetching(("orders",)))

        self.assertEqual(await self.cache.fetch(("orders",), Fetcher(())), ())

    async def test_orphaned_failed_fetch_is_not_reported_unretrieved(self):
        loop = asyncio.get_running_loop()
        reports = []
        previous = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: reports.append(context))
        self.addCleanup(loop.set_exception_handler, previous)

        gate = asyncio.Event()
        waiter = asyncio.ensure_future(self.cache.fetch(("orders",), Fetcher(RuntimeError("boom"), gate)))
        await settle()
        waiter.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await waiter

        gate.set()
        await settle()
        self.assertFalse(self.cache.is_fetching(("orders",)))
        del waiter
        gc.collect()
        await settle()
        self.assertEqual(reports, [])

    async def test_stale_after_expires_entries(self):
        cache = QueryCache(stale_after=0)
        fetcher = Fetcher("x")
        await cache.fetch(("products",), fetcher)
        await cache.fetch(("products",), fetcher)
        self.assertEqual(fetcher.calls, 2)

    async def test_unsubscribe(self):
        events = []
        unsubscribe = self.cache.subscribe(events.append)
        self.cache.invalidate("cart")
        unsubscribe()
        unsubscribe()
        self.cache.invalidate("cart")
        self.assertEqual(events, ["cart"])


if __name__ == "__main__":
    unittest.main()
