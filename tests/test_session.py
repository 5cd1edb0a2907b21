import asyncio
import unittest

from backend.errors import AuthenticationError, NotReadyError
from backend.models import ANONYMOUS
from store.cache import QueryCache
from store.queries import CART_KEY, PRODUCTS_KEY, QueryStatus, StoreQueries
from store.session import LoginStatus, Session

from fakes import FakeBackend, FakeIdentityProvider, FakeStore, make_product


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = FakeStore([make_product(1)])
        self.provider = FakeIdentityProvider({"alice": "pw", "bob": "pw"})
        self.cache = QueryCache()
        self.clients = []
        self.session = Session(self.cache, self.provider, self.connect)
        self.statuses = []
        self.session.subscribe(self.statuses.append)

    def connect(self, identity):
        client = FakeBackend(identity, self.store)
        self.clients.append(client)
        return client

    async def test_start_builds_anonymous_client(self):
        self.assertFalse(self.session.ready)
        await self.session.start()
        self.assertTrue(self.session.ready)
        self.assertFalse(self.session.is_logged_in)
        self.assertIs(self.session.identity, ANONYMOUS)
        self.assertEqual(self.session.status, LoginStatus.IDLE)

        # starting twice keeps the same client
        await self.session.start()
        self.assertEqual(len(self.clients), 1)

    async def test_without_anonymous_browsing_nothing_is_ready_until_login(self):
        session = Session(self.cache, self.provider, self.connect, allow_anonymous=False)
        queries = StoreQueries(session)
        await session.start()
        self.assertFalse(session.ready)
        self.assertEqual((await queries.products()).status, QueryStatus.IDLE)

        await session.login("alice", "pw")
        self.assertTrue((await queries.products()).ok)

        await session.logout()
        self.assertIsNone(session.client)

    async def test_login_swaps_client_and_clears_cache(self):
        await self.session.start()
        await StoreQueries(self.session).products()
        self.assertIsNotNone(self.cache.peek(PRODUCTS_KEY))
        anonymous_client = self.session.client

        identity = await self.session.login("alice", "pw")

        self.assertEqual(identity.principal, "alice")
        self.assertEqual(identity.token, "tok-alice")
        self.assertTrue(self.session.is_logged_in)
        self.assertTrue(anonymous_client.closed)
        self.assertEqual(self.session.client.identity, identity)
        self.assertIsNone(self.cache.peek(PRODUCTS_KEY))
        self.assertEqual(self.statuses, [LoginStatus.IDLE, LoginStatus.LOGGING_IN, LoginStatus.SUCCESS])

    async def test_failed_login_falls_back_to_anonymous(self):
        await self.session.start()
        with self.assertRaises(AuthenticationError):
            await self.session.login("alice", "nope")

        self.assertEqual(self.session.status, LoginStatus.ERROR)
        self.assertIsInstance(self.session.login_error, AuthenticationError)
        self.assertIs(self.session.identity, ANONYMOUS)
        self.assertTrue(self.session.ready)
        self.assertFalse(self.session.is_logged_in)

        await self.session.login("alice", "pw")
        self.assertIsNone(self.session.login_error)

    async def test_logout_revokes_and_resets(self):
        await self.session.start()
        await self.session.login("alice", "pw")
        alice_client = self.session.client

        await self.session.logout()

        self.assertEqual(self.provider.revoked, ["alice"])
        self.assertTrue(alice_client.closed)
        self.assertIs(self.session.identity, ANONYMOUS)
        self.assertEqual(self.session.status, LoginStatus.IDLE)
        self.assertTrue(self.session.ready)

    async def test_switching_principal_never_serves_previous_cart(self):
        queries = StoreQueries(self.session)
        await self.session.start()
        self.store.carts = {"alice": {1: 2}}

        await self.session.login("alice", "pw")
        self.assertEqual(len((await queries.cart()).data), 1)

        await self.session.logout()
        self.assertIsNone(self.cache.peek(CART_KEY))
        await self.session.login("bob", "pw")
        self.assertEqual((await queries.cart()).data, ())

    async def test_cart_fetched_during_switch_is_not_kept(self):
        queries = StoreQueries(self.session)
        await self.session.start()
        self.store.carts = {"alice": {1: 2}}
        await self.session.login("alice", "pw")

        self.store.gate = asyncio.Event()
        pending = asyncio.ensure_future(queries.cart())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await self.session.logout()
        self.store.gate.set()
        await pending

        self.assertIsNone(self.cache.peek(CART_KEY))

    async def test_overlapping_transitions_are_rejected(self):
        await self.session.start()
        self.provider.gate = asyncio.Event()
        first = asyncio.ensure_future(self.session.login("alice", "pw"))
        await asyncio.sleep(0)
        self.assertTrue(self.session.transitioning)

        with self.assertRaises(NotReadyError):
            await self.session.login("bob", "pw")

        self.provider.gate.set()
        await first
        self.assertEqual(self.session.identity.principal, "alice")

    async def test_register_does_not_log_in(self):
        await self.session.start()
        identity = await self.session.register("carol", "pw", "Carol")
        self.assertEqual(identity.display_name, "Carol")
        self.assertFalse(self.session.is_logged_in)
        with self.assertRaises(AuthenticationError):
            await self.session.register("carol", "pw", "Carol")

    async def test_close_releases_client(self):
        await self.session.start()
        client = self.session.client
        await self.session.close()
        self.assertTrue(client.closed)
        self.assertFalse(self.session.ready)


if __name__ == "__main__":
    unittest.main()
