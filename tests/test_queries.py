import asyncio
import unittest

from backend.errors import InvalidQuantityError, NotAuthenticatedError, RemoteServiceError
from backend.models import OrderStatus, PaymentMethod
from store.cache import QueryCache
from store.cart import CartAggregator
from store.queries import (
    CART_KEY,
    INVALIDATES,
    ORDERS_KEY,
    PRODUCTS_KEY,
    QueryStatus,
    StoreQueries,
    check_quantity,
)
from store.session import Session

from fakes import FakeBackend, FakeIdentityProvider, FakeStore, make_product


class QueriesTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = FakeStore([make_product(1, price=100, stock=10), make_product(2, price=200, stock=3)])
        self.provider = FakeIdentityProvider({"alice": "pw", "bob": "pw"})
        self.cache = QueryCache()
        self.events = []
        self.cache.subscribe(self.events.append)
        self.session = Session(
            self.cache, self.provider, lambda identity: FakeBackend(identity, self.store)
        )
        self.queries = StoreQueries(self.session)

    async def login(self, name="alice"):
        if self.session.client is None:
            await self.session.start()
        await self.session.login(name, "pw")

    async def prime(self):
        for read in (self.queries.products, self.queries.cart, self.queries.user_orders):
            self.assertTrue((await read()).ok)

    # ---------- Reads ----------

    async def test_reads_are_idle_until_session_starts(self):
        self.assertEqual((await self.queries.products()).status, QueryStatus.IDLE)
        self.assertEqual(self.store.calls, [])

        await self.session.start()
        res = await self.queries.products()
        self.assertTrue(res.ok)
        self.assertEqual([p.id for p in res.data], [1, 2])

    async def test_product_not_found_is_success_with_none(self):
        await self.session.start()
        res = await self.queries.product(99)
        self.assertTrue(res.ok)
        self.assertIsNone(res.data)
        self.assertEqual((await self.queries.product(None)).status, QueryStatus.IDLE)

    async def test_empty_search_does_not_call_backend(self):
        await self.session.start()
        self.assertEqual((await self.queries.search_by_name("")).data, ())
        self.assertEqual((await self.queries.search_by_category("")).data, ())
        self.assertEqual(self.store.calls, [])

        res = await self.queries.search_by_name("product 2")
        self.assertEqual([p.id for p in res.data], [2])

    async def test_anonymous_session_scoped_reads_fail_without_remote_call(self):
        await self.session.start()
        for read in (self.queries.cart, self.queries.user_orders):
            res = await read()
            self.assertEqual(res.status, QueryStatus.ERROR)
            self.assertIsInstance(res.error, NotAuthenticatedError)
        self.assertEqual(self.store.count("get_cart"), 0)
        self.assertEqual(self.store.count("get_user_orders"), 0)

    async def test_read_failure_is_reported_not_raised(self):
        await self.session.start()
        failure = RemoteServiceError("down", 503)
        self.store.failures["list_products"] = failure

        res = await self.queries.products()
        self.assertEqual(res.status, QueryStatus.ERROR)
        self.assertIs(res.error, failure)
        self.assertIsNone(self.cache.peek(PRODUCTS_KEY))

        self.assertTrue((await self.queries.products()).ok)

    async def test_concurrent_reads_coalesce(self):
        await self.session.start()
        self.store.gate = asyncio.Event()
        pending = asyncio.gather(self.queries.products(), self.queries.products())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.assertTrue(self.queries.is_loading(PRODUCTS_KEY))
        self.store.gate.set()
        first, second = await pending
        self.assertEqual(first.data, second.data)
        self.assertEqual(self.store.count("list_products"), 1)

    async def test_reads_are_idle_while_session_switches(self):
        await self.session.start()
        self.provider.gate = asyncio.Event()
        login = asyncio.ensure_future(self.session.login("alice", "pw"))
        await asyncio.sleep(0)

        self.assertFalse(self.session.ready)
        self.assertEqual((await self.queries.products()).status, QueryStatus.IDLE)
        with self.assertRaises(NotAuthenticatedError):
            await self.queries.remove_from_cart(1)

        self.provider.gate.set()
        await login
        self.assertTrue((await self.queries.cart()).ok)

    # ---------- Mutations ----------

    async def test_each_mutation_invalidates_exactly_its_resources(self):
        await self.login()
        mutations = {
            "add_to_cart": lambda: self.queries.add_to_cart(1, 1),
            "update_cart_item": lambda: self.queries.update_cart_item(1, 2),
            "remove_from_cart": lambda: self.queries.remove_from_cart(1),
            "create_order": lambda: self.queries.create_order(PaymentMethod.CASH),
            "create_product": lambda: self.queries.create_product("New", "", 50, "", 1, "Bags"),
            "update_product": lambda: self.queries.update_product(2, "P2", "", 250, "", 3, "Bags"),
            "delete_product": lambda: self.queries.delete_product(2),
            "update_order_status": lambda: self.queries.update_order_status(1, OrderStatus.SHIPPED),
            "delete_order": lambda: self.queries.delete_order(1),
            "initialize_admin": lambda: self.queries.initialize_admin(),
        }
        self.assertEqual(set(mutations), set(INVALIDATES))

        for name, mutate in mutations.items():
            with self.subTest(mutation=name):
                self.store.carts["alice"] = {1: 1}
                await self.prime()
                await mutate()
                for key in (PRODUCTS_KEY, CART_KEY, ORDERS_KEY):
                    self.assertEqual(
                        self.cache.is_fresh(key),
                        key[0] not in INVALIDATES[name],
                        f"{name} -> {key}",
                    )

    async def test_mutation_without_session_raises_and_leaves_cache_alone(self):
        await self.session.start()
        await self.queries.products()
        self.events.clear()

        with self.assertRaises(NotAuthenticatedError):
            await self.queries.add_to_cart(1, 1)
        with self.assertRaises(NotAuthenticatedError):
            await self.queries.create_order(PaymentMethod.CASH)

        self.assertEqual(self.store.count("add_to_cart"), 0)
        self.assertEqual(self.store.count("create_order"), 0)
        self.assertEqual(self.events, [])
        self.assertTrue(self.cache.is_fresh(PRODUCTS_KEY))

    async def test_failed_mutation_propagates_and_invalidates_nothing(self):
        await self.login()
        await self.prime()
        self.events.clear()
        failure = RemoteServiceError("Product is out of stock.", 409)
        self.store.failures["add_to_cart"] = failure

        with self.assertRaises(RemoteServiceError) as ctx:
            await self.queries.add_to_cart(1, 1)
        self.assertIs(ctx.exception, failure)
        self.assertEqual(self.events, [])
        self.assertTrue(self.cache.is_fresh(CART_KEY))

    async def test_quantity_outside_stock_is_rejected_before_remote_call(self):
        await self.login()
        await self.queries.products()

        for qty in (0, -1, 4):
            with self.subTest(qty=qty):
                with self.assertRaises(InvalidQuantityError):
                    await self.queries.add_to_cart(2, qty)
                with self.assertRaises(InvalidQuantityError):
                    await self.queries.update_cart_item(2, qty)
        self.assertEqual(self.store.count("add_to_cart"), 0)
        self.assertEqual(self.store.count("update_cart_item"), 0)

        await self.queries.add_to_cart(2, 3)
        self.assertEqual(self.store.carts["alice"], {2: 3})

    async def test_quantity_checked_against_stock_read_when_nothing_cached(self):
        await self.login()
        self.assertIsNone(self.queries.known_stock(2))
        with self.assertRaises(InvalidQuantityError) as ctx:
            await self.queries.add_to_cart(2, 50)
        self.assertEqual(ctx.exception.stock, 3)
        self.assertEqual(self.store.count("get_product"), 1)
        self.assertEqual(self.store.count("add_to_cart"), 0)

        # the stock read is cached for the next attempt
        await self.queries.add_to_cart(2, 2)
        self.assertEqual(self.store.count("get_product"), 1)
        self.assertEqual(self.store.carts["alice"], {2: 2})

    async def test_add_counts_quantity_already_in_cart(self):
        await self.login()
        self.store.carts["alice"] = {2: 2}
        await self.queries.products()
        await self.queries.cart()

        with self.assertRaises(InvalidQuantityError) as ctx:
            await self.queries.add_to_cart(2, 3)
        self.assertEqual((ctx.exception.quantity, ctx.exception.stock), (5, 3))
        with self.assertRaises(InvalidQuantityError):
            await self.queries.add_to_cart(2, 2)
        self.assertEqual(self.store.count("add_to_cart"), 0)

        await self.queries.add_to_cart(2, 1)
        self.assertEqual(self.store.carts["alice"], {2: 3})
        # an update replaces the line, so only the new quantity counts
        await self.queries.update_cart_item(2, 3)
        self.assertEqual(self.store.count("update_cart_item"), 1)

    async def test_known_stock_prefers_newest_entry(self):
        await self.login()
        await self.queries.products()
        self.store.products[2] = make_product(2, price=200, stock=1)
        await self.queries.product(2)
        self.assertEqual(self.queries.known_stock(2), 1)

    async def test_create_order_total_matches_cart_subtotal(self):
        await self.login()
        await self.queries.add_to_cart(1, 2)
        await self.queries.add_to_cart(2, 3)
        cart = CartAggregator(self.queries)
        subtotal = (await cart.refresh()).subtotal
        self.assertEqual(subtotal, 2 * 100 + 3 * 200)

        order_id = await self.queries.create_order(PaymentMethod.JAZZCASH)
        self.assertEqual(order_id, 1)
        self.assertEqual((await self.queries.cart()).data, ())
        orders = (await self.queries.user_orders()).data
        self.assertEqual([o.id for o in orders], [order_id])
        order = (await self.queries.order(order_id)).data
        self.assertEqual(order.total, subtotal)
        self.assertEqual(len(order.items), 2)
        self.assertEqual((await cart.refresh()).total_items, 0)

    def test_check_quantity(self):
        check_quantity(1, 1)
        check_quantity(100, None)
        with self.assertRaises(InvalidQuantityError) as ctx:
            check_quantity(2, 1)
        self.assertEqual(ctx.exception.stock, 1)
        with self.assertRaises(InvalidQuantityError):
            check_quantity(0, None)


if __name__ == "__main__":
    unittest.main()
