import json
import unittest
from datetime import datetime

import httpx

from backend.client import HttpBackend, HttpIdentityProvider
from backend.errors import AuthenticationError, RemoteServiceError
from backend.models import ANONYMOUS, Identity, OrderStatus, PaymentMethod

BASE_URL = "http://shop.test"

PRODUCT_WIRE = {
    "id": 1,
    "name": "Classic Black Abaya",
    "description": "Black",
    "price": 3500,
    "stock": 15,
    "category": "Abayas",
    "imageUrl": "abaya.jpg",
}


class Recorder:
    """MockTransport handler replying from a {path: (status, body)} table."""

    def __init__(self, replies):
        self.replies = replies
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.replies.get(request.url.path, (404, None))
        if isinstance(body, Exception):
            raise body
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def body(self, index=-1):
        return json.loads(self.requests[index].content or b"{}")


class HttpBackendTestCase(unittest.IsolatedAsyncioTestCase):
    def backend(self, replies, identity=ANONYMOUS):
        recorder = Recorder(replies)
        client = HttpBackend(BASE_URL, identity, transport=httpx.MockTransport(recorder))
        self.addAsyncCleanup(client.close)
        return client, recorder

    async def test_list_products_parses_wire_format(self):
        client, recorder = self.backend({"/api/getAllProducts": (200, [PRODUCT_WIRE])})
        products = await client.list_products()
        self.assertEqual(products[0].image_url, "abaya.jpg")
        self.assertEqual(products[0].price, 3500)
        self.assertEqual(recorder.requests[0].method, "POST")
        self.assertNotIn("authorization", recorder.requests[0].headers)

    async def test_token_is_sent_as_bearer(self):
        identity = Identity(principal="alice", token="secret")
        client, recorder = self.backend({"/api/getCart": (200, [{"productId": 1, "quantity": 2}])}, identity)
        lines = await client.get_cart()
        self.assertEqual((lines[0].product_id, lines[0].quantity), (1, 2))
        self.assertEqual(recorder.requests[0].headers["authorization"], "Bearer secret")

    async def test_not_found_is_none(self):
        client, recorder = self.backend({})
        self.assertIsNone(await client.get_product(42))
        self.assertIsNone(await client.get_order(42))
        self.assertEqual(recorder.body(0), {"id": 42})

    async def test_not_found_from_other_procedures_raises(self):
        client, _ = self.backend({})
        calls = (
            ("deleteOrder", lambda: client.delete_order(42)),
            ("createOrder", lambda: client.create_order(PaymentMethod.CASH)),
            ("getAllProducts", client.list_products),
        )
        for procedure, call in calls:
            with self.subTest(procedure=procedure):
                with self.assertRaises(RemoteServiceError) as ctx:
                    await call()
                self.assertEqual(ctx.exception.status_code, 404)

    async def test_error_with_non_object_body(self):
        client, _ = self.backend({"/api/getAllProducts": (500, "boom")})
        with self.assertRaises(RemoteServiceError) as ctx:
            await client.list_products()
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn("boom", str(ctx.exception))

    async def test_mutation_arguments(self):
        client, recorder = self.backend(
            {
                "/api/addToCart": (200, None),
                "/api/createOrder": (200, 17),
                "/api/updateOrderStatus": (200, None),
                "/api/createProduct": (200, 9),
            }
        )
        await client.add_to_cart(3, 2)
        self.assertEqual(recorder.body(), {"productId": 3, "quantity": 2})

        self.assertEqual(await client.create_order(PaymentMethod.EASYPAISA), 17)
        self.assertEqual(recorder.body(), {"paymentMethod": "easypaisa"})

        await client.update_order_status(17, OrderStatus.SHIPPED)
        self.assertEqual(recorder.body(), {"orderId": 17, "status": "Shipped"})

        self.assertEqual(await client.create_product("Bag", "d", 100, "b.jpg", 2, "Bags"), 9)
        self.assertEqual(recorder.body()["imageUrl"], "b.jpg")

    async def test_orders_parse_nanosecond_timestamps(self):
        ts = datetime(2025, 3, 1, 10, 30)
        order = {
            "id": 5,
            "items": [{"product": PRODUCT_WIRE, "quantity": 2}],
            "total": 7000,
            "status": "Processing",
            "paymentMethod": "cash",
            "user": "alice",
            "timestamp": int(ts.timestamp()) * 1_000_000_000,
        }
        client, _ = self.backend({"/api/getUserOrders": (200, [order])})
        orders = await client.get_user_orders()
        self.assertEqual(orders[0].timestamp, ts)
        self.assertEqual(orders[0].status, OrderStatus.PROCESSING)
        self.assertEqual(orders[0].items[0].product.name, "Classic Black Abaya")

    async def test_errors_become_remote_service_errors(self):
        client, _ = self.backend({"/api/deleteOrder": (500, {"message": "Unauthorized: admin only"})})
        with self.assertRaises(RemoteServiceError) as ctx:
            await client.delete_order(1)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn("admin only", str(ctx.exception))

    async def test_timeout_is_not_retried(self):
        request = httpx.Request("POST", BASE_URL + "/api/getAllProducts")
        client, recorder = self.backend(
            {"/api/getAllProducts": (0, httpx.ReadTimeout("slow", request=request))}
        )
        with self.assertRaises(RemoteServiceError) as ctx:
            await client.list_products()
        self.assertIn("timed out", str(ctx.exception))
        self.assertEqual(len(recorder.requests), 1)


class HttpIdentityProviderTestCase(unittest.IsolatedAsyncioTestCase):
    def provider(self, replies):
        recorder = Recorder(replies)
        return HttpIdentityProvider(BASE_URL, transport=httpx.MockTransport(recorder)), recorder

    async def test_login_and_logout(self):
        provider, recorder = self.provider(
            {
                "/auth/login": (200, {"principal": "alice", "token": "t1", "displayName": "Alice"}),
                "/auth/logout": (200, None),
            }
        )
        identity = await provider.authenticate("alice", "pw")
        self.assertEqual(identity, Identity(principal="alice", token="t1", display_name="Alice"))
        self.assertEqual(recorder.body(), {"username": "alice", "password": "pw"})

        await provider.revoke(identity)
        self.assertEqual(recorder.requests[-1].headers["authorization"], "Bearer t1")

    async def test_rejected_login(self):
        provider, _ = self.provider({"/auth/login": (401, {"message": "nope"})})
        with self.assertRaises(AuthenticationError):
            await provider.authenticate("alice", "bad")

    async def test_register(self):
        provider, recorder = self.provider(
            {"/auth/register": (200, {"principal": "carol", "displayName": "Carol"})}
        )
        identity = await provider.register("carol", "pw", "Carol")
        self.assertEqual(identity.principal, "carol")
        self.assertIsNone(identity.token)
        self.assertEqual(recorder.body()["displayName"], "Carol")


if __name__ == "__main__":
    unittest.main()
