"""
Query/Mutation layer over the session's backend client.

Reads go through the QueryCache and come back as a QueryResult; they never
raise. Mutations call the backend and, only on success, invalidate the
resources listed in INVALIDATES. A failed mutation leaves the cache as it was.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, Tuple, TypeVar

from backend.client import BackendClient
from backend.errors import InvalidQuantityError, NotAuthenticatedError
from backend.models import CartLine, Order, OrderStatus, PaymentMethod, Product
from store.cache import QueryCache, ResourceKey
from store.session import Session
from utils.logger import get_logger

_logger = get_logger(__name__)

T = TypeVar("T")

PRODUCTS_KEY: ResourceKey = ("products",)
CART_KEY: ResourceKey = ("cart",)
ORDERS_KEY: ResourceKey = ("orders",)

INVALIDATES = {
    "add_to_cart": ("cart",),
    "update_cart_item": ("cart",),
    "remove_from_cart": ("cart",),
    "create_order": ("cart", "orders"),
    "create_product": ("products",),
    "update_product": ("products",),
    "delete_product": ("products",),
    "update_order_status": ("orders",),
    "delete_order": ("orders",),
    "initialize_admin": (),
}


class QueryStatus(str, Enum):
    IDLE = "idle"  # not ready: no client, or session transition in flight
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    status: QueryStatus
    data: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == QueryStatus.SUCCESS

    @property
    def is_loading(self) -> bool:
        return self.status == QueryStatus.LOADING

    @classmethod
    def idle(cls) -> "QueryResult":
        return cls(QueryStatus.IDLE)

    @classmethod
    def success(cls, data: Any) -> "QueryResult":
        return cls(QueryStatus.SUCCESS, data=data)

    @classmethod
    def failed(cls, error: BaseException) -> "QueryResult":
        return cls(QueryStatus.ERROR, error=error)


def check_quantity(quantity: int, stock: Optional[int]) -> None:
    """
    Raise InvalidQuantityError unless 1 <= quantity <= stock.
    With stock unknown only the lower bound is checked.
    """
    if quantity < 1 or (stock is not None and quantity > stock):
        raise InvalidQuantityError(quantity, stock)


class StoreQueries:
    def __init__(self, session: Session):
        self.session = session

    @property
    def cache(self) -> QueryCache:
        return self.session.cache

    def is_loading(self, key: ResourceKey) -> bool:
        return self.cache.is_fetching(key)

    # ---------------------------
    # Reads
    # ---------------------------

    async def _read(
        self,
        key: ResourceKey,
        call: Callable[[BackendClient], Awaitable[Any]],
        session_scoped: bool = False,
    ) -> QueryResult:
        if not self.session.ready:
            return QueryResult.idle()
        client = self.session.client
        if session_scoped and client.identity.is_anonymous:
            return QueryResult.failed(NotAuthenticatedError())
        try:
            data = await self.cache.fetch(key, lambda: call(client))
        except Exception as e:
            _logger.warning(f"read {key} failed: {e}")
            return QueryResult.failed(e)
        return QueryResult.success(data)

    async def products(self) -> QueryResult[Tuple[Product, ...]]:
        async def call(client):
            return tuple(await client.list_products())

        return await self._read(PRODUCTS_KEY, call)

    async def product(self, product_id: Optional[int]) -> QueryResult[Optional[Product]]:
        if product_id is None:
            return QueryResult.idle()
        return await self._read(
            ("product", product_id), lambda client: client.get_product(product_id)
        )

    async def search_by_name(self, text: str) -> QueryResult[Tuple[Product, ...]]:
        if not text:
            return QueryResult.success(())

        async def call(client):
            return tuple(await client.search_products_by_name(text))

        return await self._read(("products", "search", text), call)

    async def search_by_category(self, category: str) -> QueryResult[Tuple[Product, ...]]:
        if not category:
            return QueryResult.success(())

        async def call(client):
            return tuple(await client.search_products_by_category(category))

        return await self._read(("products", "category", category), call)

    async def cart(self) -> QueryResult[Tuple[CartLine, ...]]:
        async def call(client):
            return tuple(await client.get_cart())

        return await self._read(CART_KEY, call, session_scoped=True)

    async def user_orders(self) -> QueryResult[Tuple[Order, ...]]:
        async def call(client):
            return tuple(await client.get_user_orders())

        return await self._read(ORDERS_KEY, call, session_scoped=True)

    async def order(self, order_id: Optional[int]) -> QueryResult[Optional[Order]]:
        if order_id is None:
            return QueryResult.idle()
        return await self._read(
            ("order", order_id), lambda client: client.get_order(order_id)
        )

    # ---------------------------
    # Mutations
    # ---------------------------

    def _require_client(self) -> BackendClient:
        if not self.session.ready or self.session.client.identity.is_anonymous:
            raise NotAuthenticatedError()
        return self.session.client

    async def _mutate(self, name: str, call: Callable[[BackendClient], Awaitable[Any]]):
        client = self._require_client()
        _logger.debug(f"mutation {name}")
        try:
            result = await call(client)
        except Exception as e:
            _logger.warning(f"mutation {name} failed: {e}")
            raise
        for resource in INVALIDATES[name]:
            self.cache.invalidate(resource)
        return result

    def known_stock(self, product_id: int) -> Optional[int]:
        """Stock of product_id from whatever the cache holds, newest first."""
        candidates = []
        entry = self.cache.peek(("product", product_id))
        if entry is not None and entry.data is not None:
            candidates.append((entry.fetched_at, entry.data.stock))
        entry = self.cache.peek(PRODUCTS_KEY)
        if entry is not None:
            for p in entry.data:
                if p.id == product_id:
                    candidates.append((entry.fetched_at, p.stock))
                    break
        if not candidates:
            return None
        return max(candidates)[1]

    async def _resolve_stock(self, product_id: int) -> Optional[int]:
        stock = self.known_stock(product_id)
        if stock is None:
            res = await self.product(product_id)
            if res.ok and res.data is not None:
                stock = res.data.stock
        return stock

    def _cart_quantity(self, product_id: int) -> int:
        entry = self.cache.peek(CART_KEY)
        if entry is None:
            return 0
        return sum(line.quantity for line in entry.data if line.product_id == product_id)

    async def add_to_cart(self, product_id: int, quantity: int) -> None:
        """Add quantity to the line; the merged line must still fit the stock."""
        self._require_client()
        check_quantity(quantity, None)
        stock = await self._resolve_stock(product_id)
        check_quantity(self._cart_quantity(product_id) + quantity, stock)
        await self._mutate(
            "add_to_cart", lambda c: c.add_to_cart(product_id, quantity)
        )

    async def update_cart_item(self, product_id: int, quantity: int) -> None:
        self._require_client()
        check_quantity(quantity, None)
        check_quantity(quantity, await self._resolve_stock(product_id))
        await self._mutate(
            "update_cart_item", lambda c: c.update_cart_item(product_id, quantity)
        )

    async def remove_from_cart(self, product_id: int) -> None:
        await self._mutate("remove_from_cart", lambda c: c.remove_from_cart(product_id))

    async def create_order(self, payment_method: PaymentMethod) -> int:
        method = PaymentMethod(payment_method)
        return await self._mutate("create_order", lambda c: c.create_order(method))

    async def create_product(
        self,
        name: str,
        description: str,
        price: int,
        image_url: str,
        stock: int,
        category: str,
    ) -> int:
        return await self._mutate(
            "create_product",
            lambda c: c.create_product(name, description, price, image_url, stock, category),
        )

    async def update_product(
        self,
        product_id: int,
        name: str,
        description: str,
        price: int,
        image_url: str,
        stock: int,
        category: str,
    ) -> None:
        await self._mutate(
            "update_product",
            lambda c: c.update_product(
                product_id, name, description, price, image_url, stock, category
            ),
        )

    async def delete_product(self, product_id: int) -> None:
        await self._mutate("delete_product", lambda c: c.delete_product(product_id))

    async def update_order_status(self, order_id: int, status: OrderStatus) -> None:
        status = OrderStatus(status)
        await self._mutate(
            "update_order_status", lambda c: c.update_order_status(order_id, status)
        )

    async def delete_order(self, order_id: int) -> None:
        await self._mutate("delete_order", lambda c: c.delete_order(order_id))

    async def initialize_admin(self) -> None:
        await self._mutate("initialize_admin", lambda c: c.initialize_admin())
