"""
Remote procedure surface of the storefront backend.

BackendClient is the typed handle the rest of the app talks to. One is
built per identity by the session; HttpBackend talks to a remote service,
LocalBackend (backend.local) runs the same procedures against SQLite.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from backend.errors import AuthenticationError, RemoteServiceError
from backend.models import (
    CartLine,
    Identity,
    Order,
    OrderStatus,
    PaymentMethod,
    Product,
)
from utils.logger import get_logger

_logger = get_logger(__name__)


class BackendClient(ABC):
    identity: Identity

    # ---------------------------
    # Products
    # ---------------------------

    @abstractmethod
    async def list_products(self) -> List[Product]: ...

    @abstractmethod
    async def get_product(self, product_id: int) -> Optional[Product]: ...

    @abstractmethod
    async def search_products_by_name(self, text: str) -> List[Product]: ...

    @abstractmethod
    async def search_products_by_category(self, category: str) -> List[Product]: ...

    # ---------------------------
    # Cart (requires session)
    # ---------------------------

    @abstractmethod
    async def get_cart(self) -> List[CartLine]: ...

    @abstractmethod
    async def add_to_cart(self, product_id: int, quantity: int) -> None: ...

    @abstractmethod
    async def update_cart_item(self, product_id: int, quantity: int) -> None: ...

    @abstractmethod
    async def remove_from_cart(self, product_id: int) -> None: ...

    # ---------------------------
    # Orders
    # ---------------------------

    @abstractmethod
    async def create_order(self, payment_method: PaymentMethod) -> int: ...

    @abstractmethod
    async def get_user_orders(self) -> List[Order]: ...

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[Order]: ...

    # ---------------------------
    # Admin
    # ---------------------------

    @abstractmethod
    async def create_product(
        self,
        name: str,
        description: str,
        price: int,
        image_url: str,
        stock: int,
        category: str,
    ) -> int: ...

    @abstractmethod
    async def update_product(
        self,
        product_id: int,
        name: str,
        description: str,
        price: int,
        image_url: str,
        stock: int,
        category: str,
    ) -> None: ...

    @abstractmethod
    async def delete_product(self, product_id: int) -> None: ...

    @abstractmethod
    async def update_order_status(self, order_id: int, status: OrderStatus) -> None: ...

    @abstractmethod
    async def delete_order(self, order_id: int) -> None: ...

    @abstractmethod
    async def initialize_admin(self) -> None: ...

    async def close(self) -> None:
        """Release transport resources. Default is a no-op."""


class IdentityProvider(ABC):
    """External login/logout flow."""

    @abstractmethod
    async def authenticate(self, username: str, password: str) -> Identity: ...

    @abstractmethod
    async def revoke(self, identity: Identity) -> None: ...

    @abstractmethod
    async def register(
        self, username: str, password: str, display_name: str
    ) -> Identity: ...


# ---------------------------
# HTTP transport
# ---------------------------


def _handle_response(response: httpx.Response, not_found_ok: bool = False) -> Any:
    if response.status_code == 200:
        if not response.content:
            return None
        return response.json()
    # only single-id reads treat 404 as "no such record"
    if response.status_code == 404 and not_found_ok:
        return None

    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        message = str(body["message"])
    else:
        message = response.text or response.reason_phrase
    raise RemoteServiceError(message, status_code=response.status_code)


class HttpBackend(BackendClient):
    """
    Calls `POST {base_url}/api/<procedure>` with a JSON body of arguments.
    A 404 reply to getProduct/getOrder maps to "not found" (None); every
    other failure, 404 included, raises RemoteServiceError. No retries.
    """

    def __init__(
        self,
        base_url: str,
        identity: Identity,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.identity = identity
        headers = {}
        if identity.token:
            headers["Authorization"] = f"Bearer {identity.token}"
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def _call(self, procedure: str, not_found_ok: bool = False, **args: Any) -> Any:
        _logger.debug(f"-> {procedure} {args}")
        try:
            response = await self._http.post(f"/api/{procedure}", json=args)
        except httpx.TimeoutException as e:
            raise RemoteServiceError(f"{procedure} timed out") from e
        except httpx.RequestError as e:
            _logger.warning(f"{procedure} failed: {e}")
            raise RemoteServiceError(f"{procedure} failed: {e}") from e
        return _handle_response(response, not_found_ok)

    async def close(self) -> None:
        await self._http.aclose()

    async def list_products(self) -> List[Product]:
        rows = await self._call("getAllProducts")
        return [Product.from_wire(r) for r in rows or []]

    async def get_product(self, product_id: int) -> Optional[Product]:
        row = await self._call("getProduct", not_found_ok=True, id=product_id)
        return Product.from_wire(row) if row else None

    async def search_products_by_name(self, text: str) -> List[Product]:
        rows = await self._call("searchProductsByName", name=text)
        return [Product.from_wire(r) for r in rows or []]

    async def search_products_by_category(self, category: str) -> List[Product]:
        rows = await self._call("searchProductsByCategory", category=category)
        return [Product.from_wire(r) for r in rows or []]

    async def get_cart(self) -> List[CartLine]:
        rows = await self._call("getCart")
        return [CartLine.from_wire(r) for r in rows or []]

    async def add_to_cart(self, product_id: int, quantity: int) -> None:
        await self._call("addToCart", productId=product_id, quantity=quantity)

    async def update_cart_item(self, product_id: int, quantity: int) -> None:
        await self._call("updateCartItem", productId=product_id, quantity=quantity)

    async def remove_from_cart(self, product_id: int) -> None:
        await self._call("removeFromCart", productId=product_id)

    async def create_order(self, payment_method: PaymentMethod) -> int:
        order_id = await self._call(
            "createOrder", paymentMethod=PaymentMethod(payment_method).value
        )
        return int(order_id)

    async def get_user_orders(self) -> List[Order]:
        rows = await self._call("getUserOrders")
        return [Order.from_wire(r) for r in rows or []]

    async def get_order(self, order_id: int) -> Optional[Order]:
        row = await self._call("getOrder", not_found_ok=True, id=order_id)
        return Order.from_wire(row) if row else None

    async def create_product(
        self, name, description, price, image_url, stock, category
    ) -> int:
        product_id = await self._call(
            "createProduct",
            name=name,
            description=description,
            price=price,
            imageUrl=image_url,
            stock=stock,
            category=category,
        )
        return int(product_id)

    async def update_product(
        self, product_id, name, description, price, image_url, stock, category
    ) -> None:
        await self._call(
            "updateProduct",
            id=product_id,
            name=name,
            description=description,
            price=price,
            imageUrl=image_url,
            stock=stock,
            category=category,
        )

    async def delete_product(self, product_id: int) -> None:
        await self._call("deleteProduct", id=product_id)

    async def update_order_status(self, order_id: int, status: OrderStatus) -> None:
        await self._call(
            "updateOrderStatus", orderId=order_id, status=OrderStatus(status).value
        )

    async def delete_order(self, order_id: int) -> None:
        await self._call("deleteOrder", orderId=order_id)

    async def initialize_admin(self) -> None:
        await self._call("initializeAdmin")


class HttpIdentityProvider(IdentityProvider):
    """Token login against `{base_url}/auth/*`."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def _post(self, path: str, body: Dict[str, Any], token: str = None) -> Any:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as http:
            try:
                response = await http.post(path, json=body, headers=headers)
            except httpx.RequestError as e:
                raise RemoteServiceError(f"{path} failed: {e}") from e
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid username or password.")
        return _handle_response(response)

    @staticmethod
    def _identity(data: Dict[str, Any]) -> Identity:
        return Identity(
            principal=str(data["principal"]),
            token=data.get("token"),
            display_name=data.get("displayName", ""),
        )

    async def authenticate(self, username: str, password: str) -> Identity:
        data = await self._post(
            "/auth/login", {"username": username, "password": password}
        )
        if not data:
            raise AuthenticationError("Invalid username or password.")
        return self._identity(data)

    async def revoke(self, identity: Identity) -> None:
        if identity.token:
            await self._post("/auth/logout", {}, token=identity.token)

    async def register(
        self, username: str, password: str, display_name: str
    ) -> Identity:
        data = await self._post(
            "/auth/register",
            {"username": username, "password": password, "displayName": display_name},
        )
        return self._identity(data)
