# In-process reference backend over SQLite.
# Implements the BackendClient procedures with the server-side rules the
# client relies on: cart cleared by order creation, stock decremented,
# order items kept as product snapshots, admin-only catalog/order writes.
from __future__ import annotations

import time
from datetime import datetime
from typing import List, Optional

from backend.client import BackendClient, IdentityProvider
from backend.database import connect, transaction
from backend.errors import AuthenticationError, RemoteServiceError
from backend.models import (
    ANONYMOUS,
    CartLine,
    Identity,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
)
from utils.logger import get_logger

_logger = get_logger(__name__)

_PRODUCT_COLS = "id, name, description, price, stock, category, image_url"


def _row_to_product(row) -> Product:
    return Product(
        id=int(row[0]),
        name=row[1],
        description=row[2],
        price=int(row[3]),
        stock=int(row[4]),
        category=row[5],
        image_url=row[6],
    )


class LocalBackend(BackendClient):
    def __init__(self, identity: Identity = ANONYMOUS):
        self.identity = identity

    def _require_session(self) -> str:
        if self.identity.is_anonymous:
            raise RemoteServiceError("Anonymous callers cannot do this.", 401)
        return self.identity.principal

    async def _is_admin(self, conn) -> bool:
        cur = await conn.execute(
            "SELECT role FROM users WHERE principal = ?;", (self.identity.principal,)
        )
        row = await cur.fetchone()
        await cur.close()
        return bool(row) and row[0] == "admin"

    async def _require_admin(self, conn) -> None:
        self._require_session()
        if not await self._is_admin(conn):
            raise RemoteServiceError("Unauthorized: admin only.", 403)

    # ---------------------------
    # Products
    # ---------------------------

    async def list_products(self) -> List[Product]:
        async with connect() as conn:
            cur = await conn.execute(f"SELECT {_PRODUCT_COLS} FROM products ORDER BY id;")
            rows = await cur.fetchall()
            await cur.close()
        return [_row_to_product(r) for r in rows]

    async def get_product(self, product_id: int) -> Optional[Product]:
        async with connect() as conn:
            cur = await conn.execute(
                f"SELECT {_PRODUCT_COLS} FROM products WHERE id = ?;", (product_id,)
            )
            row = await cur.fetchone()
            await cur.close()
        return _row_to_product(row) if row else None

    async def search_products_by_name(self, text: str) -> List[Product]:
        like = f"%{(text or '').strip().lower()}%"
        async with connect() as conn:
            cur = await conn.execute(
                f"SELECT {_PRODUCT_COLS} FROM products WHERE LOWER(name) LIKE ? ORDER BY id;",
                (like,),
            )
            rows = await cur.fetchall()
            await cur.close()
        return [_row_to_product(r) for r in rows]

    async def search_products_by_category(self, category: str) -> List[Product]:
        async with connect() as conn:
            cur = await conn.execute(
                f"SELECT {_PRODUCT_COLS} FROM products WHERE category = ? ORDER BY id;",
                (category,),
            )
            rows = await cur.fetchall()
            await cur.close()
        return [_row_to_product(r) for r in rows]

    # ---------------------------
    # Cart
    # ---------------------------

    async def _stock_of(self, conn, product_id: int) -> int:
        cur = await conn.execute("SELECT stock FROM products WHERE id = ?;", (product_id,))
        row = await cur.fetchone()
        await cur.close()
        if not row:
            raise RemoteServiceError(f"Product {product_id} not found.", 404)
        return int(row[0])

    async def get_cart(self) -> List[CartLine]:
        principal = self._require_session()
        async with connect() as conn:
            cur = await conn.execute(
                "SELECT product_id, qty FROM cart WHERE principal = ? ORDER BY rowid;",
                (principal,),
            )
            rows = await cur.fetchall()
            await cur.close()
        return [CartLine(product_id=int(r[0]), quantity=int(r[1])) for r in rows]

    async def add_to_cart(self, product_id: int, quantity: int) -> None:
        """
        Add quantity to the caller's line for product_id, capped at stock.
        """
        principal = self._require_session()
        if quantity <= 0:
            raise RemoteServiceError("Quantity must be positive.", 400)
        async with transaction() as conn:
            stock = await self._stock_of(conn, product_id)
            if stock <= 0:
                raise RemoteServiceError("Product is out of stock.", 409)
            cur = await conn.execute(
                "SELECT qty FROM cart WHERE principal = ? AND product_id = ?;",
                (principal, product_id),
            )
            row = await cur.fetchone()
            await cur.close()
            if row:
                await conn.execute(
                    "UPDATE cart SET qty = ? WHERE principal = ? AND product_id = ?;",
                    (min(int(row[0]) + quantity, stock), principal, product_id),
                )
            else:
                await conn.execute(
                    "INSERT INTO cart(principal, product_id, qty) VALUES (?, ?, ?);",
                    (principal, product_id, min(quantity, stock)),
                )

    async def update_cart_item(self, product_id: int, quantity: int) -> None:
        principal = self._require_session()
        async with transaction() as conn:
            stock = await self._stock_of(conn, product_id)
            if quantity < 1 or quantity > stock:
                raise RemoteServiceError(
                    f"Quantity must be between 1 and {stock}.", 400
                )
            await conn.execute(
                """
                INSERT INTO cart(principal, product_id, qty) VALUES (?, ?, ?)
                ON CONFLICT(principal, product_id) DO UPDATE SET qty = excluded.qty;
                """,
                (principal, product_id, quantity),
            )

    async def remove_from_cart(self, product_id: int) -> None:
        principal = self._require_session()
        async with transaction() as conn:
            await conn.execute(
                "DELETE FROM cart WHERE principal = ? AND product_id = ?;",
                (principal, product_id),
            )

    # ---------------------------
    # Orders
    # ---------------------------

    async def create_order(self, payment_method: PaymentMethod) -> int:
        """
        Turn the caller's cart into an order and return its id.
        Lines whose product no longer exists are dropped. The whole thing
        is one transaction: on any failure nothing is written.
        """
        principal = self._require_session()
        try:
            method = PaymentMethod(payment_method)
        except ValueError as e:
            raise RemoteServiceError(f"Unknown payment method {payment_method!r}.", 400) from e

        async with transaction() as conn:
            cur = await conn.execute(
                f"""
                SELECT c.qty, {', '.join('p.' + c for c in _PRODUCT_COLS.split(', '))}
                FROM cart c JOIN products p ON p.id = c.product_id
                WHERE c.principal = ?
                ORDER BY c.rowid;
                """,
                (principal,),
            )
            rows = await cur.fetchall()
            await cur.close()
            if not rows:
                raise RemoteServiceError("Cart is empty.", 409)

            lines = [(int(r[0]), _row_to_product(r[1:])) for r in rows]
            for qty, prod in lines:
                if qty > prod.stock:
                    raise RemoteServiceError(
                        f"Only {prod.stock} of {prod.name} left in stock.", 409
                    )
            total = sum(prod.price * qty for qty, prod in lines)

            cur = await conn.execute(
                """
                INSERT INTO orders(principal, total, status, payment_method, ts)
                VALUES (?, ?, ?, ?, ?);
                """,
                (principal, total, OrderStatus.PENDING.value, method.value, time.time_ns()),
            )
            order_id = cur.lastrowid
            await cur.close()
            for line_no, (qty, prod) in enumerate(lines, start=1):
                await conn.execute(
                    """
                    INSERT INTO orderitems(order_id, line_no, product_id, name, description,
                                           price, stock, category, image_url, qty)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (order_id, line_no, prod.id, prod.name, prod.description,
                     prod.price, prod.stock, prod.category, prod.image_url, qty),
                )
                await conn.execute(
                    "UPDATE products SET stock = stock - ? WHERE id = ?;",
                    (qty, prod.id),
                )
            await conn.execute("DELETE FROM cart WHERE principal = ?;", (principal,))

        _logger.info(f"Order {order_id} created for {principal}, total {total}")
        return int(order_id)

    async def _load_orders(self, conn, where: str, params: tuple) -> List[Order]:
        cur = await conn.execute(
            f"""
            SELECT id, principal, total, status, payment_method, ts
            FROM orders {where}
            ORDER BY ts DESC, id DESC;
            """,
            params,
        )
        order_rows = await cur.fetchall()
        await cur.close()

        orders = []
        for o in order_rows:
            cur = await conn.execute(
                """
                SELECT product_id, name, description, price, stock, category, image_url, qty
                FROM orderitems WHERE order_id = ? ORDER BY line_no;
                """,
                (o[0],),
            )
            item_rows = await cur.fetchall()
            await cur.close()
            items = tuple(
                OrderItem(product=_row_to_product(r[:7]), quantity=int(r[7]))
                for r in item_rows
            )
            orders.append(
                Order(
                    id=int(o[0]),
                    items=items,
                    total=int(o[2]),
                    status=OrderStatus(o[3]),
                    payment_method=PaymentMethod(o[4]),
                    user=o[1],
                    timestamp=datetime.fromtimestamp(int(o[5]) / 1_000_000_000),
                )
            )
        return orders

    async def get_user_orders(self) -> List[Order]:
        """Admins see every order, customers their own."""
        principal = self._require_session()
        async with connect() as conn:
            if await self._is_admin(conn):
                return await self._load_orders(conn, "", ())
            return await self._load_orders(conn, "WHERE principal = ?", (principal,))

    async def get_order(self, order_id: int) -> Optional[Order]:
        async with connect() as conn:
            orders = await self._load_orders(conn, "WHERE id = ?", (order_id,))
            if not orders:
                return None
            order = orders[0]
            if order.user != self.identity.principal and not await self._is_admin(conn):
                return None
        return order

    # ---------------------------
    # Admin
    # ---------------------------

    async def create_product(
        self, name, description, price, image_url, stock, category
    ) -> int:
        async with transaction() as conn:
            await self._require_admin(conn)
            cur = await conn.execute(
                """
                INSERT INTO products(name, description, price, stock, category, image_url)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (name, description, int(price), int(stock), category, image_url),
            )
            product_id = cur.lastrowid
            await cur.close()
        return int(product_id)

    async def update_product(
        self, product_id, name, description, price, image_url, stock, category
    ) -> None:
        async with transaction() as conn:
            await self._require_admin(conn)
            res = await conn.execute(
                """
                UPDATE products
                SET name = ?, description = ?, price = ?, stock = ?, category = ?, image_url = ?
                WHERE id = ?;
                """,
                (name, description, int(price), int(stock), category, image_url, product_id),
            )
            if res.rowcount == 0:
                raise RemoteServiceError(f"Product {product_id} not found.", 404)

    async def delete_product(self, product_id: int) -> None:
        async with transaction() as conn:
            await self._require_admin(conn)
            res = await conn.execute("DELETE FROM products WHERE id = ?;", (product_id,))
            if res.rowcount == 0:
                raise RemoteServiceError(f"Product {product_id} not found.", 404)

    async def update_order_status(self, order_id: int, status: OrderStatus) -> None:
        try:
            status = OrderStatus(status)
        except ValueError as e:
            raise RemoteServiceError(f"Unknown order status {status!r}.", 400) from e
        async with transaction() as conn:
            await self._require_admin(conn)
            res = await conn.execute(
                "UPDATE orders SET status = ? WHERE id = ?;", (status.value, order_id)
            )
            if res.rowcount == 0:
                raise RemoteServiceError(f"Order {order_id} not found.", 404)

    async def delete_order(self, order_id: int) -> None:
        async with transaction() as conn:
            await self._require_admin(conn)
            res = await conn.execute("DELETE FROM orders WHERE id = ?;", (order_id,))
            if res.rowcount == 0:
                raise RemoteServiceError(f"Order {order_id} not found.", 404)

    async def initialize_admin(self) -> None:
        """The first caller becomes admin. Later calls by non-admins fail."""
        principal = self._require_session()
        async with transaction() as conn:
            cur = await conn.execute("SELECT 1 FROM users WHERE role = 'admin' LIMIT 1;")
            exists = await cur.fetchone()
            await cur.close()
            if not exists:
                await conn.execute(
                    "UPDATE users SET role = 'admin' WHERE principal = ?;", (principal,)
                )
                _logger.info(f"{principal} is now admin")
                return
            if not await self._is_admin(conn):
                raise RemoteServiceError("Admin already initialized.", 403)


class LocalIdentityProvider(IdentityProvider):
    """Username/password check against the local users table."""

    async def authenticate(self, username: str, password: str) -> Identity:
        async with connect() as conn:
            cur = await conn.execute(
                "SELECT principal, display_name FROM users WHERE principal = ? AND pwd = ?;",
                (username, password),
            )
            row = await cur.fetchone()
            await cur.close()
        if not row:
            raise AuthenticationError("Invalid username or password.")
        return Identity(principal=row[0], display_name=row[1])

    async def revoke(self, identity: Identity) -> None:
        _logger.debug(f"Session of {identity.principal} ended")

    async def register(
        self, username: str, password: str, display_name: str
    ) -> Identity:
        if not username or username == ANONYMOUS.principal:
            raise AuthenticationError("Username not allowed.")
        async with transaction() as conn:
            cur = await conn.execute(
                "SELECT 1 FROM users WHERE principal = ?;", (username,)
            )
            taken = await cur.fetchone()
            await cur.close()
            if taken:
                raise AuthenticationError("Username already taken.")
            await conn.execute(
                "INSERT INTO users(principal, pwd, display_name) VALUES (?, ?, ?);",
                (username, password, display_name),
            )
        return Identity(principal=username, display_name=display_name)
