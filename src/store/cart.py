"""
Enriched cart view derived from two cached queries: cart lines and the
product list. A pure join, memoized on the identity of its two inputs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple

from backend.models import CartLine, EnrichedCartItem, Product
from store.cache import ALL
from store.queries import CART_KEY, PRODUCTS_KEY, StoreQueries
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass(frozen=True)
class CartView:
    items: Tuple[EnrichedCartItem, ...] = ()
    total_items: int = 0
    subtotal: int = 0
    is_loading: bool = False


EMPTY_CART = CartView()


def aggregate_cart(lines: Sequence[CartLine], products: Sequence[Product]) -> CartView:
    """
    Join cart lines to products, keeping cart order.
    Lines whose product is missing are left out of items and totals.
    """
    by_id = {p.id: p for p in products}
    items = tuple(
        EnrichedCartItem(product=by_id[line.product_id], quantity=line.quantity)
        for line in lines
        if line.product_id in by_id
    )
    return CartView(
        items=items,
        total_items=sum(i.quantity for i in items),
        subtotal=sum(i.line_total for i in items),
    )


def quantity_bounds(product: Product) -> Tuple[int, int]:
    return 1, product.stock


class CartAggregator:
    """
    Serves the current CartView from the cache.

    view() is synchronous and never raises; while either source is loading
    it exposes the previous view (or the empty one). Listeners are told when
    cart or product data changed so they can ask for a new view.
    """

    def __init__(self, queries: StoreQueries):
        self._queries = queries
        self._inputs: Tuple[Optional[tuple], Optional[tuple]] = (None, None)
        self._last = EMPTY_CART
        self._listeners: List[Callable[[], None]] = []
        self.recomputations = 0
        queries.cache.subscribe(self._on_resource_changed)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _on_resource_changed(self, name: str) -> None:
        if name == ALL:
            # new session: never show the previous principal's cart
            self._inputs = (None, None)
            self._last = EMPTY_CART
        if name in ("cart", "products", ALL):
            for listener in list(self._listeners):
                listener()

    def view(self) -> CartView:
        cache = self._queries.cache
        lines_entry = cache.peek(CART_KEY)
        products_entry = cache.peek(PRODUCTS_KEY)
        loading = self._queries.is_loading(CART_KEY) or self._queries.is_loading(
            PRODUCTS_KEY
        )

        if lines_entry is None or products_entry is None:
            base = self._last if loading else EMPTY_CART
            return replace(base, is_loading=loading)

        lines, products = lines_entry.data, products_entry.data
        if lines is not self._inputs[0] or products is not self._inputs[1]:
            self._last = aggregate_cart(lines, products)
            self._inputs = (lines, products)
            self.recomputations += 1
            _logger.debug(
                f"cart recomputed: {self._last.total_items} items, subtotal {self._last.subtotal}"
            )
        if loading:
            return replace(self._last, is_loading=True)
        return self._last

    async def refresh(self) -> CartView:
        """Fetch (or reuse) both sources, then return the view."""
        cart_res, prod_res = await asyncio.gather(
            self._queries.cart(), self._queries.products()
        )
        for res in (cart_res, prod_res):
            if res.error is not None:
                _logger.debug(f"cart source unavailable: {res.error}")
        return self.view()
