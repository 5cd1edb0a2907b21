# provide dataclass models, decoded from the backend's wire dicts

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

CATEGORIES = ["Abayas", "Hijabs", "Bags", "Perfumes", "Accessories"]


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    EASYPAISA = "easypaisa"
    JAZZCASH = "jazzcash"

    @property
    def label(self) -> str:
        return {
            PaymentMethod.CASH: "Cash on Delivery",
            PaymentMethod.EASYPAISA: "EasyPaisa",
            PaymentMethod.JAZZCASH: "JazzCash",
        }[self]

    @property
    def is_wallet(self) -> bool:
        return self is not PaymentMethod.CASH


def _pick(data: Dict[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return default


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    description: str
    price: int  # whole currency units
    stock: int
    category: str
    image_url: str = ""

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Product":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            description=data.get("description", ""),
            price=int(data["price"]),
            stock=int(data["stock"]),
            category=data.get("category", ""),
            image_url=_pick(data, "imageUrl", "image_url", default=""),
        )


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "CartLine":
        return cls(
            product_id=int(_pick(data, "productId", "product_id")),
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class EnrichedCartItem:
    """A cart line joined with its product. Never persisted."""

    product: Product
    quantity: int

    @property
    def line_total(self) -> int:
        return self.product.price * self.quantity


@dataclass(frozen=True)
class OrderItem:
    product: Product  # snapshot taken when the order was created
    quantity: int

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "OrderItem":
        return cls(
            product=Product.from_wire(data["product"]),
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class Order:
    id: int
    items: Tuple[OrderItem, ...]
    total: int
    status: OrderStatus
    payment_method: PaymentMethod
    user: str
    timestamp: datetime

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Order":
        # backend timestamps are nanoseconds since the epoch
        ts = int(data["timestamp"])
        return cls(
            id=int(data["id"]),
            items=tuple(OrderItem.from_wire(i) for i in data.get("items", [])),
            total=int(data["total"]),
            status=OrderStatus(data["status"]),
            payment_method=PaymentMethod(
                _pick(data, "paymentMethod", "payment_method")
            ),
            user=str(data["user"]),
            timestamp=datetime.fromtimestamp(ts / 1_000_000_000),
        )


@dataclass(frozen=True)
class Identity:
    """
    The authenticated principal.
    ANONYMOUS stands for "not logged in".
    """

    principal: str
    token: Optional[str] = field(default=None, repr=False)
    display_name: str = ""

    @property
    def is_anonymous(self) -> bool:
        return self.principal == ANONYMOUS.principal


ANONYMOUS = Identity(principal="anonymous", display_name="Guest")
