from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from backend.errors import StorefrontError
from backend.models import Product
from store.cart import quantity_bounds
from utils.messages import LoginRequestedMessage
from utils.pure import format_price, generate_markdown_table, stock_badge


class ProdDetailModal(ModalScreen[bool]):
    """
    prod detail, plus add to cart
    Will return true if cart changed, false if not
    """

    order_qty = reactive(1)

    def __init__(self, product_id: int) -> None:
        super().__init__()
        self._product_id = product_id
        self._prod: Optional[Product] = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical(id="div-order"):
                yield Label("Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    def on_mount(self):
        self.load_product()

    @work(exclusive=True)
    async def load_product(self) -> None:
        res = await self.app.state.queries.product(self._product_id)
        viewer = self.query_one(MarkdownViewer)
        add_btn = self.query_one("#btn-addcart", Button)

        if not res.ok or res.data is None:
            msg = "Product not found." if res.ok else f"Could not load product: {res.error}"
            await viewer.document.update(f"### {msg}")
            add_btn.disabled = True
            return

        self._prod = res.data
        rows = [
            ["Category", self._prod.category],
            ["Price", format_price(self._prod.price)],
            ["Availability", stock_badge(self._prod.stock)],
            ["Description", self._prod.description],
        ]
        md = f"### {self._prod.name}\n\n" + generate_markdown_table(
            ["Attribute", "Value"], rows, ["l", "l"]
        )
        await viewer.document.update(md)

        if self._prod.stock < 1:
            add_btn.label = "Out of Stock"
            add_btn.disabled = True
            add_btn.variant = "warning"
        self.order_qty = 1
        self._refresh_stepper()
        self.query_one("#input-order-qty").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Input.Changed, "#input-order-qty")
    def handle_qty_input(self, message: Input.Changed) -> None:
        if self._prod is None or not message.value.isdigit():
            return
        low, high = quantity_bounds(self._prod)
        qty = int(message.value)
        if low <= qty <= high:
            self.order_qty = qty

    def watch_order_qty(self, qty: int) -> None:
        self._refresh_stepper()
        input_order_qty = self.query_one("#input-order-qty", Input)
        if input_order_qty.value != str(qty):
            input_order_qty.value = str(qty)

    def _refresh_stepper(self) -> None:
        if self._prod is None:
            return
        low, high = quantity_bounds(self._prod)
        self.query_one("#btn-sub-qty").disabled = self.order_qty <= low
        self.query_one("#btn-add-qty").disabled = self.order_qty >= high

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        if self._prod and self.order_qty < quantity_bounds(self._prod)[1]:
            self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        if self.order_qty > 1:
            self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        if not self.app.state.is_logged_in:
            self.notify("Please login to add items to cart", severity="error")
            self.app.post_message(LoginRequestedMessage())
            return
        if self._prod is None:
            return

        try:
            await self.app.state.queries.add_to_cart(self._prod.id, self.order_qty)
        except StorefrontError as e:
            self.notify(f"Failed to add to cart: {e}", severity="error")
            return

        self.notify(f"{self._prod.name} added to cart!")
        self.dismiss(True)
