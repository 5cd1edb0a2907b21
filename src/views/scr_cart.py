from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label, Rule

from backend.errors import StorefrontError
from backend.models import EnrichedCartItem
from store.cart import CartView, quantity_bounds
from utils.messages import LoginRequestedMessage
from utils.pure import format_price
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartScreen(BaseScreen):
    """
    Enriched cart lines with quantity controls, subtotal and checkout.
    Everything shown comes from the cart aggregator.
    """

    BINDINGS = [
        Binding("plus,equals_sign", "inc_qty", "Qty +1", show=True, key_display="+"),
        Binding("minus", "dec_qty", "Qty -1", show=True, key_display="-"),
        Binding("delete", "remove_item", "Remove", show=True),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._view = CartView()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield DataTable(id="table-cart")
        yield Label("", id="label-cart-empty")
        yield Label("Subtotal: -", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("-", id="btn-dec-qty")
            yield Button("+", id="btn-inc-qty")
            yield Button("Remove", id="btn-remove", variant="error")
            yield Button("Refresh", id="btn-refresh")
            yield Button("Proceed to Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Product", "Unit Price", "Quantity", "Line Total")
        self.handle_cart_change()

    def on_resource_changed(self, name: str) -> None:
        if name in ("cart", "products", "*"):
            self.handle_cart_change()

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)  # must exclusive, else two refreshes race on the table
    async def handle_cart_change(self):
        view = await self.app.state.cart.refresh()
        self.render_cart(view)

    def render_cart(self, view: CartView) -> None:
        self._view = view
        table = self.query_one(DataTable)
        cursor_row = table.cursor_row
        table.clear()
        for item in view.items:
            table.add_row(
                item.product.name,
                format_price(item.product.price),
                item.quantity,
                format_price(item.line_total),
                key=str(item.product.id),
            )
        if view.items:
            table.move_cursor(row=min(cursor_row, len(view.items) - 1))

        empty = self.query_one("#label-cart-empty", Label)
        if view.is_loading and not view.items:
            empty.update("Loading cart...")
        elif not self.app.state.is_logged_in:
            empty.update("Log in to see your cart.")
        elif not view.items:
            empty.update("Your cart is empty. Add some products to get started!")
        else:
            empty.update("")
        self.query_one("#label-cart-total", Label).update(
            f"Subtotal ({view.total_items} items): {format_price(view.subtotal)}"
        )
        self.query_one("#btn-checkout").disabled = not view.items

    def _selected(self) -> Optional[EnrichedCartItem]:
        table = self.query_one(DataTable)
        if not self._view.items or table.cursor_row is None:
            return None
        if table.cursor_row >= len(self._view.items):
            return None
        return self._view.items[table.cursor_row]

    @on(Button.Pressed, "#btn-inc-qty")
    def action_inc_qty(self) -> None:
        item = self._selected()
        if item:
            self.change_quantity(item, item.quantity + 1)

    @on(Button.Pressed, "#btn-dec-qty")
    def action_dec_qty(self) -> None:
        item = self._selected()
        if item:
            self.change_quantity(item, item.quantity - 1)

    @work(exclusive=True, group="cart-mutation")
    async def change_quantity(self, item: EnrichedCartItem, new_qty: int) -> None:
        low, high = quantity_bounds(item.product)
        if not low <= new_qty <= high:
            return
        try:
            await self.app.state.queries.update_cart_item(item.product.id, new_qty)
        except StorefrontError as e:
            self.notify(f"Failed to update quantity: {e}", severity="error")

    @on(Button.Pressed, "#btn-remove")
    @work(exclusive=True, group="cart-mutation")
    async def action_remove_item(self) -> None:
        item = self._selected()
        if item is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Remove {item.product.name} from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return
        try:
            await self.app.state.queries.remove_from_cart(item.product.id)
        except StorefrontError as e:
            self.notify(f"Failed to remove item: {e}", severity="error")
            return
        self.notify(f"{item.product.name} removed from cart")

    @on(Button.Pressed, "#btn-checkout")
    @work(exclusive=True)
    async def handle_checkout(self) -> None:
        if not self.app.state.is_logged_in:
            self.app.post_message(LoginRequestedMessage())
            return
        if not self._view.items:
            self.notify("Your cart is empty", severity="warning")
            return
        await self.app.push_screen_wait(CheckoutModal())
