from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer, RadioButton, RadioSet

from backend.errors import StorefrontError
from backend.models import PaymentMethod
from utils.pure import format_price, generate_markdown_table
from views.modal_dialog import DialogModal
from views.modal_order_confirmation import OrderConfirmationModal


class CheckoutModal(ModalScreen[bool]):
    """
    Order summary, customer info and payment method.
    Return True if an order was placed.
    """

    def compose(self) -> ComposeResult:
        with VerticalScroll(id="div-checkout"):
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Full Name *")
            yield Input(placeholder="Enter your full name", id="input-name")
            yield Label("Phone Number *")
            yield Input(placeholder="03XXXXXXXXX", id="input-phone", type="text")
            yield Label("Delivery Address *")
            yield Input(placeholder="House no., Street, Area, City", id="input-address")
            yield Label("Payment Method")
            with RadioSet(id="radio-payment"):
                for i, method in enumerate(PaymentMethod):
                    yield RadioButton(method.label, value=i == 0, id=f"radio-{method.value}")
            yield Label("", id="label-wallet-hint")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        view = self.app.state.cart.view()
        headers = ["Product Name", "Unit Price", "Quantity", "Total Price"]
        rows = [
            [
                item.product.name,
                format_price(item.product.price),
                item.quantity,
                format_price(item.line_total),
            ]
            for item in view.items
        ]
        md = "### Order Summary\n\n" + generate_markdown_table(
            headers, rows, ["l", "c", "c", "c"]
        )
        md += f"\n\n**Subtotal:** {format_price(view.subtotal)}"
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#input-name").focus()

    def _payment_method(self) -> PaymentMethod:
        pressed = self.query_one(RadioSet).pressed_button
        if pressed is None:
            return PaymentMethod.CASH
        return PaymentMethod(pressed.id.removeprefix("radio-"))

    @on(RadioSet.Changed)
    def handle_payment_changed(self) -> None:
        method = self._payment_method()
        hint = self.query_one("#label-wallet-hint", Label)
        if method.is_wallet:
            hint.update(
                f"Send payment via {method.label} to {self.app.state.settings.wallet_number} "
                "and share the screenshot with us."
            )
        else:
            hint.update("Pay with cash when your order is delivered.")

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        missing = [
            field
            for field in ("#input-name", "#input-phone", "#input-address")
            if not self.query_one(field, Input).value.strip()
        ]
        if missing:
            for field in missing:
                self.query_one(field, Input).add_class("-invalid")
            self.query_one(missing[0], Input).focus()
            self.notify("Please fill in all fields", severity="error")
            return

        if not self.app.state.cart.view().items:
            self.notify("Your cart is empty", severity="error")
            return

        if not await self.app.push_screen_wait(
            DialogModal(
                "Place order? This cannot be undone.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        submit = self.query_one("#btn-submit", Button)
        submit.disabled = True
        try:
            order_id = await self.app.state.queries.create_order(self._payment_method())
        except StorefrontError as e:
            self.notify(f"Failed to place order. Please try again. ({e})", severity="error")
            submit.disabled = False
            return

        self.notify("Order placed successfully!")
        await self.app.push_screen_wait(OrderConfirmationModal(order_id))
        self.dismiss(True)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)
