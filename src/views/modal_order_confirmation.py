from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, MarkdownViewer

from backend.models import Order
from utils.pure import format_price, generate_markdown_table


def order_markdown(order: Order, wallet_number: str) -> str:
    rows = [
        [
            item.product.name,
            item.quantity,
            format_price(item.product.price),
            format_price(item.product.price * item.quantity),
        ]
        for item in order.items
    ]
    md = (
        f"### Order #{order.id} confirmed\n\n"
        f"Placed: {order.timestamp:%Y-%m-%d %H:%M}  \n"
        f"Status: **{order.status.value}**  \n"
        f"Payment: {order.payment_method.label}\n\n"
    )
    md += generate_markdown_table(
        ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "c", "r", "r"]
    )
    md += f"\n\n**Total:** {format_price(order.total)}"
    if order.payment_method.is_wallet:
        md += (
            f"\n\n> Payment pending: send {format_price(order.total)} via "
            f"{order.payment_method.label} to {wallet_number} and share the screenshot."
        )
    return md


class OrderConfirmationModal(ModalScreen[None]):
    """Shows an order by id, or a not-found message."""

    def __init__(self, order_id: int) -> None:
        super().__init__()
        self._order_id = order_id

    def compose(self) -> ComposeResult:
        with Vertical(id="div-confirmation"):
            yield MarkdownViewer("### Loading order...", show_table_of_contents=False)
            yield Button("Continue Shopping", id="btn-done", variant="primary")

    def on_mount(self) -> None:
        self.load_order()

    @work(exclusive=True)
    async def load_order(self) -> None:
        res = await self.app.state.queries.order(self._order_id)
        viewer = self.query_one(MarkdownViewer)
        if res.error is not None:
            await viewer.document.update(f"### Could not load order\n\n{res.error}")
        elif res.data is None:
            await viewer.document.update(
                "### Order not found\n\nWe couldn't find the order you're looking for."
            )
        else:
            await viewer.document.update(
                order_markdown(res.data, self.app.state.settings.wallet_number)
            )

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss()

    @on(Button.Pressed, "#btn-done")
    def handle_done(self) -> None:
        self.dismiss()
