from typing import Optional, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import (
    Button,
    DataTable,
    Input,
    Label,
    MarkdownViewer,
    Select,
    TabbedContent,
    TabPane,
)

from backend.errors import StorefrontError
from backend.models import CATEGORIES, Order, OrderStatus, Product
from utils.messages import LoginRequestedMessage
from utils.pure import format_price, generate_markdown_table, parse_product_form
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal

SAMPLE_PRODUCTS = [
    dict(name="Classic Black Abaya", description="Timeless black abaya in breathable fabric.",
         price=3500, stock=15, category="Abayas", image_url="abaya-black.jpg"),
    dict(name="Embroidered Navy Abaya", description="Navy abaya with gold embroidery.",
         price=5500, stock=8, category="Abayas", image_url="abaya-navy.jpg"),
    dict(name="Jersey Hijab", description="Stretchy everyday jersey hijab.",
         price=900, stock=50, category="Hijabs", image_url="hijab-jersey.jpg"),
    dict(name="Silk Hijab", description="Lightweight silk hijab with a soft sheen.",
         price=1800, stock=25, category="Hijabs", image_url="hijab-silk.jpg"),
    dict(name="Crossbody Bag", description="Compact crossbody bag with adjustable strap.",
         price=3200, stock=12, category="Bags", image_url="bag-crossbody.jpg"),
    dict(name="Rose Attar", description="Alcohol free rose attar, 12ml.",
         price=1500, stock=30, category="Perfumes", image_url="perfume-rose.jpg"),
    dict(name="Magnetic Hijab Pins", description="Set of six magnetic pins.",
         price=600, stock=40, category="Accessories", image_url="pins-magnetic.jpg"),
]


class AdminScreen(BaseScreen):
    """
    Admin dashboard: products tab (create, edit, delete, load samples)
    and orders tab (status updates, delete). Requires login; the backend
    decides who is admin.
    """

    def __init__(self) -> None:
        super().__init__()
        self._products: Tuple[Product, ...] = ()
        self._orders: Tuple[Order, ...] = ()
        self._editing: Optional[Product] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-admin-gate"):
            yield Label("Admin Access Required", id="label-gate-title")
            yield Label("Please login to access the admin dashboard", id="label-gate-msg")
            yield Button("Login", id="btn-gate-login", variant="primary")
        with TabbedContent(id="tabs-admin"):
            with TabPane("Products", id="tab-products"):
                yield DataTable(id="table-admin-products")
                with Horizontal(id="div-product-form"):
                    with Vertical():
                        yield Label("Name")
                        yield Input(id="input-p-name")
                        yield Label("Description")
                        yield Input(id="input-p-descr")
                        yield Label("Image URL")
                        yield Input(id="input-p-image")
                    with Vertical():
                        yield Label("Price")
                        yield Input(id="input-p-price", type="integer")
                        yield Label("Stock")
                        yield Input(id="input-p-stock", type="integer")
                        yield Label("Category")
                        yield Select(
                            [(c, c) for c in CATEGORIES],
                            id="select-p-category",
                            allow_blank=False,
                        )
                with Horizontal(id="div-product-btns"):
                    yield Button("New", id="btn-p-new")
                    yield Button("Save", id="btn-p-save", variant="success")
                    yield Button("Delete", id="btn-p-delete", variant="error")
                    yield Button("Load Sample Products", id="btn-p-samples")
                    yield Button("Initialize Admin", id="btn-init-admin")
            with TabPane("Orders", id="tab-orders"):
                yield DataTable(id="table-admin-orders")
                yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
                with Horizontal(id="div-order-btns"):
                    yield Select(
                        [(s.value, s) for s in OrderStatus],
                        id="select-o-status",
                        allow_blank=False,
                    )
                    yield Button("Update Status", id="btn-o-status", variant="success")
                    yield Button("Delete Order", id="btn-o-delete", variant="error")

    def on_mount(self) -> None:
        products = self.query_one("#table-admin-products", DataTable)
        products.cursor_type = "row"
        products.zebra_stripes = True
        products.add_columns("ID", "Name", "Category", "Price", "Stock")

        orders = self.query_one("#table-admin-orders", DataTable)
        orders.cursor_type = "row"
        orders.zebra_stripes = True
        orders.add_columns("Order", "Date", "Customer", "Payment", "Total", "Status")

        self.reload()

    def on_resource_changed(self, name: str) -> None:
        if name in ("products", "orders", "*"):
            self.reload()

    @on(ScreenResume)
    @work(exclusive=True, group="admin-load")
    async def reload(self) -> None:
        logged_in = self.app.state.is_logged_in
        self.query_one("#div-admin-gate").display = not logged_in
        self.query_one("#tabs-admin").display = logged_in
        if not logged_in:
            error = self.app.state.session.login_error
            if error is not None:
                self.query_one("#label-gate-msg", Label).update(f"Login failed: {error}")
            return

        queries = self.app.state.queries
        products_res = await queries.products()
        if products_res.ok:
            self._products = products_res.data
        orders_res = await queries.user_orders()
        if orders_res.ok:
            self._orders = orders_res.data
        for res in (products_res, orders_res):
            if res.error is not None:
                self.notify(str(res.error), severity="error")
        self.render_products()
        self.render_orders()

    @on(Button.Pressed, "#btn-gate-login")
    def handle_gate_login(self) -> None:
        self.post_message(LoginRequestedMessage())

    # ---------------------------
    # Products tab
    # ---------------------------

    def render_products(self) -> None:
        table = self.query_one("#table-admin-products", DataTable)
        table.clear()
        for p in self._products:
            table.add_row(
                p.id, p.name, p.category, format_price(p.price), p.stock, key=str(p.id)
            )

    @on(DataTable.RowSelected, "#table-admin-products")
    def handle_product_selected(self, event: DataTable.RowSelected) -> None:
        product_id = int(event.row_key.value)
        self._editing = next((p for p in self._products if p.id == product_id), None)
        if self._editing is None:
            return
        self.query_one("#input-p-name", Input).value = self._editing.name
        self.query_one("#input-p-descr", Input).value = self._editing.description
        self.query_one("#input-p-image", Input).value = self._editing.image_url
        self.query_one("#input-p-price", Input).value = str(self._editing.price)
        self.query_one("#input-p-stock", Input).value = str(self._editing.stock)
        if self._editing.category in CATEGORIES:
            self.query_one("#select-p-category", Select).value = self._editing.category

    @on(Button.Pressed, "#btn-p-new")
    def handle_new_product(self) -> None:
        self._editing = None
        for field in ("#input-p-name", "#input-p-descr", "#input-p-image",
                      "#input-p-price", "#input-p-stock"):
            self.query_one(field, Input).value = ""
        self.query_one("#input-p-name", Input).focus()

    @on(Button.Pressed, "#btn-p-save")
    @work(exclusive=True, group="admin-mutation")
    async def handle_save_product(self) -> None:
        try:
            fields = parse_product_form(
                name=self.query_one("#input-p-name", Input).value,
                description=self.query_one("#input-p-descr", Input).value,
                price=self.query_one("#input-p-price", Input).value,
                stock=self.query_one("#input-p-stock", Input).value,
                category=self.query_one("#select-p-category", Select).value,
                image_url=self.query_one("#input-p-image", Input).value,
            )
        except ValueError as e:
            self.notify(str(e), severity="error")
            return

        queries = self.app.state.queries
        try:
            if self._editing:
                await queries.update_product(self._editing.id, **fields)
                self.notify("Product updated successfully!")
            else:
                await queries.create_product(**fields)
                self.notify("Product created successfully!")
        except StorefrontError as e:
            self.notify(f"Failed to save product: {e}", severity="error")

    @on(Button.Pressed, "#btn-p-delete")
    @work(exclusive=True, group="admin-mutation")
    async def handle_delete_product(self) -> None:
        if self._editing is None:
            self.notify("Select a product first.", severity="warning")
            return
        product = self._editing
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete {product.name}? This cannot be undone.",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        try:
            await self.app.state.queries.delete_product(product.id)
        except StorefrontError as e:
            self.notify(f"Failed to delete product: {e}", severity="error")
            return
        self._editing = None
        self.notify(f"{product.name} deleted")

    @on(Button.Pressed, "#btn-p-samples")
    @work(exclusive=True, group="admin-mutation")
    async def handle_load_samples(self) -> None:
        button = self.query_one("#btn-p-samples", Button)
        button.disabled = True
        try:
            for sample in SAMPLE_PRODUCTS:
                await self.app.state.queries.create_product(**sample)
        except StorefrontError as e:
            self.notify(f"Failed to load sample products: {e}", severity="error")
        else:
            self.notify(f"{len(SAMPLE_PRODUCTS)} sample products loaded successfully!")
        finally:
            button.disabled = False

    @on(Button.Pressed, "#btn-init-admin")
    @work(exclusive=True, group="admin-mutation")
    async def handle_init_admin(self) -> None:
        try:
            await self.app.state.queries.initialize_admin()
        except StorefrontError as e:
            self.notify(f"Could not initialize admin: {e}", severity="error")
            return
        self.notify("You are the admin.")
        self.reload()

    # ---------------------------
    # Orders tab
    # ---------------------------

    def render_orders(self) -> None:
        table = self.query_one("#table-admin-orders", DataTable)
        table.clear()
        for o in self._orders:
            table.add_row(
                o.id,
                f"{o.timestamp:%Y-%m-%d %H:%M}",
                o.user,
                o.payment_method.label,
                format_price(o.total),
                o.status.value,
                key=str(o.id),
            )
        if not self._orders:
            self.query_one("#md-order-detail", MarkdownViewer).document.update(
                "### No orders yet"
            )

    def _selected_order(self) -> Optional[Order]:
        table = self.query_one("#table-admin-orders", DataTable)
        if not self._orders or table.cursor_row is None:
            return None
        if table.cursor_row >= len(self._orders):
            return None
        return self._orders[table.cursor_row]

    @on(DataTable.RowHighlighted, "#table-admin-orders")
    def handle_order_highlighted(self) -> None:
        order = self._selected_order()
        if order is None:
            return
        self.query_one("#select-o-status", Select).value = order.status
        rows = [
            [i.product.name, i.quantity, format_price(i.product.price)] for i in order.items
        ]
        md = (
            f"### Order #{order.id}\n\nCustomer: {order.user}  \n"
            f"Payment: {order.payment_method.label}\n\n"
            + generate_markdown_table(["Item", "Qty", "Unit Price"], rows, ["l", "c", "r"])
            + f"\n\n**Total:** {format_price(order.total)}"
        )
        self.query_one("#md-order-detail", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-o-status")
    @work(exclusive=True, group="admin-mutation")
    async def handle_status_change(self) -> None:
        order = self._selected_order()
        if order is None:
            return
        status = self.query_one("#select-o-status", Select).value
        if status == order.status:
            self.notify("Nothing to update.", severity="warning")
            return
        try:
            await self.app.state.queries.update_order_status(order.id, status)
        except StorefrontError as e:
            self.notify(f"Failed to update status: {e}", severity="error")
            return
        self.notify("Order status updated")

    @on(Button.Pressed, "#btn-o-delete")
    @work(exclusive=True, group="admin-mutation")
    async def handle_delete_order(self) -> None:
        order = self._selected_order()
        if order is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete order #{order.id}?",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        try:
            await self.app.state.queries.delete_order(order.id)
        except StorefrontError as e:
            self.notify(f"Failed to delete order: {e}", severity="error")
            return
        self.notify("Order deleted")
