from typing import Optional, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label, Select

from backend.models import CATEGORIES, Product
from utils.pure import filter_products, format_price, stock_badge
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal


class ProductsScreen(BaseScreen):
    """
    browse, search and filter the catalog
    search text and category are local UI state, the product list comes from the cache
    """

    BINDINGS = [
        Binding("enter", "noop", "View Product", show=True, key_display="⏎"),
    ]

    def __init__(self):
        super().__init__()
        self._products: Tuple[Product, ...] = ()
        self._query = ""
        self._category: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filters"):
            yield Input(id="input-search", placeholder="Search our collection...")
            yield Select(
                [(c, c) for c in CATEGORIES],
                prompt="All Products",
                id="select-category",
            )
            yield Button("Clear Filters", id="btn-clear-filters")
        yield Label("", id="label-result-cnt")
        yield DataTable(id="table-products")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Category", "Price", "Stock")

        self.query_one("#input-search").focus()
        self.load_products()

    @on(ScreenResume)
    def handle_resume(self) -> None:
        self.load_products()

    def on_resource_changed(self, name: str) -> None:
        if name in ("products", "*"):
            self.load_products()

    @work(exclusive=True)
    async def load_products(self) -> None:
        res = await self.app.state.queries.products()
        if res.error is not None:
            self.notify(f"Could not load products: {res.error}", severity="error")
        if res.ok:
            self._products = res.data
        self.render_table()

    @on(Input.Changed, "#input-search")
    def handle_search(self, message: Input.Changed) -> None:
        self._query = message.value
        self.render_table()

    @on(Select.Changed, "#select-category")
    def handle_category(self, message: Select.Changed) -> None:
        self._category = None if message.value == Select.BLANK else message.value
        self.render_table()

    @on(Button.Pressed, "#btn-clear-filters")
    def handle_clear_filters(self) -> None:
        self.query_one("#input-search", Input).value = ""
        self.query_one("#select-category", Select).clear()
        self._query = ""
        self._category = None
        self.render_table()

    def render_table(self) -> None:
        shown = filter_products(self._products, self._query, self._category)

        table = self.query_one(DataTable)
        table.clear()
        for p in shown:
            table.add_row(
                p.id,
                p.name,
                p.category,
                format_price(p.price),
                stock_badge(p.stock),
                key=str(p.id),
            )

        cnt = self.query_one("#label-result-cnt", Label)
        if shown:
            cnt.update(f"{len(shown)} {'item' if len(shown) == 1 else 'items'}")
        elif self._query or self._category:
            cnt.update("No products found. Try adjusting your filters.")
        else:
            cnt.update("No products found. Check back soon for new items!")

    @on(DataTable.RowSelected, "#table-products")
    @work()
    async def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        await self.app.push_screen_wait(ProdDetailModal(int(event.row_key.value)))
