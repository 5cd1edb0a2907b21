from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import (
    LoginRequestedMessage,
    LogoutRequestedMessage,
    ModeSwitchedMessage,
    ResourceChangedMessage,
    SessionChangedMessage,
)
from utils.pure import format_price, generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal


class Sidebar(Container):
    """Who is logged in, cart badge, login/logout and the mode menu."""

    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Label("Cart: empty", id="label-cart-badge")
        yield Button("Log in", id="btn-login", variant="primary")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.extend(
            [
                ListItem(Label(v), id="list-menu-item-" + k)
                for k, v in self.app.MENU.items()
            ]
        )
        await self.refresh_session()
        self.highlight_item(self.app.current_mode)

    async def refresh_session(self) -> None:
        state = self.app.state
        identity = state.session.identity
        rows = [
            ["User", identity.display_name or identity.principal],
            ["Status", state.session.status.value],
        ]
        md_table_str = generate_markdown_table(None, rows, ["l", "l"])
        await self.query_one(Markdown).update(md_table_str)

        logged_in = state.is_logged_in
        self.query_one("#btn-login").display = not logged_in
        self.query_one("#btn-logout").display = logged_in
        self.refresh_cart_badge()

    def refresh_cart_badge(self) -> None:
        view = self.app.state.cart.view()
        badge = self.query_one("#label-cart-badge", Label)
        if view.total_items:
            badge.update(f"Cart: {view.total_items} ({format_price(view.subtotal)})")
        else:
            badge.update("Cart: empty")

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        if self.app.current_mode != selected_mode:
            self.post_message(ModeSwitchedMessage(self.app.current_mode, selected_mode))
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-login")
    def handle_login(self):
        self.post_message(LoginRequestedMessage())

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.post_message(LogoutRequestedMessage())

    def highlight_item(self, mode_str: str):
        for item in self.query_one("#list-menu").children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    SUB_TITLE = "Storefront"

    def compose(self) -> ComposeResult:
        yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    def on_mount(self) -> None:
        self.app.title = "Storefront"
        self.sub_title = self.app.MENU.get(self.app.current_mode, self.SUB_TITLE)

    @on(ResourceChangedMessage)
    def handle_resource_changed(self, message: ResourceChangedMessage) -> None:
        if message.name in ("cart", "products", "*"):
            self.query_one(Sidebar).refresh_cart_badge()
        self.on_resource_changed(message.name)

    @on(SessionChangedMessage)
    async def handle_session_changed(self) -> None:
        await self.query_one(Sidebar).refresh_session()
        self.on_resource_changed("*")

    def on_resource_changed(self, name: str) -> None:
        """Override to reload screen data when `name` ("*" = all) changed."""

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
