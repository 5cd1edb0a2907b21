from pathlib import Path

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from utils.logger import get_logger
from utils.messages import (
    LoginRequestedMessage,
    LogoutRequestedMessage,
    ModeSwitchedMessage,
    QuitRequestedMessage,
    ResourceChangedMessage,
    SessionChangedMessage,
)
from utils.state import GlobalState, build_state
from views.base_screen import BaseScreen
from views.modal_login import LoginModal
from views.scr_admin import AdminScreen
from views.scr_cart import CartScreen
from views.scr_products import ProductsScreen

_logger = get_logger(__name__)


class StorefrontApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "products": ProductsScreen,
        "cart": CartScreen,
        "admin": AdminScreen,
    }

    MENU = {
        "products": "Shop",
        "cart": "Cart",
        "admin": "Admin Dashboard",
    }

    CSS_PATH = str(Path(__file__).parent / "views" / "storefront.tcss")

    state: GlobalState

    def __init__(self, state: GlobalState = None):
        super().__init__()
        self.state = state or build_state()
        self._unsubscribe = []

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        # store listeners live outside the DOM, so the app relays to screens
        self._unsubscribe.append(
            self.state.session.cache.subscribe(
                lambda name: self.broadcast(lambda: ResourceChangedMessage(name))
            )
        )
        self._unsubscribe.append(
            self.state.session.subscribe(
                lambda status: self.broadcast(SessionChangedMessage)
            )
        )
        await self.state.session.start()
        await self.switch_mode("products")

    def broadcast(self, make_message) -> None:
        """Post a fresh message to every storefront screen on the stack."""
        for screen in self.screen_stack:
            if isinstance(screen, BaseScreen):
                screen.post_message(make_message())

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(ModeSwitchedMessage)
    def handle_mode_switched(self, message: ModeSwitchedMessage) -> None:
        _logger.debug(f"Mode {message.old_mode} -> {message.new_mode}")

    @on(LoginRequestedMessage)
    @work(exclusive=True, group="login")
    async def handle_login_requested(self):
        if await self.push_screen_wait(LoginModal()):
            self.notify(f"Welcome, {self.state.session.identity.display_name}!")

    @on(LogoutRequestedMessage)
    @work(exclusive=True, group="login")
    async def handle_logout(self):
        await self.state.session.logout()
        self.notify("Logout successful.")
        await self.switch_mode("products")

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        await self.state.session.close()
        self.exit()


def run():
    app = StorefrontApp()
    app.run()


if __name__ == "__main__":
    run()
