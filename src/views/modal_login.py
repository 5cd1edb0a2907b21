from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, TabbedContent, TabPane

from backend.errors import StorefrontError
from views.modal_dialog import DialogModal


class LoginModal(ModalScreen[bool]):
    """
    Login / sign up. Dismisses with True once logged in,
    False if the user keeps browsing as guest.
    """

    def compose(self) -> ComposeResult:
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Username")
                    yield Input(placeholder="alice", id="input-login-user")
                    yield Label("Password")
                    yield Input(placeholder="*********", password=True, id="input-login-pwd")
                    yield Label("", id="label-login-error")
                    with Horizontal(id="div-login-btns"):
                        yield Button("Continue as guest", id="btn-guest")
                        yield Button("Login", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with Vertical(id="div-reg"):
                    yield Label("Name")
                    yield Input(placeholder="Jane Doe", id="input-reg-name")
                    yield Label("Username")
                    yield Input(placeholder="jane", id="input-reg-user")
                    yield Label("Password")
                    yield Input(placeholder="*********", password=True, id="input-reg-pwd")
                    with Horizontal(id="div-reg-btns"):
                        yield Button("Register", id="btn-reg", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-user").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "escape":
            self.dismiss(False)
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()
        if event.key == "enter" and self.focused == self.query_one("#input-reg-pwd"):
            self.handle_registration_submit()

    @on(Button.Pressed, "#btn-guest")
    def handle_guest(self) -> None:
        self.dismiss(False)

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        username = self.query_one("#input-login-user", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value.strip()

        if not username or not pwd:
            self.notify("Username or password cannot be empty!", severity="error")
            return

        login_btn = self.query_one("#btn-login", Button)
        login_btn.disabled = True
        login_btn.label = "Logging in..."
        try:
            identity = await self.app.state.session.login(username, pwd)
        except StorefrontError as e:
            self.query_one("#label-login-error", Label).update(str(e))
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")
            return
        finally:
            login_btn.disabled = False
            login_btn.label = "Login"

        self.notify(f"Hello {identity.display_name or identity.principal}!")
        self.dismiss(True)

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        name = self.query_one("#input-reg-name", Input).value.strip()
        username = self.query_one("#input-reg-user", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value.strip()

        if not name or not username or not pwd:
            self.notify("Make sure all inputs are filled.", severity="error")
            return

        try:
            identity = await self.app.state.session.register(username, pwd, name)
        except StorefrontError as e:
            self.notify(str(e), severity="error")
            return

        await self.app.push_screen_wait(
            DialogModal(f"Registration successful. Username: {identity.principal}")
        )
        self.query_one(TabbedContent).active = "tab-login"
        self.query_one("#input-login-user", Input).value = identity.principal
        input_login_pwd = self.query_one("#input-login-pwd", Input)
        input_login_pwd.value = pwd
        input_login_pwd.focus()
