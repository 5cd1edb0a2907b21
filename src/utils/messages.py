from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class LogoutRequestedMessage(Message):
    """
    posted by the sidebar when the user confirmed logging out
    """

    bubble = True


class LoginRequestedMessage(Message):
    """
    posted when a screen needs a logged in user (add to cart, admin)
    """

    bubble = True


class SessionChangedMessage(Message):
    """
    Fired after login or logout finished, so screens can reload
    Relayed to the screens on the stack by the app
    """

    bubble = False


class ResourceChangedMessage(Message):
    """
    Fired when cached data for a resource was invalidated or refreshed,
    e.g. "cart" after an add-to-cart, "orders" after checkout.
    Relayed to the screens on the stack by the app, name "*" means everything.
    """

    bubble = False

    def __init__(self, name: str) -> None:
        super().__init__()
        self.name = name


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
