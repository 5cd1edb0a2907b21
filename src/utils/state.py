from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backend import database
from backend.client import HttpBackend, HttpIdentityProvider
from backend.local import LocalBackend, LocalIdentityProvider
from store.cache import QueryCache
from store.cart import CartAggregator
from store.queries import StoreQueries
from store.session import Session
from utils.config import Settings
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - settings: runtime configuration
      - session: identity, login status and the backend client
      - queries: cached reads and invalidating writes
      - cart: enriched cart view derived from the cart and product queries
    """

    settings: Settings
    session: Session
    queries: StoreQueries
    cart: CartAggregator

    @property
    def is_logged_in(self) -> bool:
        return self.session.is_logged_in

    @property
    def principal(self) -> str:
        return self.session.identity.principal


def build_state(settings: Optional[Settings] = None) -> GlobalState:
    """Wire cache, session, queries and cart for the configured backend."""
    settings = settings or Settings.from_env()
    cache = QueryCache(stale_after=settings.stale_after)

    if settings.backend == "http":
        _logger.info(f"Using remote backend at {settings.api_url}")
        provider = HttpIdentityProvider(settings.api_url, settings.request_timeout)

        def connector(identity):
            return HttpBackend(settings.api_url, identity, settings.request_timeout)

    else:
        _logger.info(f"Using local backend at {settings.db_path}")
        database.use_database(settings.db_path)
        provider = LocalIdentityProvider()
        connector = LocalBackend

    session = Session(cache, provider, connector, settings.allow_anonymous)
    queries = StoreQueries(session)
    return GlobalState(
        settings=settings,
        session=session,
        queries=queries,
        cart=CartAggregator(queries),
    )
