# runtime settings, read from the environment
import os
from dataclasses import dataclass
from typing import Literal, Optional


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """
    Fields:
      - backend: "local" runs against the bundled SQLite backend, "http" against api_url
      - api_url: base url of the remote backend service
      - request_timeout: seconds before a remote call fails (no retries)
      - db_path: SQLite file used by the local backend
      - stale_after: seconds before cached data is refetched; None = only on invalidation
      - allow_anonymous: browse products without logging in
      - wallet_number: account shown for mobile wallet payments
    """

    backend: Literal["local", "http"] = "local"
    api_url: str = "http://127.0.0.1:8000"
    request_timeout: float = 10.0
    db_path: str = "data/storefront.sqlite"
    stale_after: Optional[float] = None
    allow_anonymous: bool = True
    wallet_number: str = "0300-0000000"
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        backend = os.getenv("STOREFRONT_BACKEND", cls.backend).strip().lower()
        if backend not in ("local", "http"):
            raise ValueError(f"STOREFRONT_BACKEND must be 'local' or 'http', got {backend!r}")
        return cls(
            backend=backend,
            api_url=os.getenv("STOREFRONT_API_URL", cls.api_url),
            request_timeout=_env_float("STOREFRONT_TIMEOUT", cls.request_timeout),
            db_path=os.getenv("STOREFRONT_DB_PATH", cls.db_path),
            stale_after=_env_float("STOREFRONT_STALE_AFTER", None),
            allow_anonymous=_env_bool("STOREFRONT_ALLOW_ANONYMOUS", True),
            wallet_number=os.getenv("STOREFRONT_WALLET_NUMBER", cls.wallet_number),
            debug=bool(os.getenv("DEBUG")),
        )
