from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

_logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "44.0"
DEFAULT_LOGIN_HOST = "login.salesforce.com"

_SOAP_PATH = "/services/Soap/u/{version}"


def derive_login_url(host: str, version: str) -> str:
    """Return the SOAP login endpoint for ``host`` and ``version``.

    No validation is done; a bad host or version only shows up when the
    transport tries to use the URL.
    """
    return f"https://{host}" + _SOAP_PATH.format(version=version)


def derive_instance_url(instance_url: str, version: str) -> str:
    """Return the SOAP endpoint on an OAuth ``instance_url``."""
    return instance_url.rstrip("/") + _SOAP_PATH.format(version=version)


def token_url(host: str) -> str:
    return f"https://{host}/services/oauth2/token"


@dataclass(frozen=True)
class LogInfo:
    """One debug log category for the DebuggingHeader, e.g. ("Apex_code", "DEBUG")."""

    category: str
    level: str


def parse_debug_categories(raw: Optional[str]) -> Optional[Tuple[LogInfo, ...]]:
    """Parse ``"Apex_code:DEBUG,Db:INFO"`` into LogInfo values.

    An unset value gives None (no header); an empty string gives an empty
    tuple, which still sends an empty DebuggingHeader.
    """
    if raw is None:
        return None
    out = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        category, sep, level = item.partition(":")
        if not sep or not category or not level:
            raise ValueError(f"Invalid debug category {item!r}; expected CATEGORY:LEVEL")
        out.append(LogInfo(category.strip(), level.strip()))
    return tuple(out)


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


# ----------------------------------------------------------------------
# Configuration dataclass
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ClientConfig:
    """Client configuration; replaced (never mutated) on every change."""

    api_version: str = DEFAULT_API_VERSION

    # Bare host name, not a URL (e.g. "test.salesforce.com")
    login_host: str = DEFAULT_LOGIN_HOST

    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    # Query batch size hint; 0 means "let the server decide"
    batch_size: int = 0

    # None means no DebuggingHeader at all
    debug_categories: Optional[Tuple[LogInfo, ...]] = None

    # Empty while unauthenticated
    session_id: str = ""

    timeout: float = 30.0
    gzip: bool = False
    debug: bool = False

    def __post_init__(self) -> None:
        if self.batch_size < 0:
            raise ValueError(f"batch size must be >= 0, got {self.batch_size}")

    @property
    def login_url(self) -> str:
        return derive_login_url(self.login_host, self.api_version)

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Load configuration from environment variables."""
        cfg = cls(
            api_version=os.getenv("SF_API_VERSION", DEFAULT_API_VERSION),
            login_host=os.getenv("SF_LOGIN_HOST", DEFAULT_LOGIN_HOST),
            client_id=os.getenv("SF_CLIENT_ID"),
            client_secret=os.getenv("SF_CLIENT_SECRET"),
            batch_size=int(os.getenv("SF_BATCH_SIZE", "0")),
            debug_categories=parse_debug_categories(os.getenv("SF_DEBUG_CATEGORIES")),
            session_id=os.getenv("SF_ACCESS_TOKEN", ""),
            timeout=float(os.getenv("SF_TIMEOUT", "30")),
            gzip=_env_bool("SF_GZIP"),
            debug=_env_bool("SF_DEBUG"),
        )
        _logger.debug(
            "Loaded config from env: host=%s api=%s batch=%d",
            cfg.login_host,
            cfg.api_version,
            cfg.batch_size,
        )
        return cfg


def derive_apex_url(server_url: str) -> str:
    """Return the Apex API endpoint that sits next to a partner SOAP endpoint."""
    return server_url.replace("/services/Soap/u/", "/services/Soap/s/", 1)
