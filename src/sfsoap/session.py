"""Authentication state and the transitions between its states.

Every transition does its network work first and only then commits the new
state in one step, so a failed call leaves the previous state in place. The
one exception is :meth:`SessionManager.logout`, which always resets local
state even when the remote call fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional

import requests

from .config import ClientConfig, LogInfo, derive_instance_url
from .exceptions import AuthStateError, ProtocolError
from .headers import HeaderSet, compose_headers, mask_token
from .oauth import OAuthToken, password_grant, refresh_grant
from .transport import SoapTransport

_logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclass(frozen=True)
class Credentials:
    """Username/password kept in memory only, for :meth:`SessionManager.refresh_session`."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class Session:
    session_id: str
    server_url: str
    user_info: Optional[Dict[str, Any]] = None

    def __repr__(self) -> str:
        return (
            f"Session(session_id={mask_token(self.session_id)!r}, "
            f"server_url={self.server_url!r})"
        )


def session_from_login(result: Dict[str, Any]) -> Session:
    """Build a Session from a SOAP LoginResult, rejecting incomplete results."""
    if not isinstance(result, dict):
        raise ProtocolError("Login result is not a structure")
    sid = result.get("sessionId")
    url = result.get("serverUrl")
    if not sid or not url:
        raise ProtocolError("Login result has no sessionId/serverUrl")
    user_info = result.get("userInfo")
    return Session(sid, url, user_info if isinstance(user_info, dict) else None)


class SessionManager:
    """Owns the client configuration and the authenticated session.

    After each state change the endpoint URL and the composed header set
    are pushed into the transport, so domain calls never recompute them.
    """

    def __init__(
        self,
        transport: SoapTransport,
        config: Optional[ClientConfig] = None,
        *,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.transport = transport
        self.http = http or transport.session
        self.config = config or ClientConfig()
        self.session: Optional[Session] = None
        self.oauth_token: Optional[OAuthToken] = None
        self._credentials: Optional[Credentials] = None

        self.transport.set_server_url(self.config.login_url)
        if self.config.session_id:
            self.session = Session(self.config.session_id, self.config.login_url)
        self._push_headers()

    # --------------------------- Read access -------------------------

    @property
    def session_id(self) -> str:
        return self.config.session_id

    @property
    def server_url(self) -> str:
        return self.session.server_url if self.session else ""

    @property
    def user_info(self) -> Optional[Dict[str, Any]]:
        return self.session.user_info if self.session else None

    @property
    def headers(self) -> HeaderSet:
        return compose_headers(self.config)

    @property
    def has_credentials(self) -> bool:
        return self._credentials is not None

    # --------------------------- Login flows -------------------------

    def login(self, username: str, password: str) -> Dict[str, Any]:
        """SOAP ``login`` with a username and password (plus security token)."""
        result = self.transport.login(username, password)
        session = session_from_login(result)
        self._commit(
            replace(self.config, session_id=session.session_id),
            session,
            server_url=session.server_url,
            credentials=Credentials(username, password),
        )
        _logger.info(
            "Logged in as %s, server=%s",
            (session.user_info or {}).get("userName", username),
            session.server_url,
        )
        return result

    def login_with_oauth(self, username: str, password: str) -> None:
        """OAuth 2.0 password grant; the token becomes the SOAP session id."""
        token = password_grant(
            self.http,
            self.config.login_host,
            self.config.client_id,
            self.config.client_secret,
            username,
            password,
            timeout=self.config.timeout,
        )
        self._apply_token(token)

    def refresh_oauth_token(self, refresh_token: str) -> None:
        """OAuth 2.0 refresh-token grant; same state update as the password grant."""
        token = refresh_grant(
            self.http,
            self.config.login_host,
            self.config.client_id,
            self.config.client_secret,
            refresh_token,
            timeout=self.config.timeout,
        )
        self._apply_token(token)

    def refresh_session(self) -> Dict[str, Any]:
        """Repeat the last password login, e.g. after the session expired."""
        if self._credentials is None:
            raise AuthStateError("refresh_session() needs a prior login() with credentials")
        _logger.info("Refreshing session for %s", self._credentials.username)
        return self.login(self._credentials.username, self._credentials.password)

    def logout(self) -> None:
        """Log out remotely if a session exists, then reset local state regardless."""
        try:
            if self.config.session_id:
                self.transport.logout()
        finally:
            self._commit(
                replace(self.config, session_id=""),
                None,
                server_url=self.config.login_url,
                credentials=None,
            )
            self.oauth_token = None
            _logger.info("Logged out; endpoint reset to %s", self.config.login_url)

    def set_access_token(self, token: str) -> None:
        """Use an already obtained session id. No network call."""
        if not token:
            session = None
        elif self.session:
            session = replace(self.session, session_id=token)
        else:
            session = Session(token, self.transport.server_url)
        self._commit(replace(self.config, session_id=token), session)

    # --------------------------- Config mutators ---------------------

    def set_server_url(self, url: str) -> None:
        """Point calls at ``url``; the current session, if any, moves with it."""
        self._move_endpoint(self.config, url)

    def set_api_version(self, version: str) -> None:
        config = replace(self.config, api_version=version)
        self._move_endpoint(config, config.login_url)

    def set_login_host(self, host: str) -> None:
        config = replace(self.config, login_host=host)
        self._move_endpoint(config, config.login_url)

    def set_client_id(self, client_id: str) -> None:
        self.config = replace(self.config, client_id=client_id)

    def set_client_secret(self, client_secret: str) -> None:
        self.config = replace(self.config, client_secret=client_secret)

    def set_batch_size(self, size: int) -> None:
        if size < 0:
            raise ValueError(f"batch size must be >= 0, got {size}")
        self.config = replace(self.config, batch_size=int(size))
        self._push_headers()

    def set_debug_categories(self, categories: Optional[Iterable[LogInfo]]) -> None:
        cats = tuple(categories) if categories is not None else None
        self.config = replace(self.config, debug_categories=cats)
        self._push_headers()

    # --------------------------- Internals ---------------------------

    def _apply_token(self, token: OAuthToken) -> None:
        url = derive_instance_url(token.instance_url, self.config.api_version)
        self._commit(
            replace(self.config, session_id=token.access_token),
            Session(token.access_token, url),
            server_url=url,
            credentials=None,
        )
        self.oauth_token = token
        _logger.info("OAuth token applied, server=%s", url)

    def _move_endpoint(self, config: ClientConfig, url: str) -> None:
        session = replace(self.session, server_url=url) if self.session else None
        self._commit(config, session, server_url=url)

    def _commit(
        self,
        config: ClientConfig,
        session: Optional[Session],
        *,
        server_url: Optional[str] = None,
        credentials: Any = _UNSET,
    ) -> None:
        self.config = config
        self.session = session
        if credentials is not _UNSET:
            self._credentials = credentials
        if server_url is not None:
            self.transport.set_server_url(server_url)
        self._push_headers()

    def _push_headers(self) -> None:
        self.transport.set_header(compose_headers(self.config))
