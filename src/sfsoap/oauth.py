"""OAuth 2.0 token exchange against the Salesforce token endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .config import token_url
from .exceptions import ProtocolError, TransportError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthToken:
    """Token endpoint response. ``access_token`` and ``instance_url`` are required."""

    access_token: str
    instance_url: str
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    issued_at: Optional[str] = None
    id: Optional[str] = None
    signature: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> OAuthToken:
        if not isinstance(payload, dict):
            raise ProtocolError(
                f"Token response must be a JSON object, got {type(payload).__name__}"
            )
        missing = [
            k
            for k in ("access_token", "instance_url")
            if not isinstance(payload.get(k), str) or not payload.get(k)
        ]
        if missing:
            raise ProtocolError("Token response missing required fields: " + ", ".join(missing))

        def opt(key: str) -> Optional[str]:
            v = payload.get(key)
            return str(v) if v is not None else None

        return cls(
            access_token=payload["access_token"],
            instance_url=payload["instance_url"],
            refresh_token=opt("refresh_token"),
            token_type=opt("token_type"),
            issued_at=opt("issued_at"),
            id=opt("id"),
            signature=opt("signature"),
        )

    def __repr__(self) -> str:
        return f"OAuthToken(instance_url={self.instance_url!r}, token_type={self.token_type!r})"


def request_token(
    http: requests.Session,
    host: str,
    data: Dict[str, str],
    *,
    timeout: float = 30.0,
) -> OAuthToken:
    """POST a form-encoded grant to ``https://{host}/services/oauth2/token``.

    Network failures raise TransportError; a non-2xx status or a body that
    is not a JSON object with the required fields raises ProtocolError.
    """
    url = token_url(host)
    _logger.debug("Requesting %s token from %s", data.get("grant_type"), url)
    try:
        r = http.post(url, data=data, timeout=timeout)
    except requests.RequestException as e:
        raise TransportError(f"Token request failed: {e}") from e

    if not 200 <= r.status_code < 300:
        try:
            detail = r.json()
        except ValueError:
            detail = r.text
        _logger.error("Token request HTTP %s: %s", r.status_code, detail)
        raise ProtocolError(f"Token request failed ({r.status_code}): {detail}")

    try:
        payload = r.json()
    except ValueError as e:
        raise ProtocolError(f"Token response is not valid JSON: {e}") from e
    return OAuthToken.from_payload(payload)


def password_grant(
    http: requests.Session,
    host: str,
    client_id: Optional[str],
    client_secret: Optional[str],
    username: str,
    password: str,
    *,
    timeout: float = 30.0,
) -> OAuthToken:
    return request_token(
        http,
        host,
        {
            "grant_type": "password",
            "client_id": client_id or "",
            "client_secret": client_secret or "",
            "username": username,
            "password": password,
        },
        timeout=timeout,
    )


def refresh_grant(
    http: requests.Session,
    host: str,
    client_id: Optional[str],
    client_secret: Optional[str],
    refresh_token: str,
    *,
    timeout: float = 30.0,
) -> OAuthToken:
    return request_token(
        http,
        host,
        {
            "grant_type": "refresh_token",
            "client_id": client_id or "",
            "client_secret": client_secret or "",
            "refresh_token": refresh_token,
        },
        timeout=timeout,
    )
