"""SOAP request headers and the function that decides which ones to send."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

from .config import ClientConfig, LogInfo


@dataclass(frozen=True)
class DebuggingHeader:
    categories: Tuple[LogInfo, ...] = ()

    tag = "DebuggingHeader"

    def fields(self) -> Dict[str, Any]:
        return {
            "categories": [{"category": c.category, "level": c.level} for c in self.categories]
        }


@dataclass(frozen=True)
class QueryOptions:
    batch_size: int

    tag = "QueryOptions"

    def fields(self) -> Dict[str, Any]:
        return {"batchSize": self.batch_size}


@dataclass(frozen=True)
class SessionHeader:
    session_id: str

    tag = "SessionHeader"

    def fields(self) -> Dict[str, Any]:
        return {"sessionId": self.session_id}

    def __repr__(self) -> str:
        return f"SessionHeader(session_id={mask_token(self.session_id)!r})"


Header = Union[DebuggingHeader, QueryOptions, SessionHeader]
HeaderSet = Tuple[Header, ...]


def compose_headers(config: ClientConfig) -> HeaderSet:
    """Return the headers every call should carry for ``config``.

    Order is always debugging, batch size, session. A header whose source
    field is absent (None categories, batch size <= 0, empty session id) is
    left out rather than sent empty.
    """
    headers = []
    if config.debug_categories is not None:
        headers.append(DebuggingHeader(tuple(config.debug_categories)))
    if config.batch_size > 0:
        headers.append(QueryOptions(config.batch_size))
    if config.session_id:
        headers.append(SessionHeader(config.session_id))
    return tuple(headers)


def mask_token(token: str) -> str:
    """Shorten a session id for logs: first 10 and last 6 characters."""
    if len(token) <= 16:
        return "*" * len(token)
    return f"{token[:10]}...{token[-6:]}"
