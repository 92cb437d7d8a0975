"""Salesforce SOAP API client with managed session and header state."""

__version__ = "0.3.0"

from .client import Client  # noqa: E402
from .config import ClientConfig, LogInfo, derive_login_url  # noqa: E402
from .exceptions import (  # noqa: E402
    AuthStateError,
    MissingCredentialsError,
    ProtocolError,
    SoapFaultError,
    SoapForceError,
    TransportError,
)
from .headers import compose_headers  # noqa: E402

__all__ = [
    "AuthStateError",
    "Client",
    "ClientConfig",
    "LogInfo",
    "MissingCredentialsError",
    "ProtocolError",
    "SoapFaultError",
    "SoapForceError",
    "TransportError",
    "compose_headers",
    "derive_login_url",
]
