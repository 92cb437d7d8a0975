from __future__ import annotations

from typing import Optional


class SoapForceError(RuntimeError):
    """Base class for every error raised by sfsoap."""


class TransportError(SoapForceError):
    """Raised when the HTTP exchange itself fails (network, IO, bad status)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SoapFaultError(TransportError):
    """Raised when Salesforce answers with a SOAP fault."""

    def __init__(
        self,
        fault_code: str,
        fault_string: str,
        *,
        exception_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.fault_code = fault_code
        self.fault_string = fault_string
        self.exception_code = exception_code
        super().__init__(f"{fault_code}: {fault_string}", status_code=status_code)


class ProtocolError(SoapForceError):
    """Raised when a response arrives but does not have the expected shape."""


class AuthStateError(SoapForceError):
    """Raised when an operation needs authentication state that is not there."""


class MissingCredentialsError(AuthStateError):
    """Raised when the required Salesforce env vars are not present."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__("Missing required environment variables: " + ", ".join(missing))
