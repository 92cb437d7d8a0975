from __future__ import annotations

import gzip
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests

from . import __version__
from .envelope import PARTNER_NS, build_envelope, parse_envelope
from .exceptions import ProtocolError, TransportError
from .headers import Header, SessionHeader, mask_token
from .logging_config import WIRE_LOGGER

_logger = logging.getLogger(__name__)

_SECRET_ELEMENTS = re.compile(r"(<(?:[\w.-]+:)?(?:sessionId|password)>)([^<]*)(</)")


def _mask_secrets(xml: str) -> str:
    return _SECRET_ELEMENTS.sub(lambda m: m.group(1) + mask_token(m.group(2)) + m.group(3), xml)


class SoapTransport:
    """Posts SOAP envelopes to one endpoint with a settable set of headers.

    The transport knows nothing about authentication: whoever owns the
    session pushes the endpoint URL and the header set into it.
    """

    def __init__(
        self,
        server_url: str = "",
        *,
        gzip: bool = False,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.server_url = server_url
        self.gzip = gzip
        self.timeout = timeout
        self.debug = False
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": f"sfsoap/{__version__}"})
        self._headers: List[Header] = []
        self._wire = logging.getLogger(WIRE_LOGGER)
        self._limit_info: Optional[Dict[str, Any]] = None

    # --------------------------- State mutators ----------------------

    def set_server_url(self, url: str) -> None:
        _logger.debug("SOAP endpoint -> %s", url)
        self.server_url = url

    def set_debug(self, debug: bool) -> None:
        self.debug = debug

    def set_logger(self, logger: logging.Logger) -> None:
        """Send debug envelope traces to ``logger`` instead of sfsoap.wire."""
        self._wire = logger

    def set_gzip(self, gz: bool) -> None:
        self.gzip = gz

    def set_header(self, headers: Iterable[Header]) -> None:
        """Replace the whole header set."""
        self._headers = list(headers)

    def add_header(self, header: Header) -> None:
        self._headers.append(header)

    def clear_header(self) -> None:
        self._headers = []

    @property
    def headers(self) -> tuple:
        return tuple(self._headers)

    def get_info(self) -> Optional[Dict[str, Any]]:
        """Return the LimitInfoHeader from the most recent response, if any."""
        return self._limit_info

    # --------------------------- Calls -------------------------------

    def login(self, username: str, password: str) -> Dict[str, Any]:
        """Call ``login`` and return its LoginResult."""
        body = self.call(
            "login",
            {"username": username, "password": password},
            headers=[h for h in self._headers if not isinstance(h, SessionHeader)],
        )
        return body.get("result")

    def logout(self) -> None:
        self.call("logout")

    def call(
        self,
        operation: str,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        headers: Optional[Iterable[Header]] = None,
        namespace: str = PARTNER_NS,
        url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Perform one SOAP operation and return the response element as a dict.

        ``headers`` overrides the current header set and ``url`` the endpoint,
        for this call only.
        """
        url = url or self.server_url
        if not url:
            raise TransportError(f"No server URL set for {operation}")

        envelope = build_envelope(
            operation,
            payload,
            self._headers if headers is None else headers,
            namespace,
        )
        self._trace(">>> %s %s\n%s", operation, url, envelope)

        http_headers = {
            "Content-Type": "text/xml; charset=UTF-8",
            "SOAPAction": '""',
        }
        data = envelope
        if self.gzip:
            data = gzip.compress(envelope)
            http_headers["Content-Encoding"] = "gzip"
            http_headers["Accept-Encoding"] = "gzip"

        try:
            r = self.session.post(
                url,
                data=data,
                headers=http_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            _logger.warning("SOAP %s request error: %s", operation, e)
            raise TransportError(f"{operation} request failed: {e}") from e

        self._trace("<<< %s HTTP %s\n%s", operation, r.status_code, r.content)

        try:
            parsed = parse_envelope(r.content, status_code=r.status_code)
        except ProtocolError:
            if r.status_code >= 400:
                _logger.error("HTTP %s error for %s: %s", r.status_code, operation, r.text)
                raise TransportError(
                    f"HTTP {r.status_code} for {operation}", status_code=r.status_code
                ) from None
            raise

        if r.status_code >= 400:
            raise TransportError(
                f"HTTP {r.status_code} for {operation}", status_code=r.status_code
            )

        if "LimitInfoHeader" in parsed.headers:
            self._limit_info = parsed.headers["LimitInfoHeader"]
        return parsed.body

    def close(self) -> None:
        self.session.close()

    # --------------------------- Helpers -----------------------------

    def _trace(self, fmt: str, operation: str, arg: Any, content: bytes) -> None:
        if not self.debug:
            return
        text = content.decode("utf-8", errors="replace")
        self._wire.debug(fmt, operation, arg, _mask_secrets(text))
