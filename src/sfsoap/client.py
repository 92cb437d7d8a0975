from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .config import ClientConfig, LogInfo, derive_apex_url
from .envelope import APEX_NS, sobject, typed
from .session import SessionManager
from .transport import SoapTransport

__author__ = "sfsoap contributors"
__copyright__ = "sfsoap contributors"
__license__ = "MIT"

_logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


def _as_list(value: Any) -> List[Any]:
    """SOAP gives a single element for one-item arrays; always return a list."""
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def _query_result(result: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(result or {})
    out["records"] = _as_list(out.get("records"))
    if "size" in out and out["size"] is not None:
        out["size"] = int(out["size"])
    return out


# ----------------------------------------------------------------------
# Main API client
# ----------------------------------------------------------------------
class Client:
    """Salesforce SOAP API client.

    Configuration setters take effect immediately: they re-derive the
    endpoint URL and the SOAP header set and push them into the transport.
    Every domain method is a thin wrapper that sends one request and returns
    the ``result`` of the response; errors from the transport propagate as-is.
    """

    def __init__(
        self,
        cfg: Optional[ClientConfig] = None,
        *,
        transport: Optional[SoapTransport] = None,
    ) -> None:
        cfg = cfg or ClientConfig()
        self.transport = transport or SoapTransport(gzip=cfg.gzip, timeout=cfg.timeout)
        self.transport.set_debug(cfg.debug)
        self.session_manager = SessionManager(self.transport, cfg)

    @classmethod
    def from_env(cls) -> Client:
        return cls(ClientConfig.from_env())

    # --------------------------- Session state -----------------------

    @property
    def config(self) -> ClientConfig:
        return self.session_manager.config

    @property
    def session_id(self) -> str:
        return self.session_manager.session_id

    @property
    def server_url(self) -> str:
        return self.session_manager.server_url

    @property
    def user_info(self) -> Optional[Dict[str, Any]]:
        return self.session_manager.user_info

    @property
    def api_version(self) -> str:
        return self.config.api_version

    @property
    def login_host(self) -> str:
        return self.config.login_host

    @property
    def batch_size(self) -> int:
        return self.config.batch_size

    @property
    def debug_categories(self):
        return self.config.debug_categories

    def get_session_id(self) -> str:
        return self.session_id

    def login(self, username: str, password: str) -> Dict[str, Any]:
        return self.session_manager.login(username, password)

    def login_with_oauth(self, username: str, password: str) -> None:
        self.session_manager.login_with_oauth(username, password)

    def refresh(self, refresh_token: str) -> None:
        self.session_manager.refresh_oauth_token(refresh_token)

    def refresh_session_id(self) -> Dict[str, Any]:
        return self.session_manager.refresh_session()

    def logout(self) -> None:
        self.session_manager.logout()

    def set_access_token(self, sid: str) -> None:
        self.session_manager.set_access_token(sid)

    # --------------------------- Configuration -----------------------

    def set_api_version(self, version: str) -> None:
        self.session_manager.set_api_version(version)

    def set_login_url(self, host: str) -> None:
        """Set the login host name (e.g. ``test.salesforce.com``)."""
        self.session_manager.set_login_host(host)

    def set_client_id(self, client_id: str) -> None:
        self.session_manager.set_client_id(client_id)

    def set_client_secret(self, client_secret: str) -> None:
        self.session_manager.set_client_secret(client_secret)

    def set_batch_size(self, size: int) -> None:
        self.session_manager.set_batch_size(size)

    def set_debugging_header(self, categories: Optional[Iterable[LogInfo]]) -> None:
        self.session_manager.set_debug_categories(categories)

    def set_server_url(self, url: str) -> None:
        self.session_manager.set_server_url(url)

    def set_debug(self, debug: bool) -> None:
        self.transport.set_debug(debug)

    def set_logger(self, logger: logging.Logger) -> None:
        self.transport.set_logger(logger)

    def set_gzip(self, gz: bool) -> None:
        self.transport.set_gzip(gz)

    def get_info(self) -> Optional[Dict[str, Any]]:
        """LimitInfoHeader of the last response (API usage), if the server sent one."""
        return self.transport.get_info()

    # --------------------------- Describe ----------------------------

    def describe_sobject(self, sobject_type: str) -> Dict[str, Any]:
        res = self._call("describeSObject", {"sObjectType": sobject_type}) or {}
        res["fields"] = _as_list(res.get("fields"))
        return res

    def describe_global(self) -> Dict[str, Any]:
        res = self._call("describeGlobal") or {}
        res["sobjects"] = _as_list(res.get("sobjects"))
        return res

    def describe_layout(
        self,
        sobject_type: str,
        layout_name: Optional[str] = None,
        record_type_ids: Sequence[str] = (),
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"sObjectType": sobject_type}
        if layout_name:
            payload["layoutName"] = layout_name
        payload["recordTypeIds"] = list(record_type_ids)
        return self._call("describeLayout", payload)

    # --------------------------- CRUD --------------------------------

    def create(self, records: Sequence[Record]) -> List[Dict[str, Any]]:
        return self._call_list("create", {"sObjects": [sobject(r) for r in records]})

    def update(self, records: Sequence[Record]) -> List[Dict[str, Any]]:
        return self._call_list("update", {"sObjects": [sobject(r) for r in records]})

    def upsert(self, records: Sequence[Record], external_id_field: str) -> List[Dict[str, Any]]:
        return self._call_list(
            "upsert",
            {
                "externalIDFieldName": external_id_field,
                "sObjects": [sobject(r) for r in records],
            },
        )

    def merge(self, merge_requests: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Each request is ``{"masterRecord": record, "recordToMergeIds": [...]}``."""
        items = []
        for req in merge_requests:
            items.append(
                {
                    "masterRecord": sobject(req["masterRecord"], tag="masterRecord"),
                    "recordToMergeIds": list(req.get("recordToMergeIds", [])),
                }
            )
        return self._call_list("merge", {"request": items})

    def delete(self, ids: Sequence[str]) -> List[Dict[str, Any]]:
        return self._call_list("delete", {"ids": list(ids)})

    def undelete(self, ids: Sequence[str]) -> List[Dict[str, Any]]:
        return self._call_list("undelete", {"ids": list(ids)})

    def retrieve(
        self, sobject_type: str, ids: Sequence[str], field_list: str
    ) -> List[Dict[str, Any]]:
        return self._call_list(
            "retrieve",
            {"fieldList": field_list, "sObjectType": sobject_type, "ids": list(ids)},
        )

    # --------------------------- Query / search ----------------------

    def query(self, soql: str) -> Dict[str, Any]:
        return _query_result(self._call("query", {"queryString": soql}))

    def query_all(self, soql: str) -> Dict[str, Any]:
        """Like :meth:`query` but includes deleted and archived records."""
        return _query_result(self._call("queryAll", {"queryString": soql}))

    def query_more(self, query_locator: str) -> Dict[str, Any]:
        return _query_result(self._call("queryMore", {"queryLocator": query_locator}))

    def search(self, sosl: str) -> Dict[str, Any]:
        res = self._call("search", {"searchString": sosl}) or {}
        res["searchRecords"] = _as_list(res.get("searchRecords"))
        return res

    # --------------------------- Users / email -----------------------

    def set_password(self, user_id: str, password: str) -> Dict[str, Any]:
        return self._call("setPassword", {"userId": user_id, "password": password})

    def reset_password(self, user_id: str) -> Dict[str, Any]:
        return self._call("resetPassword", {"userId": user_id})

    def get_user_info(self) -> Dict[str, Any]:
        return self._call("getUserInfo")

    def send_email_message(self, ids: Union[str, Sequence[str]]) -> List[Dict[str, Any]]:
        """Send draft EmailMessage records by id."""
        id_list = [ids] if isinstance(ids, str) else list(ids)
        return self._call_list("sendEmailMessage", {"ids": id_list})

    def send_email(
        self,
        messages: Sequence[Mapping[str, Any]],
        email_type: str = "SingleEmailMessage",
    ) -> List[Dict[str, Any]]:
        return self._call_list(
            "sendEmail",
            {"messages": [typed("messages", email_type, m) for m in messages]},
        )

    # --------------------------- Apex --------------------------------

    def compile_and_test(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        return self._apex_call("compileAndTest", {"CompileAndTestRequest": dict(request)})

    def compile_classes(self, scripts: Sequence[str]) -> List[Dict[str, Any]]:
        return _as_list(self._apex_call("compileClasses", {"scripts": list(scripts)}))

    def compile_triggers(self, scripts: Sequence[str]) -> List[Dict[str, Any]]:
        return _as_list(self._apex_call("compileTriggers", {"scripts": list(scripts)}))

    def execute_anonymous(self, code: str) -> Dict[str, Any]:
        return self._apex_call("executeAnonymous", {"String": code})

    def run_tests(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        return self._apex_call("runTests", {"RunTestsRequest": dict(request)})

    def wsdl_to_apex(self, info: Mapping[str, Any]) -> Dict[str, Any]:
        return self._apex_call("wsdlToApex", {"info": dict(info)})

    # --------------------------- Lifecycle ---------------------------

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --------------------------- Internal helpers --------------------

    def _call(self, operation: str, payload: Optional[Mapping[str, Any]] = None) -> Any:
        _logger.debug("SOAP %s", operation)
        res = self.transport.call(operation, payload)
        return res.get("result")

    def _call_list(self, operation: str, payload: Mapping[str, Any]) -> List[Any]:
        return _as_list(self._call(operation, payload))

    def _apex_call(self, operation: str, payload: Mapping[str, Any]) -> Any:
        url = derive_apex_url(self.transport.server_url)
        res = self.transport.call(operation, payload, namespace=APEX_NS, url=url)
        return res.get("result")
