"""Build SOAP request envelopes and turn response envelopes into Python values.

Only the small subset of SOAP 1.1 that the Salesforce partner API uses is
handled: one operation element in the body, a handful of headers, faults
with an optional ``exceptionCode`` detail.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from .exceptions import ProtocolError, SoapFaultError

_logger = logging.getLogger(__name__)

SOAPENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
PARTNER_NS = "urn:partner.soap.sforce.com"
SOBJECT_NS = "urn:sobject.partner.soap.sforce.com"
APEX_NS = "http://soap.sforce.com/2006/08/apex"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"

ET.register_namespace("soapenv", SOAPENV_NS)
ET.register_namespace("urn", PARTNER_NS)
ET.register_namespace("ens", SOBJECT_NS)
ET.register_namespace("apex", APEX_NS)
ET.register_namespace("xsi", XSI_NS)

_XSI_NIL = f"{{{XSI_NS}}}nil"
_XSI_TYPE = f"{{{XSI_NS}}}type"

# sObject keys that live in the sobject namespace; other keys are field names
_SOBJECT_SYSTEM_FIELDS = ("type", "fieldsToNull", "Id")


def _q(ns: str, name: str) -> str:
    return f"{{{ns}}}{name}"


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


# ----------------------------------------------------------------------
# Request side
# ----------------------------------------------------------------------
def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def append_value(parent: ET.Element, name: str, value: Any, ns: str = PARTNER_NS) -> None:
    """Append ``value`` under ``parent`` as one or more ``name`` elements.

    Lists repeat the element, mappings nest, None becomes ``xsi:nil`` and
    ready-made Elements (e.g. from :func:`sobject`) are attached as-is.
    """
    if isinstance(value, ET.Element):
        parent.append(value)
    elif isinstance(value, (list, tuple)):
        for item in value:
            append_value(parent, name, item, ns)
    elif isinstance(value, Mapping):
        child = ET.SubElement(parent, _q(ns, name))
        for key, sub in value.items():
            append_value(child, key, sub, ns)
    elif value is None:
        ET.SubElement(parent, _q(ns, name), {_XSI_NIL: "true"})
    else:
        ET.SubElement(parent, _q(ns, name)).text = _text(value)


def sobject(record: Mapping[str, Any], tag: str = "sObjects") -> ET.Element:
    """Render a record dict (must carry ``type``) as a partner sObject element."""
    if not record.get("type"):
        raise ValueError("sObject record needs a 'type' key")
    el = ET.Element(_q(PARTNER_NS, tag))
    for key in _SOBJECT_SYSTEM_FIELDS:
        if key in record and record[key] is not None:
            append_value(el, key, record[key], SOBJECT_NS)
    for key, value in record.items():
        if key in _SOBJECT_SYSTEM_FIELDS:
            continue
        if value is None:
            ET.SubElement(el, key, {_XSI_NIL: "true"})
        elif isinstance(value, ET.Element):
            el.append(value)
        else:
            ET.SubElement(el, key).text = _text(value)
    return el


def typed(
    tag: str,
    xsi_type: str,
    fields: Mapping[str, Any],
    ns: str = PARTNER_NS,
) -> ET.Element:
    """Element for an abstract WSDL type, e.g. Email -> SingleEmailMessage."""
    el = ET.Element(_q(ns, tag), {_XSI_TYPE: f"urn:{xsi_type}"})
    for key, value in fields.items():
        append_value(el, key, value, ns)
    return el


def build_envelope(
    operation: str,
    payload: Optional[Mapping[str, Any]] = None,
    headers: Iterable[Any] = (),
    namespace: str = PARTNER_NS,
) -> bytes:
    """Serialize one SOAP request.

    ``headers`` are objects with a ``tag`` and a ``fields()`` mapping (see
    :mod:`sfsoap.headers`); they are written in the same namespace as the
    operation.
    """
    env = ET.Element(_q(SOAPENV_NS, "Envelope"))
    header_el = ET.SubElement(env, _q(SOAPENV_NS, "Header"))
    for h in headers:
        append_value(header_el, h.tag, h.fields(), namespace)
    body = ET.SubElement(env, _q(SOAPENV_NS, "Body"))
    op = ET.SubElement(body, _q(namespace, operation))
    for key, value in (payload or {}).items():
        append_value(op, key, value, namespace)
    return ET.tostring(env, encoding="utf-8", xml_declaration=True)


# ----------------------------------------------------------------------
# Response side
# ----------------------------------------------------------------------
@dataclass
class SoapResponse:
    """Parsed response: the operation element's content and any SOAP headers."""

    operation: str
    body: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, Any] = field(default_factory=dict)


def _xsi_type(el: ET.Element) -> str:
    return el.get(_XSI_TYPE, "").rsplit(":", 1)[-1]


def _leaf(el: ET.Element, *, field_value: bool = False) -> Any:
    text = (el.text or "").strip()
    xsi_type = _xsi_type(el)
    if xsi_type in ("int", "double"):
        if not text:
            return None
        return int(text) if xsi_type == "int" else float(text)
    if xsi_type == "boolean" or (not field_value and text in ("true", "false")):
        return text == "true"
    return el.text or ""


def element_to_python(el: ET.Element, *, field_values: bool = False) -> Any:
    """Convert an element to str/bool/int/float/None or a dict of its children.

    Repeated child names become lists. Untyped ``true``/``false`` in API
    structures (``done``, ``success``) become bools, but direct children of
    an sObject are record field values and stay text unless ``xsi:type``
    says otherwise. Inside sObjects, Salesforce repeats ``Id``; repeated
    identical leaves there collapse to a single value.
    """
    if el.get(_XSI_NIL) == "true":
        return None
    children = list(el)
    if not children:
        return _leaf(el, field_value=field_values)

    is_sobject = _xsi_type(el) == "sObject"
    out: Dict[str, Any] = {}
    for child in children:
        key = local_name(child.tag)
        value = element_to_python(child, field_values=is_sobject)
        if key not in out:
            out[key] = value
            continue
        if is_sobject and out[key] == value:
            continue
        if not isinstance(out[key], list):
            out[key] = [out[key]]
        out[key].append(value)
    return out


def _raise_fault(fault: ET.Element, status_code: Optional[int]) -> None:
    # faultcode etc. are normally unqualified, but match on local name anyway
    parts = {local_name(child.tag): child for child in fault}
    code = parts["faultcode"].text or "" if "faultcode" in parts else ""
    message = parts["faultstring"].text or "" if "faultstring" in parts else ""
    exception_code = None
    detail = parts.get("detail")
    if detail is not None:
        for el in detail.iter():
            if local_name(el.tag) == "exceptionCode":
                exception_code = el.text
                break
    _logger.debug("SOAP fault %s (%s): %s", code, exception_code, message)
    raise SoapFaultError(
        code,
        message,
        exception_code=exception_code,
        status_code=status_code,
    )


def parse_envelope(content: bytes, *, status_code: Optional[int] = None) -> SoapResponse:
    """Parse a response envelope, raising SoapFaultError for faults."""
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ProtocolError(f"Response is not valid XML: {e}") from e

    if root.tag != _q(SOAPENV_NS, "Envelope"):
        raise ProtocolError(f"Unexpected root element {root.tag!r}")

    body = root.find(_q(SOAPENV_NS, "Body"))
    if body is None or len(body) == 0:
        raise ProtocolError("Response envelope has no body")

    op = body[0]
    if op.tag == _q(SOAPENV_NS, "Fault"):
        _raise_fault(op, status_code)

    headers: Dict[str, Any] = {}
    header_el = root.find(_q(SOAPENV_NS, "Header"))
    if header_el is not None:
        for h in header_el:
            headers[local_name(h.tag)] = element_to_python(h)

    parsed = element_to_python(op)
    return SoapResponse(
        operation=local_name(op.tag),
        body=parsed if isinstance(parsed, dict) else {},
        headers=headers,
    )
