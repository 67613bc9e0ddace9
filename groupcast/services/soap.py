from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union
from xml.etree import ElementTree
from xml.sax.saxutils import escape as xml_escape

import httpx

from .error_codes import resolve_upnp_error
from .errors import MalformedFault, ProtocolFault, TransportError, TransportTimeout


log = logging.getLogger("groupcast.soap")

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP_ENCODING_NS = "http://schemas.xmlsoap.org/soap/encoding/"
DEFAULT_TEXT_KEY = "_"

_XML_ENTITIES = {"'": "&apos;", '"': "&quot;"}


def service_namespace(service: str) -> str:
    return f"urn:schemas-upnp-org:service:{service}:1"


def encode_xml(text: str) -> str:
    """Escape the five XML special characters so the value can travel as SOAP argument text."""

    return xml_escape(text, _XML_ENTITIES)


def build_envelope(service: str, action: str, args: Optional[Mapping[str, Any]] = None) -> str:
    ns = service_namespace(service)
    body_parts = [f"<{k}>{v}</{k}>" for k, v in (args or {}).items()]
    return (
        f"<s:Envelope xmlns:s=\"{SOAP_ENVELOPE_NS}\" "
        f"s:encodingStyle=\"{SOAP_ENCODING_NS}\">"
        "<s:Body>"
        f"<u:{action} xmlns:u=\"{ns}\">"
        + "".join(body_parts)
        + f"</u:{action}>"
        "</s:Body>"
        "</s:Envelope>"
    )


@dataclass
class SoapResponse:
    headers: dict
    body: str
    status_code: int


@dataclass
class _Frame:
    name: str
    attrs: dict
    children: list = field(default_factory=list)


def _qualify(tag: str, scope: Mapping[str, str]) -> str:
    if not tag.startswith("{"):
        return tag
    uri, _, local = tag[1:].partition("}")
    prefix = scope.get(uri)
    return f"{prefix}:{local}" if prefix else local


def _merge(target: dict, key: str, value: Any) -> None:
    if key not in target:
        target[key] = value
        return
    existing = target[key]
    if isinstance(existing, list):
        existing.append(value)
    else:
        target[key] = [existing, value]


def _build(frame: _Frame, text: Optional[str], text_key: str) -> Union[str, dict]:
    content = text if text and text.strip() else ""
    if not frame.attrs and not frame.children:
        return text or ""
    node: dict = dict(frame.attrs)
    for name, value in frame.children:
        _merge(node, name, value)
    if content:
        node[text_key] = content
    return node


def parse_body(xml_body: Union[str, bytes], text_key: str = "") -> dict:
    """Convert an XML document into nested dicts keyed by prefixed tag names.

    Attributes (including namespace declarations such as ``xmlns:u``) share the
    level of child elements. Repeated children become lists, leaves without
    attributes become strings. Text of elements that also carry attributes or
    children is stored under ``text_key`` (``"_"`` when empty).
    """
    key = text_key or DEFAULT_TEXT_KEY
    data = xml_body.encode("utf-8") if isinstance(xml_body, str) else xml_body
    stack: list[_Frame] = []
    scopes: list[dict[str, str]] = [{}]
    pending_ns: list[tuple[str, str]] = []
    root: dict = {}

    for event, item in ElementTree.iterparse(io.BytesIO(data), events=("start-ns", "start", "end")):
        if event == "start-ns":
            pending_ns.append(item)
            continue
        if event == "start":
            scope = dict(scopes[-1])
            attrs: dict = {}
            for prefix, uri in pending_ns:
                scope[uri] = prefix
                attrs[f"xmlns:{prefix}" if prefix else "xmlns"] = uri
            pending_ns = []
            for attr_name, attr_value in item.attrib.items():
                attrs[_qualify(attr_name, scope)] = attr_value
            scopes.append(scope)
            stack.append(_Frame(name=_qualify(item.tag, scope), attrs=attrs))
            continue
        frame = stack.pop()
        scopes.pop()
        value = _build(frame, item.text, key)
        if stack:
            stack[-1].children.append((frame.name, value))
        else:
            root = {frame.name: value}
    return root


def extract_upnp_error_code(xml_text: str) -> Optional[str]:
    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError:
        return None
    if root.find(".//{*}Fault") is None:
        return None
    code = root.findtext(".//{*}errorCode")
    code = (code or "").strip()
    return code or None


class SoapClient:
    def __init__(
        self,
        *,
        timeout: Union[httpx.Timeout, float] = httpx.Timeout(10.0, connect=5.0),
        user_agent: str = "GroupCast/Sonos",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport

    async def send(
        self,
        base_url: str,
        path: str,
        service: str,
        action: str,
        args: Optional[Mapping[str, Any]] = None,
    ) -> SoapResponse:
        envelope = build_envelope(service, action, args)
        headers = {
            "SOAPAction": f'"{service_namespace(service)}#{action}"',
            "Content-Type": "text/xml; charset=utf8",
            "User-Agent": self._user_agent,
        }
        log.debug("SOAP %s.%s -> %s%s", service, action, base_url, path)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(f"{base_url}{path}", content=envelope.encode("utf-8"), headers=headers)
        except httpx.TimeoutException as exc:
            raise TransportTimeout(f"Sonos SOAP {service}.{action} timed out: {exc}", action=action) from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Sonos SOAP {service}.{action} failed: {exc!r}", action=action) from exc

        if resp.status_code >= 400:
            self._raise_fault(resp, service, action)
        return SoapResponse(headers=dict(resp.headers), body=resp.text, status_code=resp.status_code)

    @staticmethod
    def _raise_fault(resp: httpx.Response, service: str, action: str) -> None:
        body = resp.text or ""
        if resp.status_code == 500 and body:
            code = extract_upnp_error_code(body)
            if code:
                message = resolve_upnp_error(code, action, service)
                raise ProtocolFault(
                    f"statusCode 500 & upnpErrorCode {code}. upnpErrorMessage >>{message}",
                    action=action,
                    status_code=500,
                    upnp_error_code=code,
                    upnp_error_message=message,
                )
        detail = body.strip() or f"HTTP {resp.status_code}"
        raise MalformedFault(
            f"Sonos SOAP {service}.{action} failed with HTTP {resp.status_code}: {detail}",
            action=action,
            status_code=resp.status_code,
        )
