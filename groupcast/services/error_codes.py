from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional


UNKNOWN_ERROR = "unknown error"


def _codes(*pairs: tuple[str, str]) -> tuple[MappingProxyType, ...]:
    return tuple(MappingProxyType({"code": code, "message": message}) for code, message in pairs)


# Keys are upper-cased service names or action verbs; "UPNP" is the generic fallback.
ERROR_CODES: Mapping[str, tuple[Mapping[str, str], ...]] = MappingProxyType(
    {
        "UPNP": _codes(
            ("400", "Bad request"),
            ("401", "Invalid action"),
            ("402", "Invalid args"),
            ("404", "Invalid var"),
            ("412", "Precondition failed"),
            ("501", "Action failed"),
            ("600", "Argument value invalid"),
            ("601", "Argument value out of range"),
            ("602", "Optional action not implemented"),
            ("603", "Out of memory"),
            ("604", "Human intervention required"),
            ("605", "String argument too long"),
            ("606", "Action not authorized"),
            ("607", "Signature failure"),
            ("608", "Signature missing"),
            ("609", "Not encrypted"),
            ("610", "Invalid sequence"),
            ("611", "Invalid control URL"),
            ("612", "No such session"),
        ),
        "AVTRANSPORT": _codes(
            ("701", "Transition not available"),
            ("702", "No contents"),
            ("703", "Read error"),
            ("704", "Format not supported for playback"),
            ("705", "Transport is locked"),
            ("706", "Write error"),
            ("707", "Media is protected or not writeable"),
            ("708", "Format not supported for recording"),
            ("709", "Media is full"),
            ("710", "Seek mode not supported"),
            ("711", "Illegal seek target"),
            ("712", "Play mode not supported"),
            ("713", "Record quality not supported"),
            ("714", "Illegal MIME-Type"),
            ("715", "Content BUSY"),
            ("716", "Resource not found"),
            ("717", "Play speed not supported"),
            ("718", "Invalid InstanceID"),
            ("737", "No DNS Server"),
            ("738", "Bad Domain Name"),
            ("739", "Server Error"),
            ("800", "Command not supported or not a coordinator"),
        ),
        "RENDERINGCONTROL": _codes(
            ("701", "Invalid name"),
            ("702", "Invalid InstanceID"),
        ),
        "CONTENTDIRECTORY": _codes(
            ("701", "No such object"),
            ("702", "Invalid CurrentTagValue"),
            ("703", "Invalid NewTagValue"),
            ("704", "Required tag"),
            ("705", "Read only tag"),
            ("706", "Parameter mismatch"),
            ("708", "Unsupported or invalid search criteria"),
            ("709", "Unsupported or invalid sort criteria"),
            ("710", "No such container"),
            ("711", "Restricted object"),
            ("712", "Bad metadata"),
            ("713", "Restricted parent object"),
            ("714", "No such source resource"),
            ("715", "Resource access denied"),
            ("716", "Transfer busy"),
            ("717", "No such file transfer"),
            ("718", "No such destination resource"),
            ("719", "Destination resource access denied"),
            ("720", "Cannot process the request"),
        ),
        "SEEK": _codes(
            ("701", "Seek target not reachable for this content"),
            ("711", "Illegal seek target"),
        ),
    }
)


def _lookup(key: str, code: str) -> Optional[str]:
    for entry in ERROR_CODES.get(key.upper(), ()):
        if entry["code"] == code:
            return entry["message"]
    return None


def resolve_upnp_error(code: Optional[str], *contexts: Optional[str]) -> str:
    """Map a UPnP error code to a message.

    Each context (action verb, service name, ...) is tried in order before the
    generic UPnP table. Never raises; unknown codes yield "unknown error".
    """
    normalized = (code or "").strip()
    if not normalized:
        return UNKNOWN_ERROR
    for context in contexts:
        if not context:
            continue
        message = _lookup(context, normalized)
        if message is not None:
            return message
    return _lookup("UPNP", normalized) or UNKNOWN_ERROR
