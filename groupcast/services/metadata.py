from __future__ import annotations

import posixpath
from typing import Optional
from urllib.parse import unquote, urlparse
from xml.sax.saxutils import escape as xml_escape


DIDL_OPEN = (
    '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
    'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
    'xmlns:r="urn:schemas-rinconnetworks-com:metadata-1-0/" '
    'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">'
)
DIDL_CLOSE = "</DIDL-Lite>"

TUNEIN_SERVICE_DESCRIPTOR = "SA_RINCON65031_"

_MIME_BY_EXTENSION = {
    ".mp3": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".ogg": "application/ogg",
    ".wma": "audio/x-ms-wma",
}


def queue_uri(coordinator_uuid: str) -> str:
    return f"x-rincon-queue:{coordinator_uuid}#0"


def tunein_uri(station_id: str) -> str:
    return f"x-sonosapi-stream:{station_id}?sid=254&flags=8224&sn=0"


def tunein_metadata(station_id: str) -> str:
    return (
        DIDL_OPEN
        + f'<item id="F00092020{xml_escape(station_id)}" parentID="L" restricted="true">'
        "<dc:title>tunein</dc:title>"
        "<upnp:class>object.item.audioItem.audioBroadcast</upnp:class>"
        '<desc id="cdudn" nameSpace="urn:schemas-rinconnetworks-com:metadata-1-0/">'
        f"{TUNEIN_SERVICE_DESCRIPTOR}"
        "</desc>"
        "</item>"
        + DIDL_CLOSE
    )


def _title_from_uri(uri: str) -> str:
    parsed = urlparse(uri)
    name = posixpath.basename(unquote(parsed.path or ""))
    stem, _ = posixpath.splitext(name)
    return stem or parsed.netloc or uri


def notification_metadata(uri: str, title: Optional[str] = None) -> str:
    """DIDL-Lite describing a plain audio file so the player shows a sensible title."""

    _, extension = posixpath.splitext(urlparse(uri).path.lower())
    mime = _MIME_BY_EXTENSION.get(extension, "audio/mpeg")
    resolved_title = title or _title_from_uri(uri)
    return (
        DIDL_OPEN
        + '<item id="notification" parentID="0" restricted="1">'
        f"<dc:title>{xml_escape(resolved_title)}</dc:title>"
        "<upnp:class>object.item.audioItem.musicTrack</upnp:class>"
        f'<res protocolInfo="http-get:*:{mime}:*">{xml_escape(uri)}</res>'
        "</item>"
        + DIDL_CLOSE
    )
