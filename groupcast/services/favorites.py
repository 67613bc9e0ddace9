from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterable
from xml.etree import ElementTree

from .errors import InvalidResponse, ValidationError
from .soap import parse_body
from .sonos import SonosService


log = logging.getLogger("groupcast")

URI_TEXT_KEY = "uriIdentifier"

UPNP_CLASSES_STREAM = ("object.item.audioItem.audioBroadcast",)
UPNP_CLASSES_QUEUE = (
    "object.container.album.musicAlbum",
    "object.container.playlistContainer",
    "object.item.audioItem.musicTrack",
    "object.container.playlistContainer#playlistItem",
)

PROCESSING_QUEUE = "queue"
PROCESSING_STREAM = "stream"
PROCESSING_UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class MySonosItem:
    title: str
    album_art: str
    uri: str
    metadata: str
    sid: str
    upnp_class: str
    processing_type: str

    @property
    def queue(self) -> bool:
        return self.processing_type == PROCESSING_QUEUE

    def to_dict(self) -> dict:
        return asdict(self)


def get_sid(uri: str) -> str:
    """Service id between ``?sid=`` and ``&flags=``, e.g. ``...?sid=201&flags=8300&sn=14`` gives ``201``."""

    if not uri:
        return ""
    start = uri.find("?sid=")
    end = uri.find("&flags=")
    if start < 0 or end < 0:
        return ""
    start += len("?sid=")
    return uri[start:end] if end > start else ""


def get_upnp_class(metadata: str) -> str:
    if not metadata:
        return ""
    open_tag, close_tag = "<upnp:class>", "</upnp:class>"
    start = metadata.find(open_tag)
    end = metadata.find(close_tag)
    if start < 0 or end < 0:
        return ""
    start += len(open_tag)
    return metadata[start:end] if end > start else ""


def processing_type(upnp_class: str) -> str:
    if upnp_class in UPNP_CLASSES_QUEUE:
        return PROCESSING_QUEUE
    if upnp_class in UPNP_CLASSES_STREAM:
        return PROCESSING_STREAM
    return PROCESSING_UNSUPPORTED


def text_value(value: Any) -> str:
    return value if isinstance(value, str) else ""


def as_list(value: Any) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def parse_favorites(didl: str, base_url: str = "") -> list[MySonosItem]:
    """Turn the DIDL-Lite ``Result`` of a ``FV:2`` browse into items in player order."""

    if not didl or not didl.strip():
        return []
    try:
        doc = parse_body(didl, text_key=URI_TEXT_KEY)
    except ElementTree.ParseError as exc:
        raise InvalidResponse(f"invalid My Sonos DIDL-Lite: {exc}", action="Browse") from exc
    root = doc.get("DIDL-Lite")
    if not isinstance(root, dict):
        return []

    result: list[MySonosItem] = []
    for raw in as_list(root.get("item")):
        res = raw.get("res")
        uri = text_value(res.get(URI_TEXT_KEY)) if isinstance(res, dict) else text_value(res)
        metadata = text_value(raw.get("r:resMD"))
        upnp_class = get_upnp_class(metadata)
        album_art = text_value(raw.get("upnp:albumArtURI"))
        # library items carry a host-relative album art path
        if album_art.startswith("/getaa"):
            album_art = base_url + album_art
        result.append(
            MySonosItem(
                title=text_value(raw.get("dc:title")),
                album_art=album_art,
                uri=uri,
                metadata=metadata,
                sid=get_sid(uri),
                upnp_class=upnp_class,
                processing_type=processing_type(upnp_class),
            )
        )
    return result


def find_by_title(items: Iterable[MySonosItem], search: str) -> MySonosItem:
    for item in items:
        if search in item.title:
            return item
    raise ValidationError(f"no My Sonos title matching {search!r}", action="play.mysonos")


async def get_all_my_sonos_items(sonos: SonosService, base_url: str) -> list[MySonosItem]:
    page = await sonos.browse(base_url)
    if page["total_matches"] > page["number_returned"]:
        log.warning("My Sonos has %d items, only %d listed", page["total_matches"], page["number_returned"])
    return parse_favorites(page["result"], base_url)
