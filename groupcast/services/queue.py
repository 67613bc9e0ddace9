from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable
from xml.etree import ElementTree

from .errors import InvalidResponse
from .favorites import URI_TEXT_KEY, as_list, text_value
from .soap import parse_body


@dataclass(frozen=True)
class QueueItem:
    position: int
    title: str
    artist: str
    album: str
    uri: str
    album_art: str

    def to_dict(self) -> dict:
        return asdict(self)


def parse_queue(pages: Iterable[str], base_url: str = "") -> list[QueueItem]:
    """Queue entries from ``Q:0`` browse pages, numbered from 1 in play order."""

    result: list[QueueItem] = []
    for didl in pages:
        if not didl or not didl.strip():
            continue
        try:
            doc = parse_body(didl, text_key=URI_TEXT_KEY)
        except ElementTree.ParseError as exc:
            raise InvalidResponse(f"invalid queue DIDL-Lite: {exc}", action="Browse") from exc
        root = doc.get("DIDL-Lite")
        if not isinstance(root, dict):
            continue
        for raw in as_list(root.get("item")):
            res = raw.get("res")
            album_art = text_value(raw.get("upnp:albumArtURI"))
            if album_art.startswith("/getaa"):
                album_art = base_url + album_art
            result.append(
                QueueItem(
                    position=len(result) + 1,
                    title=text_value(raw.get("dc:title")),
                    artist=text_value(raw.get("dc:creator")),
                    album=text_value(raw.get("upnp:album")),
                    uri=text_value(res.get(URI_TEXT_KEY)) if isinstance(res, dict) else text_value(res),
                    album_art=album_art,
                )
            )
    return result
