from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .errors import InvalidResponse
from .executor import ActionExecutor
from .metadata import queue_uri, tunein_metadata, tunein_uri
from .soap import encode_xml


log = logging.getLogger("groupcast")

QUEUE_PAGE_SIZE = 100

PLAYBACK_STATES = {
    "PLAYING": "playing",
    "PAUSED_PLAYBACK": "paused",
    "STOPPED": "stopped",
    "TRANSITIONING": "transitioning",
    "NO_MEDIA_PRESENT": "no_media",
}


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class MediaInfo:
    current_uri: str
    current_uri_metadata: str
    track_count: int


@dataclass(frozen=True)
class PositionInfo:
    track: int
    track_duration: str
    relative_time: str


class SonosService:
    """Typed calls for the UPnP actions GroupCast needs, addressed by player base URL."""

    def __init__(self, executor: ActionExecutor) -> None:
        self._executor = executor

    async def play(self, base_url: str) -> None:
        await self._executor.execute_set(base_url, "Play")

    async def pause(self, base_url: str) -> None:
        await self._executor.execute_set(base_url, "Pause")

    async def stop(self, base_url: str) -> None:
        await self._executor.execute_set(base_url, "Stop")

    async def next_track(self, base_url: str) -> None:
        await self._executor.execute_set(base_url, "Next")

    async def previous_track(self, base_url: str) -> None:
        await self._executor.execute_set(base_url, "Previous")

    async def set_av_transport_uri(self, base_url: str, uri: str, metadata: str = "") -> None:
        """Set the transport URI without starting playback."""

        args = {"CurrentURI": encode_xml(uri)}
        if metadata:
            args["CurrentURIMetaData"] = encode_xml(metadata)
        await self._executor.execute_set(base_url, "SetAVTransportURI", args)

    async def select_track(self, base_url: str, track: int) -> None:
        await self._executor.execute_set(base_url, "Seek", {"Unit": "TRACK_NR", "Target": str(track)})

    async def seek(self, base_url: str, relative_time: str) -> None:
        await self._executor.execute_set(base_url, "Seek", {"Unit": "REL_TIME", "Target": relative_time})

    async def get_transport_state(self, base_url: str) -> str:
        state = await self._executor.execute_get(base_url, "GetTransportInfo")
        return state.strip()

    async def get_playback_state(self, base_url: str) -> str:
        state = await self.get_transport_state(base_url)
        return PLAYBACK_STATES.get(state.upper(), state.lower())

    async def get_media_info(self, base_url: str) -> MediaInfo:
        data = await self._executor.execute_fetch(base_url, "GetMediaInfo")
        return MediaInfo(
            current_uri=_text(data.get("CurrentURI")),
            current_uri_metadata=_text(data.get("CurrentURIMetaData")),
            track_count=_int(data.get("NrTracks")),
        )

    async def get_position_info(self, base_url: str) -> PositionInfo:
        data = await self._executor.execute_fetch(base_url, "GetPositionInfo")
        return PositionInfo(
            track=_int(data.get("Track")),
            track_duration=_text(data.get("TrackDuration")),
            relative_time=_text(data.get("RelTime")),
        )

    async def get_volume(self, base_url: str) -> int:
        raw = await self._executor.execute_get(base_url, "GetVolume")
        try:
            volume = int(raw.strip())
        except ValueError as exc:
            raise InvalidResponse(f"could not parse volume {raw!r} from {base_url}", action="GetVolume") from exc
        if not 0 <= volume <= 100:
            raise InvalidResponse(f"volume {volume} from {base_url} is out of range", action="GetVolume")
        return volume

    async def set_volume(self, base_url: str, volume: int) -> None:
        await self._executor.execute_set(base_url, "SetVolume", {"DesiredVolume": str(int(volume))})

    async def get_zone_group_state(self, base_url: str) -> str:
        return await self._executor.execute_get(base_url, "GetZoneGroupState")

    async def browse(
        self,
        base_url: str,
        object_id: str = "FV:2",
        requested_count: int = 100,
        starting_index: int = 0,
    ) -> dict:
        data = await self._executor.execute_fetch(
            base_url,
            "Browse",
            {
                "ObjectID": object_id,
                "RequestedCount": str(requested_count),
                "StartingIndex": str(starting_index),
            },
        )
        return {
            "result": _text(data.get("Result")),
            "number_returned": _int(data.get("NumberReturned")),
            "total_matches": _int(data.get("TotalMatches")),
        }

    async def queue_size(self, base_url: str) -> int:
        page = await self.browse(base_url, object_id="Q:0", requested_count=1)
        return page["total_matches"]

    async def browse_queue(self, base_url: str) -> list[str]:
        """DIDL-Lite pages of the whole queue, fetched QUEUE_PAGE_SIZE entries at a time."""

        pages: list[str] = []
        start = 0
        while True:
            page = await self.browse(base_url, object_id="Q:0", requested_count=QUEUE_PAGE_SIZE, starting_index=start)
            pages.append(page["result"])
            start += page["number_returned"]
            if page["number_returned"] == 0 or start >= page["total_matches"]:
                return pages

    async def flush_queue(self, base_url: str) -> None:
        await self._executor.execute_set(base_url, "RemoveAllTracksFromQueue")

    async def add_uri_to_queue(self, base_url: str, uri: str, metadata: Optional[str] = None) -> None:
        await self._executor.execute_set(
            base_url,
            "AddURIToQueue",
            {"EnqueuedURI": encode_xml(uri), "EnqueuedURIMetaData": encode_xml(metadata or "")},
        )

    async def select_queue(self, base_url: str, coordinator_uuid: str) -> None:
        await self.set_av_transport_uri(base_url, queue_uri(coordinator_uuid))
        await self.play(base_url)

    async def play_tunein(self, base_url: str, station_id: str) -> None:
        log.debug("Sonos play TuneIn station %s on %s", station_id, base_url)
        await self.set_av_transport_uri(base_url, tunein_uri(station_id), tunein_metadata(station_id))
        await self.play(base_url)
