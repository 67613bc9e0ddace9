from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import ValidationError


TWO_DIGITS_RE = re.compile(r"^\d{1,2}$")
TIME_RE = re.compile(r"^(([0-1][0-9]):([0-5][0-9]):([0-5][0-9]))$")
TUNEIN_ID_RE = re.compile(r"^s\d+$")

VOLUME_MIN = 1
VOLUME_MAX = 99


@dataclass(frozen=True)
class ValidatedGroupParameters:
    player_name: str = ""
    volume: Optional[int] = None  # None: leave volume untouched
    same_volume: bool = True

    @property
    def touches_volume(self) -> bool:
        return self.volume is not None


def parse_volume(value: Any, field_name: str = "volume") -> int:
    """Accept an int or a 1-2 digit numeral string in 1..99."""

    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field_name} is not type string or number")
    if isinstance(value, int):
        volume = value
    else:
        if not TWO_DIGITS_RE.match(value):
            raise ValidationError(f"{field_name} is not a single/double digit")
        volume = int(value)
    if not VOLUME_MIN <= volume <= VOLUME_MAX:
        raise ValidationError(f"{field_name} is out of range {VOLUME_MIN} .. {VOLUME_MAX}")
    return volume


def validate_group_parameters(message: Mapping[str, Any]) -> ValidatedGroupParameters:
    player_name = ""
    if message.get("playerName") is not None:
        candidate = message["playerName"]
        if not isinstance(candidate, str) or not candidate:
            raise ValidationError("playerName is not string or empty string")
        player_name = candidate

    volume: Optional[int] = None
    if message.get("volume") is not None:
        volume = parse_volume(message["volume"])

    same_volume = True
    if message.get("sameVolume") is not None:
        candidate = message["sameVolume"]
        if not isinstance(candidate, bool):
            raise ValidationError("sameVolume is not boolean")
        if candidate and volume is None:
            raise ValidationError("sameVolume is true but no volume")
        same_volume = candidate

    return ValidatedGroupParameters(player_name=player_name, volume=volume, same_volume=same_volume)


def hhmmss_to_seconds(value: str) -> int:
    """Seconds for ``h:mm:ss`` or ``hh:mm:ss``; raises ``ValueError`` otherwise."""

    parts = value.strip().split(":")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"not a h:mm:ss duration: {value!r}")
    hours, minutes, seconds = (int(p) for p in parts)
    return hours * 3600 + minutes * 60 + seconds


def parse_duration(message: Mapping[str, Any]) -> Optional[int]:
    """Explicit notification duration in seconds, or None when the player should decide."""

    raw = message.get("duration")
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError("duration is not a string")
    if not TIME_RE.match(raw):
        raise ValidationError("duration is not format hh:mm:ss")
    return hhmmss_to_seconds(raw)


def parse_only_when_playing(message: Mapping[str, Any]) -> bool:
    raw = message.get("onlyWhenPlaying")
    if raw is None:
        return False
    if not isinstance(raw, bool):
        raise ValidationError("onlyWhenPlaying is not boolean")
    return raw


def require_topic(message: Mapping[str, Any], what: str = "topic") -> str:
    topic = message.get("topic")
    if not isinstance(topic, str) or not topic:
        raise ValidationError(f"{what} is not a string or empty string")
    return topic


def parse_tunein_id(message: Mapping[str, Any]) -> str:
    topic = message.get("topic")
    if not isinstance(topic, str) or not topic:
        raise ValidationError("TuneIn radio id is undefined/invalid")
    if not TUNEIN_ID_RE.match(topic):
        raise ValidationError(f"TuneIn radio id has wrong syntax: {topic!r}")
    return topic


def parse_track_number(message: Mapping[str, Any]) -> int:
    """Queue position from ``topic``: a positive int or digit string."""

    topic = message.get("topic")
    if isinstance(topic, bool) or not isinstance(topic, (int, str)):
        raise ValidationError("track number is not type string or number")
    if isinstance(topic, str):
        if not topic.isdigit():
            raise ValidationError(f"track number is not a number: {topic!r}")
        topic = int(topic)
    if topic < 1:
        raise ValidationError("track number must be 1 or greater")
    return topic


def parse_http_uri(message: Mapping[str, Any]) -> str:
    uri = require_topic(message, "radio uri")
    if not uri.startswith("http"):
        raise ValidationError(f"radio uri should start with http: {uri!r}")
    return uri
