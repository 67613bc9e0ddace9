from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse
from xml.etree import ElementTree

from .errors import PlayerNotInAnyGroup, TopologyNotFound
from .soap import parse_body
from .sonos import SonosService


log = logging.getLogger("groupcast")

DEFAULT_SONOS_PORT = 1400

ROLE_INDEPENDENT = "independent"
ROLE_COORDINATOR = "coordinator"
ROLE_JOINER = "joiner"


@dataclass(frozen=True)
class Anchor:
    """The configured player every command starts from."""

    host: str
    port: int = DEFAULT_SONOS_PORT

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass(frozen=True)
class Member:
    hostname: str
    port: int
    uuid: str
    display_name: str

    @property
    def base_url(self) -> str:
        return f"http://{self.hostname}:{self.port}"


@dataclass(frozen=True)
class GroupTopology:
    """Members of one group, coordinator always at index 0.

    Built per operation and never cached: membership may change between calls.
    """

    members: tuple[Member, ...]
    caller_index: int
    coordinator_uuid: str

    def __post_init__(self) -> None:
        if not self.members:
            raise ValueError("GroupTopology needs at least one member")
        if self.members[0].uuid != self.coordinator_uuid:
            raise ValueError("GroupTopology must list the coordinator first")
        if not 0 <= self.caller_index < len(self.members):
            raise ValueError(f"caller index {self.caller_index} out of range")

    @property
    def coordinator(self) -> Member:
        return self.members[0]

    @property
    def caller(self) -> Member:
        return self.members[self.caller_index]

    @property
    def is_independent(self) -> bool:
        return len(self.members) == 1

    @property
    def role(self) -> str:
        if self.is_independent:
            return ROLE_INDEPENDENT
        if self.caller_index == 0:
            return ROLE_COORDINATOR
        return ROLE_JOINER


def _as_list(value: Any) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def _member_from_attrs(attrs: dict) -> Optional[Member]:
    location = attrs.get("Location") or ""
    parsed = urlparse(location)
    if not parsed.hostname:
        return None
    return Member(
        hostname=parsed.hostname,
        port=parsed.port or DEFAULT_SONOS_PORT,
        uuid=attrs.get("UUID") or "",
        display_name=attrs.get("ZoneName") or "",
    )


def parse_zone_groups(zone_group_state: str) -> list[dict]:
    """Return ``[{"id", "coordinator", "members": [Member]}]`` in reported order."""

    if not zone_group_state or not zone_group_state.strip():
        return []
    try:
        doc = parse_body(zone_group_state)
    except ElementTree.ParseError as exc:
        log.warning("Unparsable zone group state: %s", exc)
        return []
    container = doc.get("ZoneGroupState", doc)
    zone_groups = container.get("ZoneGroups") if isinstance(container, dict) else None
    if not isinstance(zone_groups, dict):
        return []

    groups: list[dict] = []
    for group in _as_list(zone_groups.get("ZoneGroup")):
        if not isinstance(group, dict):
            continue
        members = []
        for attrs in _as_list(group.get("ZoneGroupMember")):
            if not isinstance(attrs, dict):
                continue
            member = _member_from_attrs(attrs)
            if member is not None:
                members.append(member)
        groups.append({"id": group.get("ID") or "", "coordinator": group.get("Coordinator") or "", "members": members})
    return groups


class TopologyResolver:
    def __init__(self, sonos: SonosService) -> None:
        self._sonos = sonos

    async def resolve(self, anchor: Anchor, player_name: str = "") -> GroupTopology:
        raw = await self._sonos.get_zone_group_state(anchor.base_url)
        groups = parse_zone_groups(raw)
        if not groups:
            raise TopologyNotFound("undefined all groups data received", action="GetZoneGroupState")
        return build_topology(groups, anchor, player_name)


def build_topology(groups: list[dict], anchor: Anchor, player_name: str = "") -> GroupTopology:
    search_by_name = bool(player_name)
    found_group: Optional[dict] = None
    used_hostname: Optional[str] = None
    for group in groups:
        for member in group["members"]:
            if search_by_name:
                matched = member.display_name == player_name
            else:
                matched = member.hostname == anchor.host
            if matched:
                found_group = group
                used_hostname = member.hostname
                break
        if found_group is not None:
            break

    if found_group is None:
        target = player_name if search_by_name else anchor.host
        raise PlayerNotInAnyGroup(f"could not find player {target!r} in any group", action="GetZoneGroupState")

    coordinator_uuid = found_group["coordinator"]
    coordinator = next((m for m in found_group["members"] if m.uuid == coordinator_uuid), None)
    if coordinator is None:
        raise TopologyNotFound(
            f"coordinator {coordinator_uuid!r} is not a member of group {found_group['id']!r}",
            action="GetZoneGroupState",
        )
    ordered = [coordinator] + [m for m in found_group["members"] if m.uuid != coordinator_uuid]
    caller_index = next(i for i, m in enumerate(ordered) if m.hostname == used_hostname)
    return GroupTopology(members=tuple(ordered), caller_index=caller_index, coordinator_uuid=coordinator_uuid)
