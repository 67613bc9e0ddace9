"""Fixtures for testing GroupCast against an in-memory Sonos household."""

import logging
from dataclasses import dataclass, field
from typing import Optional
from xml.etree import ElementTree
from xml.sax.saxutils import escape, quoteattr

import httpx
import pytest

from groupcast.services.commands import GroupCommandService
from groupcast.services.executor import ActionExecutor
from groupcast.services.locks import GroupLocks
from groupcast.services.notification import NotificationOrchestrator
from groupcast.services.soap import SoapClient
from groupcast.services.sonos import SonosService
from groupcast.services.topology import Anchor, TopologyResolver


SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"

KITCHEN = "192.168.1.10"
LIVING = "192.168.1.11"
OFFICE = "192.168.1.12"
BATH = "192.168.1.13"

SERVICE_BY_PATH = {
    "/MediaRenderer/AVTransport/Control": "AVTransport",
    "/MediaRenderer/RenderingControl/Control": "RenderingControl",
    "/ZoneGroupTopology/Control": "ZoneGroupTopology",
    "/MediaServer/ContentDirectory/Control": "ContentDirectory",
}


@dataclass
class FakePlayer:
    host: str
    uuid: str
    name: str
    state: str = "STOPPED"
    uri: str = ""
    metadata: str = ""
    track: int = 0
    nr_tracks: int = 0
    rel_time: str = "0:00:00"
    track_duration: str = "0:00:00"
    volume: int = 20
    queue: list = field(default_factory=list)


@dataclass
class Call:
    host: str
    action: str
    args: dict


def _envelope(action: str, service: str, inner: str = "") -> str:
    return (
        f'<s:Envelope xmlns:s="{SOAP_NS}" s:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
        f'<s:Body><u:{action}Response xmlns:u="urn:schemas-upnp-org:service:{service}:1">'
        f"{inner}</u:{action}Response></s:Body></s:Envelope>"
    )


def _fields(**values) -> str:
    return "".join(f"<{k}>{escape(str(v))}</{k}>" for k, v in values.items())


def fault_envelope(code: str) -> str:
    return (
        f'<s:Envelope xmlns:s="{SOAP_NS}"><s:Body><s:Fault>'
        "<faultcode>s:Client</faultcode><faultstring>UPnPError</faultstring>"
        '<detail><UPnPError xmlns="urn:schemas-upnp-org:control-1-0">'
        f"<errorCode>{code}</errorCode></UPnPError></detail>"
        "</s:Fault></s:Body></s:Envelope>"
    )


def favorite_item(title: str, uri: str, upnp_class: str, album_art: str = "") -> str:
    res_md = (
        '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
        'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
        'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">'
        f'<item id="x"><dc:title>{escape(title)}</dc:title><upnp:class>{upnp_class}</upnp:class></item>'
        "</DIDL-Lite>"
    )
    art = f"<upnp:albumArtURI>{escape(album_art)}</upnp:albumArtURI>" if album_art else ""
    return (
        '<item id="FV:2/1" parentID="FV:2" restricted="false">'
        f"<dc:title>{escape(title)}</dc:title>"
        "<upnp:class>object.itemobject.item.sonos-favorite</upnp:class>"
        f"{art}"
        f'<res protocolInfo="x-rincon-cpcontainer:*:*:*">{escape(uri)}</res>'
        f"<r:resMD>{escape(res_md)}</r:resMD>"
        "</item>"
    )


def queue_item(position: int, uri: str) -> str:
    return (
        f'<item id="Q:0/{position}" parentID="Q:0" restricted="true">'
        f'<res protocolInfo="http-get:*:audio/mpeg:*">{escape(uri)}</res>'
        f"<upnp:albumArtURI>/getaa?s=1&amp;u={escape(uri)}</upnp:albumArtURI>"
        f"<dc:title>Song {escape(uri)}</dc:title>"
        "<upnp:class>object.item.audioItem.musicTrack</upnp:class>"
        "<dc:creator>The Band</dc:creator><upnp:album>Live</upnp:album>"
        "</item>"
    )


def didl(items: str) -> str:
    return (
        '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
        'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
        'xmlns:r="urn:schemas-rinconnetworks-com:metadata-1-0/" '
        f'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">{items}</DIDL-Lite>'
    )


class FakeHousehold:
    """Sonos players answering SOAP requests routed by host and SOAPAction."""

    def __init__(self) -> None:
        self.players: dict[str, FakePlayer] = {}
        # each group lists hosts in the order the player reports them; coordinator uuid separately
        self.groups: list[dict] = []
        self.calls: list[Call] = []
        self.faults: dict[tuple, tuple] = {}
        self.errors: dict[tuple, type] = {}
        self.favorites: str = didl("")
        self.notification_duration = "0:00:07"
        self.zone_group_state_override: Optional[str] = None

    def add_player(self, host: str, uuid: str, name: str, **state) -> FakePlayer:
        player = FakePlayer(host=host, uuid=uuid, name=name, **state)
        self.players[host] = player
        return player

    def add_group(self, coordinator: str, *hosts: str) -> None:
        self.groups.append({"coordinator": self.players[coordinator].uuid, "hosts": list(hosts)})

    def fail(self, host: str, action: str, *, code: Optional[str] = None, status: int = 500, body: str = "") -> None:
        self.faults[(host, action)] = (code, status, body)

    def raise_on(self, host: str, action: str, error: type) -> None:
        self.errors[(host, action)] = error

    def calls_for(self, action: str, host: Optional[str] = None) -> list[Call]:
        return [c for c in self.calls if c.action == action and (host is None or c.host == host)]

    def mutating_calls(self) -> list[Call]:
        return [c for c in self.calls if not c.action.startswith("Get") and c.action != "Browse"]

    def player_by_uuid(self, uuid: str) -> FakePlayer:
        return next(p for p in self.players.values() if p.uuid == uuid)

    def group_of(self, host: str) -> dict:
        return next(g for g in self.groups if host in g["hosts"])

    def zone_group_state(self) -> str:
        groups = []
        for index, group in enumerate(self.groups):
            members = "".join(
                "<ZoneGroupMember UUID={} Location={} ZoneName={} Invisible=\"0\"/>".format(
                    quoteattr(self.players[h].uuid),
                    quoteattr(f"http://{h}:1400/xml/device_description.xml"),
                    quoteattr(self.players[h].name),
                )
                for h in group["hosts"]
            )
            groups.append(f'<ZoneGroup Coordinator="{group["coordinator"]}" ID="{group["coordinator"]}:{index}">{members}</ZoneGroup>')
        return f"<ZoneGroupState><ZoneGroups>{''.join(groups)}</ZoneGroups><VanishedDevices></VanishedDevices></ZoneGroupState>"

    def _leave_group(self, player: FakePlayer) -> None:
        group = self.group_of(player.host)
        if len(group["hosts"]) == 1:
            return
        group["hosts"].remove(player.host)
        self.groups.append({"coordinator": player.uuid, "hosts": [player.host]})

    def _join_group(self, player: FakePlayer, coordinator_uuid: str) -> None:
        current = self.group_of(player.host)
        current["hosts"].remove(player.host)
        if not current["hosts"]:
            self.groups.remove(current)
        target = next(g for g in self.groups if g["coordinator"] == coordinator_uuid)
        target["hosts"].append(player.host)

    def _set_uri(self, player: FakePlayer, uri: str, metadata: str) -> None:
        if uri.startswith("x-rincon:"):
            self._join_group(player, uri[len("x-rincon:"):])
        elif player.uri.startswith("x-rincon:") or self.group_of(player.host)["coordinator"] != player.uuid:
            self._leave_group(player)
        player.uri = uri
        player.metadata = metadata
        if uri.startswith("x-rincon-queue:"):
            player.nr_tracks = len(player.queue)
            player.track = 1 if player.queue else 0
        elif not uri.startswith("x-rincon:"):
            player.nr_tracks = 1
            player.track = 1
            player.rel_time = "0:00:00"
            player.track_duration = self.notification_duration

    def _answer(self, player: FakePlayer, service: str, action: str, args: dict) -> str:
        if action == "SetAVTransportURI":
            self._set_uri(player, args.get("CurrentURI", ""), args.get("CurrentURIMetaData", ""))
        elif action == "Play":
            player.state = "PLAYING"
        elif action == "Pause":
            player.state = "PAUSED_PLAYBACK"
        elif action == "Stop":
            player.state = "STOPPED"
        elif action == "Next":
            player.track += 1
        elif action == "Previous":
            player.track = max(1, player.track - 1)
        elif action == "Seek":
            if args.get("Unit") == "TRACK_NR":
                player.track = int(args["Target"])
            else:
                player.rel_time = args["Target"]
        elif action == "SetVolume":
            player.volume = int(args["DesiredVolume"])
        elif action == "AddURIToQueue":
            player.queue.append(args.get("EnqueuedURI", ""))
        elif action == "RemoveAllTracksFromQueue":
            player.queue.clear()
        elif action == "GetTransportInfo":
            return _envelope(
                action,
                service,
                _fields(CurrentTransportState=player.state, CurrentTransportStatus="OK", CurrentSpeed="1"),
            )
        elif action == "GetMediaInfo":
            return _envelope(
                action,
                service,
                _fields(
                    NrTracks=player.nr_tracks,
                    MediaDuration="NOT_IMPLEMENTED",
                    CurrentURI=player.uri,
                    CurrentURIMetaData=player.metadata,
                    NextURI="",
                    NextURIMetaData="",
                    PlayMedium="NETWORK",
                    RecordMedium="NOT_IMPLEMENTED",
                    WriteStatus="NOT_IMPLEMENTED",
                ),
            )
        elif action == "GetPositionInfo":
            return _envelope(
                action,
                service,
                _fields(
                    Track=player.track,
                    TrackDuration=player.track_duration,
                    TrackMetaData="",
                    TrackURI="",
                    RelTime=player.rel_time,
                    AbsTime="NOT_IMPLEMENTED",
                    RelCount="2147483647",
                    AbsCount="2147483647",
                ),
            )
        elif action == "GetVolume":
            return _envelope(action, service, _fields(CurrentVolume=player.volume))
        elif action == "GetZoneGroupState":
            state = self.zone_group_state_override
            if state is None:
                state = self.zone_group_state()
            return _envelope(action, service, _fields(ZoneGroupState=state))
        elif action == "Browse":
            if args.get("ObjectID") == "Q:0":
                start = int(args.get("StartingIndex") or 0)
                page = player.queue[start:start + int(args.get("RequestedCount") or 100)]
                items = "".join(queue_item(start + i + 1, uri) for i, uri in enumerate(page))
                return _envelope(
                    action,
                    service,
                    _fields(Result=didl(items), NumberReturned=len(page), TotalMatches=len(player.queue), UpdateID=1),
                )
            count = self.favorites.count("<item ")
            return _envelope(
                action,
                service,
                _fields(Result=self.favorites, NumberReturned=count, TotalMatches=count, UpdateID=1),
            )
        return _envelope(action, service)

    def handle(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        service = SERVICE_BY_PATH[request.url.path]
        action = request.headers["SOAPAction"].strip('"').rsplit("#", 1)[1]
        body = ElementTree.fromstring(request.content)
        action_element = body.find(f"{{{SOAP_NS}}}Body")[0]
        args = {child.tag: child.text or "" for child in action_element}
        self.calls.append(Call(host=host, action=action, args=args))

        error = self.errors.get((host, action))
        if error is not None:
            raise error("simulated failure", request=request)
        fault = self.faults.get((host, action))
        if fault is not None:
            code, status, raw = fault
            text = fault_envelope(code) if code else raw
            return httpx.Response(status, text=text)
        player = self.players.get(host)
        if player is None:
            raise httpx.ConnectError("no route to host", request=request)
        return httpx.Response(200, text=self._answer(player, service, action, args))


@pytest.fixture(name="caplog")
def caplog_fixture(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Set log level to debug for tests using the caplog fixture."""
    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
def household() -> FakeHousehold:
    """Kitchen coordinates Living and Office (reported coordinator last); Bath plays alone."""
    home = FakeHousehold()
    home.add_player(
        KITCHEN,
        "RINCON_KITCHEN01400",
        "Kitchen",
        state="PLAYING",
        uri="x-rincon-queue:RINCON_KITCHEN01400#0",
        metadata="",
        track=3,
        nr_tracks=5,
        rel_time="0:01:23",
        track_duration="0:03:30",
        volume=25,
        queue=["t1", "t2", "t3", "t4", "t5"],
    )
    home.add_player(LIVING, "RINCON_LIVING01400", "Living", uri="x-rincon:RINCON_KITCHEN01400", volume=30)
    home.add_player(OFFICE, "RINCON_OFFICE01400", "Office", uri="x-rincon:RINCON_KITCHEN01400", volume=35)
    home.add_player(BATH, "RINCON_BATH01400", "Bath", volume=10)
    home.add_group(KITCHEN, LIVING, OFFICE, KITCHEN)
    home.add_group(BATH, BATH)
    return home


@pytest.fixture
def soap(household: FakeHousehold) -> SoapClient:
    return SoapClient(transport=httpx.MockTransport(household.handle))


@pytest.fixture
def sonos(soap: SoapClient) -> SonosService:
    return SonosService(ActionExecutor(soap))


@pytest.fixture
def waits() -> list:
    return []


@pytest.fixture
def locks() -> GroupLocks:
    return GroupLocks()


@pytest.fixture
def orchestrator(sonos: SonosService, locks: GroupLocks, waits: list) -> NotificationOrchestrator:
    async def record_wait(seconds, cancel):
        waits.append(seconds)

    return NotificationOrchestrator(sonos, locks, wait=record_wait)


@pytest.fixture
def commands(sonos: SonosService, orchestrator: NotificationOrchestrator, locks: GroupLocks) -> GroupCommandService:
    return GroupCommandService(sonos, TopologyResolver(sonos), orchestrator, locks, Anchor(host=KITCHEN))
