from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .soap import service_namespace


AV_TRANSPORT_PATH = "/MediaRenderer/AVTransport/Control"
RENDERING_CONTROL_PATH = "/MediaRenderer/RenderingControl/Control"
ZONE_GROUP_TOPOLOGY_PATH = "/ZoneGroupTopology/Control"
CONTENT_DIRECTORY_PATH = "/MediaServer/ContentDirectory/Control"


@dataclass(frozen=True)
class ActionTemplate:
    path: str
    service: str
    action: str
    default_args: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    response_path: tuple[str, ...] = ()
    response_value: Optional[str] = None


def build_args(template: ActionTemplate, overrides: Optional[Mapping[str, Any]] = None) -> dict[str, str]:
    """Return a fresh argument dict: template defaults updated with ``overrides``."""

    args = dict(template.default_args)
    for key, value in (overrides or {}).items():
        args[key] = str(value)
    return args


def _envelope_path(action: str, *tail: str) -> tuple[str, ...]:
    return ("s:Envelope", "s:Body", f"u:{action}Response", *tail)


def _set_action(path: str, service: str, action: str, **defaults: str) -> ActionTemplate:
    """A mutating action; success is the response element declaring the service namespace."""

    return ActionTemplate(
        path=path,
        service=service,
        action=action,
        default_args=MappingProxyType(dict(defaults)),
        response_path=_envelope_path(action, "xmlns:u"),
        response_value=service_namespace(service),
    )


def _get_action(path: str, service: str, action: str, *tail: str, **defaults: str) -> ActionTemplate:
    return ActionTemplate(
        path=path,
        service=service,
        action=action,
        default_args=MappingProxyType(dict(defaults)),
        response_path=_envelope_path(action, *tail),
    )


ACTIONS: Mapping[str, ActionTemplate] = MappingProxyType(
    {
        "Play": _set_action(AV_TRANSPORT_PATH, "AVTransport", "Play", InstanceID="0", Speed="1"),
        "Pause": _set_action(AV_TRANSPORT_PATH, "AVTransport", "Pause", InstanceID="0"),
        "Stop": _set_action(AV_TRANSPORT_PATH, "AVTransport", "Stop", InstanceID="0"),
        "Next": _set_action(AV_TRANSPORT_PATH, "AVTransport", "Next", InstanceID="0"),
        "Previous": _set_action(AV_TRANSPORT_PATH, "AVTransport", "Previous", InstanceID="0"),
        "Seek": _set_action(AV_TRANSPORT_PATH, "AVTransport", "Seek", InstanceID="0", Unit="REL_TIME", Target=""),
        "SetAVTransportURI": _set_action(
            AV_TRANSPORT_PATH,
            "AVTransport",
            "SetAVTransportURI",
            InstanceID="0",
            CurrentURI="",
            CurrentURIMetaData="",
        ),
        "AddURIToQueue": _set_action(
            AV_TRANSPORT_PATH,
            "AVTransport",
            "AddURIToQueue",
            InstanceID="0",
            EnqueuedURI="",
            EnqueuedURIMetaData="",
            DesiredFirstTrackNumberEnqueued="0",
            EnqueueAsNext="1",
        ),
        "RemoveAllTracksFromQueue": _set_action(
            AV_TRANSPORT_PATH, "AVTransport", "RemoveAllTracksFromQueue", InstanceID="0"
        ),
        "GetTransportInfo": _get_action(
            AV_TRANSPORT_PATH, "AVTransport", "GetTransportInfo", "CurrentTransportState", InstanceID="0"
        ),
        "GetMediaInfo": _get_action(AV_TRANSPORT_PATH, "AVTransport", "GetMediaInfo", InstanceID="0"),
        "GetPositionInfo": _get_action(AV_TRANSPORT_PATH, "AVTransport", "GetPositionInfo", InstanceID="0"),
        "SetVolume": _set_action(
            RENDERING_CONTROL_PATH,
            "RenderingControl",
            "SetVolume",
            InstanceID="0",
            Channel="Master",
            DesiredVolume="",
        ),
        "GetVolume": _get_action(
            RENDERING_CONTROL_PATH,
            "RenderingControl",
            "GetVolume",
            "CurrentVolume",
            InstanceID="0",
            Channel="Master",
        ),
        "GetZoneGroupState": _get_action(
            ZONE_GROUP_TOPOLOGY_PATH, "ZoneGroupTopology", "GetZoneGroupState", "ZoneGroupState"
        ),
        # Defaults list My Sonos favorites; ObjectID "Q:0" browses the queue.
        "Browse": _get_action(
            CONTENT_DIRECTORY_PATH,
            "ContentDirectory",
            "Browse",
            ObjectID="FV:2",
            BrowseFlag="BrowseDirectChildren",
            Filter="*",
            StartingIndex="0",
            RequestedCount="100",
            SortCriteria="",
        ),
    }
)

