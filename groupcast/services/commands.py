from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping

from .errors import ValidationError
from .favorites import PROCESSING_QUEUE, PROCESSING_STREAM, find_by_title, get_all_my_sonos_items
from .locks import GroupLocks
from .metadata import queue_uri
from .notification import (
    NotificationOptions,
    NotificationOrchestrator,
    NotificationPlan,
    group_plan,
    joiner_plan,
    single_plan,
)
from .params import (
    ValidatedGroupParameters,
    parse_duration,
    parse_http_uri,
    parse_only_when_playing,
    parse_track_number,
    parse_tunein_id,
    parse_volume,
    require_topic,
    validate_group_parameters,
)
from .queue import parse_queue
from .sonos import SonosService
from .topology import Anchor, GroupTopology, TopologyResolver


log = logging.getLogger("groupcast")

Message = Mapping[str, Any]
PlanBuilder = Callable[[GroupTopology, ValidatedGroupParameters], NotificationPlan]


class GroupCommandService:
    """Dispatches a command string plus message fields to group-level Sonos operations.

    Every handler returns a patch: the fields to merge into the caller's
    response, empty when nothing changes. Commands that change a group hold
    that group's lock until their last RPC, so they never interleave with a
    notification or with each other.
    """

    def __init__(
        self,
        sonos: SonosService,
        resolver: TopologyResolver,
        notifications: NotificationOrchestrator,
        locks: GroupLocks,
        anchor: Anchor,
    ) -> None:
        self._sonos = sonos
        self._resolver = resolver
        self._notifications = notifications
        self._locks = locks
        self.anchor = anchor
        self._handlers: dict[str, Callable[[Message], Awaitable[dict]]] = {
            "play": self._play,
            "play.queue": self._play_queue,
            "play.song": self._play_song,
            "play.tunein": self._play_tunein,
            "play.httpradio": self._play_http_radio,
            "play.export": self._play_export,
            "play.mysonos": self._play_mysonos,
            "play.notification": self._group_notification,
            "group.play.notification": self._group_notification,
            "joiner.play.notification": self._joiner_notification,
            "player.play.notification": self._single_notification,
            "player.set.volume": self._set_volume,
            "player.get.volume": self._get_volume,
            "next.track": self._next_track,
            "previous.track": self._previous_track,
            "toggle.playback": self._toggle_playback,
            "stop": self._stop,
            "get.playbackstate": self._get_playback_state,
            "player.get.role": self._get_role,
            "get.mysonos": self._get_mysonos,
            "get.queue": self._get_queue,
            "insert.uri": self._insert_uri,
            "flush.queue": self._flush_queue,
        }

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    def busy_groups(self) -> list[str]:
        return self._locks.busy_keys()

    def shutdown(self) -> None:
        self._notifications.cancel_waits()

    async def handle(self, command: Any, message: Message) -> dict:
        if not isinstance(command, str) or not command.strip():
            raise ValidationError("payload (command) is undefined")
        name = command.strip().lower()
        handler = self._handlers.get(name)
        if handler is None:
            raise ValidationError(f"invalid command {command!r}", action=name)
        log.info("Sonos command %s", name)
        try:
            return await handler(message)
        except ValidationError as exc:
            if exc.action is None:
                exc.action = name
            raise

    async def _group(
        self,
        message: Message,
        command: str,
        *,
        independent_guard: bool = False,
    ) -> tuple[ValidatedGroupParameters, GroupTopology]:
        params = validate_group_parameters(message)
        topology = await self._resolver.resolve(self.anchor, params.player_name)
        if independent_guard and not params.same_volume and topology.is_independent:
            raise ValidationError("sameVolume is invalid: player is independent", action=command)
        return params, topology

    @asynccontextmanager
    async def _changing(
        self,
        message: Message,
        command: str,
        *,
        independent_guard: bool = False,
    ) -> AsyncIterator[tuple[ValidatedGroupParameters, GroupTopology]]:
        params, topology = await self._group(message, command, independent_guard=independent_guard)
        async with self._locks.hold(topology.coordinator_uuid, action=command):
            yield params, topology

    async def _apply_volume(self, topology: GroupTopology, params: ValidatedGroupParameters) -> None:
        if params.volume is None:
            return
        targets = topology.members if params.same_volume else (topology.caller,)
        for member in targets:
            await self._sonos.set_volume(member.base_url, params.volume)

    async def _play(self, message: Message) -> dict:
        async with self._changing(message, "play", independent_guard=True) as (params, topology):
            await self._sonos.play(topology.coordinator.base_url)
            await self._apply_volume(topology, params)
        return {}

    async def _play_queue(self, message: Message) -> dict:
        async with self._changing(message, "play.queue", independent_guard=True) as (params, topology):
            coordinator = topology.coordinator
            if await self._sonos.queue_size(coordinator.base_url) == 0:
                raise ValidationError("queue is empty", action="play.queue")
            await self._sonos.select_queue(coordinator.base_url, coordinator.uuid)
            await self._apply_volume(topology, params)
        return {}

    async def _play_song(self, message: Message) -> dict:
        track = parse_track_number(message)
        async with self._changing(message, "play.song", independent_guard=True) as (params, topology):
            coordinator = topology.coordinator
            size = await self._sonos.queue_size(coordinator.base_url)
            if track > size:
                raise ValidationError(f"track {track} is beyond the queue length {size}", action="play.song")
            media = await self._sonos.get_media_info(coordinator.base_url)
            if not media.current_uri.startswith("x-rincon-queue:"):
                await self._sonos.set_av_transport_uri(coordinator.base_url, queue_uri(coordinator.uuid))
            await self._sonos.select_track(coordinator.base_url, track)
            await self._sonos.play(coordinator.base_url)
            await self._apply_volume(topology, params)
        return {}

    async def _play_tunein(self, message: Message) -> dict:
        station_id = parse_tunein_id(message)
        async with self._changing(message, "play.tunein", independent_guard=True) as (params, topology):
            await self._sonos.play_tunein(topology.coordinator.base_url, station_id)
            await self._apply_volume(topology, params)
        return {}

    async def _play_http_radio(self, message: Message) -> dict:
        uri = parse_http_uri(message)
        async with self._changing(message, "play.httpradio", independent_guard=True) as (params, topology):
            await self._sonos.set_av_transport_uri(topology.coordinator.base_url, uri)
            await self._sonos.play(topology.coordinator.base_url)
            await self._apply_volume(topology, params)
        return {}

    async def _play_export(self, message: Message) -> dict:
        export = message.get("export")
        if not isinstance(export, Mapping):
            raise ValidationError("export is missing", action="play.export")
        if export.get("queue") is None or export.get("queue") == "":
            raise ValidationError("queue identifier is missing", action="play.export")
        uri = export.get("uri")
        if not isinstance(uri, str) or not uri:
            raise ValidationError("uri is missing", action="play.export")
        metadata = export.get("metadata") or ""

        async with self._changing(message, "play.export", independent_guard=True) as (params, topology):
            coordinator = topology.coordinator
            if export.get("queue"):
                await self._sonos.add_uri_to_queue(coordinator.base_url, uri, metadata)
                await self._sonos.select_queue(coordinator.base_url, coordinator.uuid)
            else:
                await self._sonos.set_av_transport_uri(coordinator.base_url, uri, metadata)
                await self._sonos.play(coordinator.base_url)
            await self._apply_volume(topology, params)
        return {}

    async def _play_mysonos(self, message: Message) -> dict:
        search = require_topic(message)
        items = await get_all_my_sonos_items(self._sonos, self.anchor.base_url)
        item = find_by_title(items, search)
        if item.processing_type not in (PROCESSING_QUEUE, PROCESSING_STREAM):
            raise ValidationError(
                f"My Sonos item {item.title!r} has unsupported class {item.upnp_class!r}",
                action="play.mysonos",
            )

        async with self._changing(message, "play.mysonos", independent_guard=True) as (params, topology):
            coordinator = topology.coordinator
            if item.queue:
                await self._sonos.add_uri_to_queue(coordinator.base_url, item.uri, item.metadata)
                await self._sonos.select_queue(coordinator.base_url, coordinator.uuid)
            else:
                await self._sonos.set_av_transport_uri(coordinator.base_url, item.uri, item.metadata)
                await self._sonos.play(coordinator.base_url)
            await self._apply_volume(topology, params)
        return {}

    async def _get_mysonos(self, message: Message) -> dict:
        validate_group_parameters(message)
        items = await get_all_my_sonos_items(self._sonos, self.anchor.base_url)
        return {"payload": [item.to_dict() for item in items]}

    async def _get_queue(self, message: Message) -> dict:
        _, topology = await self._group(message, "get.queue")
        coordinator = topology.coordinator
        items = parse_queue(await self._sonos.browse_queue(coordinator.base_url), coordinator.base_url)
        return {"payload": [item.to_dict() for item in items], "queue_length": len(items)}

    async def _insert_uri(self, message: Message) -> dict:
        uri = require_topic(message, "uri")
        async with self._changing(message, "insert.uri") as (_, topology):
            await self._sonos.add_uri_to_queue(topology.coordinator.base_url, uri)
        return {}

    async def _flush_queue(self, message: Message) -> dict:
        async with self._changing(message, "flush.queue") as (_, topology):
            await self._sonos.flush_queue(topology.coordinator.base_url)
        return {}

    async def _notification(self, message: Message, build_plan: PlanBuilder) -> dict:
        uri = require_topic(message)
        duration = parse_duration(message)
        only_when_playing = parse_only_when_playing(message)
        params = validate_group_parameters(message)
        topology = await self._resolver.resolve(self.anchor, params.player_name)
        plan = build_plan(topology, params)
        options = NotificationOptions(
            uri=uri,
            volume=params.volume,
            duration=duration,
            only_when_playing=only_when_playing,
        )
        await self._notifications.run(plan, options)
        return {}

    async def _group_notification(self, message: Message) -> dict:
        return await self._notification(message, group_plan)

    async def _joiner_notification(self, message: Message) -> dict:
        return await self._notification(message, joiner_plan)

    async def _single_notification(self, message: Message) -> dict:
        return await self._notification(message, single_plan)

    async def _set_volume(self, message: Message) -> dict:
        params = validate_group_parameters(message)
        if params.volume is not None:
            # topic is ignored when volume is given
            volume = params.volume
        else:
            volume = parse_volume(message.get("topic"), "topic")
        async with self._changing(message, "player.set.volume") as (_, topology):
            await self._sonos.set_volume(topology.caller.base_url, volume)
        return {}

    async def _get_volume(self, message: Message) -> dict:
        _, topology = await self._group(message, "player.get.volume")
        return {"payload": await self._sonos.get_volume(topology.caller.base_url)}

    async def _next_track(self, message: Message) -> dict:
        async with self._changing(message, "next.track") as (_, topology):
            await self._sonos.next_track(topology.coordinator.base_url)
        return {}

    async def _previous_track(self, message: Message) -> dict:
        async with self._changing(message, "previous.track") as (_, topology):
            await self._sonos.previous_track(topology.coordinator.base_url)
        return {}

    async def _toggle_playback(self, message: Message) -> dict:
        async with self._changing(message, "toggle.playback") as (_, topology):
            base_url = topology.coordinator.base_url
            if await self._sonos.get_playback_state(base_url) == "playing":
                await self._sonos.pause(base_url)
            else:
                await self._sonos.play(base_url)
        return {}

    async def _stop(self, message: Message) -> dict:
        async with self._changing(message, "stop") as (_, topology):
            await self._sonos.stop(topology.coordinator.base_url)
        return {}

    async def _get_playback_state(self, message: Message) -> dict:
        _, topology = await self._group(message, "get.playbackstate")
        return {"payload": await self._sonos.get_playback_state(topology.coordinator.base_url)}

    async def _get_role(self, message: Message) -> dict:
        _, topology = await self._group(message, "player.get.role")
        return {"payload": topology.role}
