from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .errors import SonosError, ValidationError
from .locks import GroupLocks
from .metadata import notification_metadata
from .params import ValidatedGroupParameters, hhmmss_to_seconds
from .sonos import SonosService
from .topology import ROLE_JOINER, GroupTopology, Member


log = logging.getLogger("groupcast.notification")

DEFAULT_DURATION_SECONDS = 5.0
DURATION_MARGIN_SECONDS = 2.0
PLAYING_STATES = ("PLAYING", "TRANSITIONING")
ZERO_TIME = "0:00:00"


@dataclass
class PlaybackSnapshot:
    was_playing: bool
    current_uri: str
    current_uri_metadata: str
    track_index: int
    track_count: int
    relative_time: str
    track_duration: str
    member_volumes: list[Optional[int]]


@dataclass(frozen=True)
class NotificationPlan:
    """Who plays the notification and how their state is captured and restored.

    ``participants[0]`` receives the notification URI. ``touch_volume_of`` is
    aligned with ``participants``. With ``leave_group`` the participant is a
    joiner that drops out of its group on override and rejoins on restore, so
    track and position are not restored.
    """

    participants: tuple[Member, ...]
    touch_volume_of: tuple[bool, ...]
    leave_group: bool
    state_source: Member
    lock_key: str

    def __post_init__(self) -> None:
        if not self.participants:
            raise ValueError("NotificationPlan needs at least one participant")
        if len(self.touch_volume_of) != len(self.participants):
            raise ValueError("touch_volume_of must be aligned with participants")


@dataclass(frozen=True)
class NotificationOptions:
    uri: str
    metadata: str = ""
    volume: Optional[int] = None
    duration: Optional[float] = None  # seconds; None asks the player for the track duration
    only_when_playing: bool = False

    @property
    def automatic_duration(self) -> bool:
        return self.duration is None


def group_plan(topology: GroupTopology, params: ValidatedGroupParameters) -> NotificationPlan:
    touch = params.touches_volume
    flags = (touch,) + tuple(touch and params.same_volume for _ in topology.members[1:])
    return NotificationPlan(
        participants=topology.members,
        touch_volume_of=flags,
        leave_group=False,
        state_source=topology.coordinator,
        lock_key=topology.coordinator_uuid,
    )


def joiner_plan(topology: GroupTopology, params: ValidatedGroupParameters) -> NotificationPlan:
    if topology.role != ROLE_JOINER:
        raise ValidationError("player is not a joiner", action="joiner.play.notification")
    return NotificationPlan(
        participants=(topology.caller,),
        touch_volume_of=(params.touches_volume,),
        leave_group=True,
        # a joiner does not report the group's transport state
        state_source=topology.coordinator,
        lock_key=topology.coordinator_uuid,
    )


def single_plan(topology: GroupTopology, params: ValidatedGroupParameters) -> NotificationPlan:
    if topology.caller_index != 0:
        raise ValidationError(
            "player is a joiner; use joiner.play.notification",
            action="player.play.notification",
        )
    return NotificationPlan(
        participants=(topology.coordinator,),
        touch_volume_of=(params.touches_volume,),
        leave_group=False,
        state_source=topology.coordinator,
        lock_key=topology.coordinator_uuid,
    )


class RequiredStep:
    def __init__(self, name: str, call: Callable[[], Awaitable[None]]) -> None:
        self.name = name
        self._call = call

    async def run(self) -> None:
        await self._call()


class BestEffortStep(RequiredStep):
    """A restore step some sources cannot honour (radio, some streaming services)."""

    async def run(self) -> None:
        try:
            await self._call()
        except SonosError as exc:
            log.debug("Restore step %s skipped: %s", self.name, exc)


async def wait_or_cancel(seconds: float, cancel: asyncio.Event) -> None:
    if cancel.is_set():
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    log.info("Notification wait cut short by shutdown")


class NotificationOrchestrator:
    def __init__(
        self,
        sonos: SonosService,
        locks: GroupLocks,
        *,
        shutdown_event: Optional[asyncio.Event] = None,
        default_duration: float = DEFAULT_DURATION_SECONDS,
        wait: Callable[[float, asyncio.Event], Awaitable[None]] = wait_or_cancel,
    ) -> None:
        self._sonos = sonos
        self._locks = locks
        self._shutdown = shutdown_event or asyncio.Event()
        self._default_duration = default_duration
        self._wait = wait

    def cancel_waits(self) -> None:
        self._shutdown.set()

    async def run(self, plan: NotificationPlan, options: NotificationOptions) -> bool:
        """Play the notification and restore; False when skipped because nothing was playing."""

        async with self._locks.hold(plan.lock_key, action="notification"):
            state = await self._sonos.get_transport_state(plan.state_source.base_url)
            was_playing = state.upper() in PLAYING_STATES
            if options.only_when_playing and not was_playing:
                log.info("Notification skipped: group %s is not playing", plan.lock_key)
                return False
            snapshot = await self.capture(plan, was_playing)
            await self._override(plan, options)
            seconds = await self._hold_seconds(plan, options)
            log.info("Notification %s playing for %.1fs", options.uri, seconds)
            await self._wait(seconds, self._shutdown)
            await self.restore(plan, snapshot)
        return True

    async def capture(self, plan: NotificationPlan, was_playing: bool) -> PlaybackSnapshot:
        first = plan.participants[0]
        media = await self._sonos.get_media_info(first.base_url)
        track_index, relative_time, track_duration = 0, "", ""
        if not plan.leave_group:
            position = await self._sonos.get_position_info(first.base_url)
            track_index = position.track
            relative_time = position.relative_time
            track_duration = position.track_duration

        volumes: list[Optional[int]] = []
        for member, touch in zip(plan.participants, plan.touch_volume_of):
            volumes.append(await self._sonos.get_volume(member.base_url) if touch else None)

        snapshot = PlaybackSnapshot(
            was_playing=was_playing,
            current_uri=media.current_uri,
            current_uri_metadata=media.current_uri_metadata,
            track_index=track_index,
            track_count=media.track_count,
            relative_time=relative_time,
            track_duration=track_duration,
            member_volumes=volumes,
        )
        log.debug("Snapshot of %s: %s", plan.lock_key, snapshot)
        return snapshot

    async def _override(self, plan: NotificationPlan, options: NotificationOptions) -> None:
        first = plan.participants[0]
        metadata = options.metadata or notification_metadata(options.uri)
        await self._sonos.set_av_transport_uri(first.base_url, options.uri, metadata)
        await self._sonos.play(first.base_url)
        if options.volume is None:
            return
        for member, touch in zip(plan.participants, plan.touch_volume_of):
            if touch:
                await self._sonos.set_volume(member.base_url, options.volume)

    async def _hold_seconds(self, plan: NotificationPlan, options: NotificationOptions) -> float:
        if not options.automatic_duration:
            return float(options.duration)
        first = plan.participants[0]
        try:
            position = await self._sonos.get_position_info(first.base_url)
            seconds = hhmmss_to_seconds(position.track_duration)
        except (SonosError, ValueError) as exc:
            log.warning("No track duration from %s (%s), using %.1fs", first.hostname, exc, self._default_duration)
            return self._default_duration
        if seconds <= 0:
            log.warning("Zero track duration from %s, using %.1fs", first.hostname, self._default_duration)
            return self._default_duration
        return seconds + DURATION_MARGIN_SECONDS

    def _restore_steps(self, plan: NotificationPlan, snapshot: PlaybackSnapshot) -> list[RequiredStep]:
        sonos = self._sonos
        first = plan.participants[0]
        steps: list[RequiredStep] = []
        for member, touch, volume in zip(plan.participants, plan.touch_volume_of, snapshot.member_volumes):
            if touch and volume is not None:
                steps.append(
                    RequiredStep(f"volume {member.hostname}", lambda m=member, v=volume: sonos.set_volume(m.base_url, v))
                )
        steps.append(
            RequiredStep(
                "transport uri",
                lambda: sonos.set_av_transport_uri(first.base_url, snapshot.current_uri, snapshot.current_uri_metadata),
            )
        )
        if not plan.leave_group:
            if snapshot.track_index > 1 and snapshot.track_count > 1:
                steps.append(BestEffortStep("track", lambda: sonos.select_track(first.base_url, snapshot.track_index)))
            if snapshot.relative_time not in ("", ZERO_TIME) and snapshot.track_duration not in ("", ZERO_TIME):
                steps.append(BestEffortStep("seek", lambda: sonos.seek(first.base_url, snapshot.relative_time)))
        if snapshot.was_playing:
            # a rejoined joiner follows its coordinator and may refuse Play (UPnP 800)
            step_type = BestEffortStep if plan.leave_group else RequiredStep
            steps.append(step_type("play", lambda: sonos.play(first.base_url)))
        return steps

    async def restore(self, plan: NotificationPlan, snapshot: PlaybackSnapshot) -> None:
        for step in self._restore_steps(plan, snapshot):
            await step.run()
        log.info("Group %s restored", plan.lock_key)
