from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from groupcast.services.commands import GroupCommandService
from groupcast.services.errors import (
    GroupBusy,
    PlayerNotInAnyGroup,
    SonosError,
    TopologyNotFound,
    TransportTimeout,
    UnknownAction,
    ValidationError,
)


log = logging.getLogger("groupcast")


class ExportPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    uri: Any = None
    queue: Any = None
    metadata: Optional[str] = None


class CommandPayload(BaseModel):
    """Command plus the message fields commands read; values are checked by the command layer."""

    model_config = ConfigDict(extra="allow")

    payload: str = Field(min_length=1)
    topic: Any = None
    volume: Any = None
    sameVolume: Any = None
    playerName: Any = None
    duration: Any = None
    onlyWhenPlaying: Any = None
    export: Optional[ExportPayload] = None


def status_for(exc: SonosError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, (TopologyNotFound, PlayerNotInAnyGroup)):
        return 404
    if isinstance(exc, GroupBusy):
        return 409
    if isinstance(exc, TransportTimeout):
        return 504
    if isinstance(exc, UnknownAction):
        return 500
    return 502


def create_sonos_router(*, commands: GroupCommandService) -> APIRouter:
    router = APIRouter()

    @router.get("/api/sonos/commands")
    async def sonos_commands() -> dict:
        return {"commands": commands.commands}

    @router.post("/api/sonos/command")
    async def sonos_command(payload: CommandPayload) -> dict:
        message = payload.model_dump(exclude_none=True)
        command = message.pop("payload")
        try:
            patch = await commands.handle(command, message)
        except SonosError as exc:
            status = status_for(exc)
            if status >= 500:
                log.warning("Sonos command %s failed: %s", command, exc)
            else:
                log.info("Sonos command %s rejected: %s", command, exc)
            raise HTTPException(status_code=status, detail=exc.to_dict()) from exc
        return {"ok": True, "command": command.strip().lower(), "patch": patch}

    return router
