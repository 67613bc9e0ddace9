import logging
import os
from typing import Optional

import httpx
from fastapi import FastAPI

from groupcast.api.health import create_health_router
from groupcast.api.sonos import create_sonos_router
from groupcast.services.commands import GroupCommandService
from groupcast.services.executor import ActionExecutor
from groupcast.services.locks import GroupLocks
from groupcast.services.notification import NotificationOrchestrator
from groupcast.services.soap import SoapClient
from groupcast.services.sonos import SonosService
from groupcast.services.topology import Anchor, TopologyResolver


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
log = logging.getLogger("groupcast")

SONOS_PLAYER_HOST = os.getenv("SONOS_PLAYER_HOST", "").strip()
SONOS_PLAYER_PORT = int(os.getenv("SONOS_PLAYER_PORT", "1400"))
SONOS_CONNECT_TIMEOUT = float(os.getenv("SONOS_CONNECT_TIMEOUT", "5"))
SONOS_CONTROL_TIMEOUT = float(os.getenv("SONOS_CONTROL_TIMEOUT", "10"))
SONOS_HTTP_USER_AGENT = os.getenv("SONOS_HTTP_USER_AGENT", "GroupCast/Sonos").strip() or "GroupCast/Sonos"
NOTIFICATION_DEFAULT_DURATION = float(os.getenv("NOTIFICATION_DEFAULT_DURATION", "5"))


def build_commands(
    anchor: Anchor,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: Optional[httpx.Timeout] = None,
    user_agent: str = SONOS_HTTP_USER_AGENT,
    default_duration: float = NOTIFICATION_DEFAULT_DURATION,
) -> GroupCommandService:
    soap = SoapClient(
        timeout=timeout or httpx.Timeout(SONOS_CONTROL_TIMEOUT, connect=SONOS_CONNECT_TIMEOUT),
        user_agent=user_agent,
        transport=transport,
    )
    sonos = SonosService(ActionExecutor(soap))
    locks = GroupLocks()
    notifications = NotificationOrchestrator(sonos, locks, default_duration=default_duration)
    return GroupCommandService(sonos, TopologyResolver(sonos), notifications, locks, anchor)


def create_app(commands: GroupCommandService) -> FastAPI:
    app = FastAPI(title="GroupCast Controller", version="0.1.0")
    app.include_router(create_health_router(anchor_host=commands.anchor.host, busy_groups=commands.busy_groups))
    app.include_router(create_sonos_router(commands=commands))

    @app.on_event("shutdown")
    async def _shutdown_events() -> None:
        # running notifications skip the rest of their wait and restore
        commands.shutdown()

    return app


if not SONOS_PLAYER_HOST:
    log.warning("SONOS_PLAYER_HOST is not set; commands will fail until it is configured")

app = create_app(build_commands(Anchor(host=SONOS_PLAYER_HOST, port=SONOS_PLAYER_PORT)))


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=os.getenv("GROUPCAST_BIND_HOST", "0.0.0.0"), port=int(os.getenv("GROUPCAST_PORT", "8000")))


if __name__ == "__main__":
    run()
