from __future__ import annotations

from typing import Callable

from fastapi import APIRouter


def create_health_router(*, anchor_host: str, busy_groups: Callable[[], list[str]]) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "anchor": anchor_host, "busy_groups": busy_groups()}

    return router
