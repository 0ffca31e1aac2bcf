"""FastAPI HTTP + WebSocket server exposing coach state and controls to the UI."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from shotcoach.core.orchestrator import TRIGGER_MANUAL
from shotcoach.errors import TransientRequestError
from shotcoach.logging.handler import log_queue

if TYPE_CHECKING:
    from shotcoach.runtime import CoachRuntime

log = logging.getLogger(__name__)


class ContextUpdate(BaseModel):
    """Either coordinates to resolve, or a ready-made description."""

    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    location: str = ""
    points_of_interest: list[str] = Field(default_factory=list)


def create_app(runtime: CoachRuntime) -> FastAPI:
    app = FastAPI(title="Shotcoach", version="0.1.0")

    # -- WebSocket logs ------------------------------------------------------
    @app.websocket("/ws/logs")
    async def websocket_logs(ws: WebSocket):
        await ws.accept()
        try:
            while True:
                log_entry = await log_queue.get()
                await ws.send_text(log_entry)
                log_queue.task_done()
        except WebSocketDisconnect:
            pass

    # -- HTTP endpoints ------------------------------------------------------

    @app.get("/status")
    async def get_status():
        return JSONResponse(runtime.status())

    @app.get("/history")
    async def get_history():
        return JSONResponse(
            [
                {"role": m.role, "content": m.content, "has_image": m.image_b64 is not None}
                for m in runtime.window.snapshot()
            ]
        )

    @app.post("/coach")
    async def post_coach():
        session = runtime.orchestrator.start_session(TRIGGER_MANUAL)
        if session is None:
            return JSONResponse({"error": "session already active"}, status_code=409)
        return JSONResponse({"session_id": session.id}, status_code=202)

    @app.post("/cancel")
    async def post_cancel():
        return JSONResponse({"cancelled": runtime.orchestrator.cancel_active("user")})

    @app.post("/monitor/pause")
    async def post_monitor_pause():
        runtime.orchestrator.pause_monitoring()
        return JSONResponse({"monitoring_paused": True})

    @app.post("/monitor/resume")
    async def post_monitor_resume():
        runtime.orchestrator.resume_monitoring()
        return JSONResponse({"monitoring_paused": False})

    @app.post("/context")
    async def post_context(body: ContextUpdate):
        if body.latitude is not None and body.longitude is not None:
            try:
                ctx = await runtime.locate(body.latitude, body.longitude)
            except TransientRequestError as e:
                return JSONResponse({"error": str(e)}, status_code=502)
        elif body.location or body.points_of_interest:
            ctx = runtime.context.update(body.location, body.points_of_interest)
        else:
            return JSONResponse({"error": "no context supplied"}, status_code=400)
        return JSONResponse(ctx.to_dict())

    return app
