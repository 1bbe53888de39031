"""
Nielsen Bridge — FastAPI Server

================================================================================
Architecture:
  • The web page hosts the player and the Nielsen browser SDK.
  • Each page opens one WebSocket; the server creates one NielsenMeasurements
    session per connection and drives it from the relayed player events.
  • Metadata building, state tracking and timers run here; the page only
    replays the resulting `ggPM` calls on its Nielsen instance.
  • Socket close is the page-unload signal, followed by destroy.
================================================================================

Endpoints:
  WS  /ws/player            — player event relay
  GET /health               — server health
  GET /sessions             — list active sessions with telemetry
  GET /session/{session_id} — single session detail

Client → Server messages:
  { type: "init", metadata: {...}, app_id?, instance_name?, options? }
  { type: "sdk_ready", instance_name }
  { type: "sdk_failed", instance_name, message }
  { type: "player_event", event: "playing", timestamp, state: {...}, ad?, code?, data? }
  { type: "ping" }

Server → Client messages:
  { type: "session_started", data: {...} }   → ack
  { type: "load_sdk", app_id, instance_name, options }
  { type: "tracking_ready", data: {...} }    → bootstrap finished
  { type: "ggpm", instance, verb, arg }      → replay on the Nielsen instance
  { type: "pong" }                           → keepalive ack
  { type: "error", message: "..." }          → error
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .core.config import MeasurementsConfig, sdk_cfg, server_cfg
from .services.registry import MeasurementsRegistry
from .services.remote import ManualUnloadHook, RemotePlayer, RemoteSdkBundle

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("nielsen.server")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ---------------------------------------------------------------------------
# Session Registry
# ---------------------------------------------------------------------------

registry = MeasurementsRegistry()

# ---------------------------------------------------------------------------
# FastAPI Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Nielsen Bridge starting...")
    logger.info(f"   Default app id configured: {sdk_cfg.has_app_id}")
    yield
    logger.info("Shutting down — closing all sessions...")
    registry.close_all()
    logger.info("Nielsen Bridge stopped")


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Nielsen Bridge — Player → Nielsen DCR session tracking",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(server_cfg.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# REST Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": VERSION,
        "app_id_configured": sdk_cfg.has_app_id,
        "active_sessions": registry.active_count,
    }


@app.get("/sessions")
async def list_sessions():
    return {
        sid: {"ready": m.is_ready, "telemetry": m.status()}
        for sid, m in registry.all_sessions.items()
    }


@app.get("/session/{session_id}")
async def session_detail(session_id: str):
    measurements = registry.get(session_id)
    if measurements is None:
        return {"error": "session not found"}
    return {
        "session_id": session_id,
        "ready": measurements.is_ready,
        "telemetry": measurements.status(),
    }


# ---------------------------------------------------------------------------
# WebSocket: Player Event Relay
# ---------------------------------------------------------------------------

@app.websocket("/ws/player")
async def websocket_player(ws: WebSocket):
    """
    WebSocket endpoint — one NielsenMeasurements session per connection.
    All outgoing messages go through a single queue so `ggPM` calls reach
    the page in the order the session produced them.
    """
    await ws.accept()

    session_id = uuid.uuid4().hex[:12]
    outbox: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
    bundle = RemoteSdkBundle(outbox)
    unload_hook = ManualUnloadHook()
    player: Optional[RemotePlayer] = None
    ready_task: Optional[asyncio.Task] = None

    def send(data: Dict[str, Any]) -> None:
        outbox.put_nowait(data)

    async def writer() -> None:
        while True:
            data = await outbox.get()
            try:
                await ws.send_text(json.dumps(data))
            except Exception:
                return  # client disconnected; receive loop will clean up

    def on_error(err: Exception) -> None:
        send({"type": "error", "message": str(err)})

    async def report_ready() -> None:
        measurements = registry.get(session_id)
        if measurements is None:
            return
        ready = await measurements.ready()
        send({"type": "tracking_ready", "data": {"session_id": session_id, "ready": ready}})

    writer_task = asyncio.create_task(writer(), name=f"writer-{session_id}")

    try:
        while True:
            raw = await ws.receive_text()

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue

            msg_type = message.get("type", "")

            # ── Start tracking session ──
            if msg_type == "init":
                if player is not None:
                    send({"type": "error", "message": "Session already active"})
                    continue

                try:
                    config = MeasurementsConfig.from_env(
                        app_id=message.get("app_id"),
                        instance_name=message.get("instance_name"),
                        options=message.get("options"),
                        on_error=on_error,
                    )
                except ValueError as e:
                    send({"type": "error", "message": str(e)})
                    continue

                measurements = registry.create(session_id, config, bundle, unload_hook)
                player = RemotePlayer()
                player.update_state(message.get("state"))
                measurements.attach_to(player, message.get("metadata"))
                ready_task = asyncio.create_task(report_ready(), name=f"ready-{session_id}")
                send({
                    "type": "session_started",
                    "data": {"session_id": session_id, "instance_name": config.instance_name},
                })

            # ── SDK readiness from the page ──
            elif msg_type == "sdk_ready":
                measurements = registry.get(session_id)
                name = message.get("instance_name") or (
                    measurements.config.instance_name if measurements else ""
                )
                bundle.mark_ready(name)

            elif msg_type == "sdk_failed":
                measurements = registry.get(session_id)
                name = message.get("instance_name") or (
                    measurements.config.instance_name if measurements else ""
                )
                bundle.mark_failed(name, message.get("message", ""))

            # ── Player event relay ──
            elif msg_type == "player_event":
                if player is None:
                    send({"type": "error", "message": "No active session"})
                    continue
                try:
                    player.handle_message(message)
                except Exception as e:
                    logger.error(f"[{session_id}] Player event failed: {e}", exc_info=True)

            # ── Keepalive ──
            elif msg_type == "ping":
                send({"type": "pong"})

    except WebSocketDisconnect:
        logger.info(f"[{session_id}] WebSocket disconnected")
    except Exception as e:
        logger.error(f"[{session_id}] WebSocket error: {e}", exc_info=True)
    finally:
        # Socket close == page unload, then finalize the session
        unload_hook.fire()
        registry.close(session_id)

        for task in (ready_task, writer_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except BaseException:
                    pass


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "nielsen_bridge.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        reload=True,
        log_level="info",
    )
