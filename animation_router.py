"""
Search animation over WebSocket.

Handles:
  WS /api/animate/{name}?algorithm=bfs|dfs|bidirectional&delayMs=N
"""

import asyncio
import logging
import threading
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

import animation_service
from errors import RecipeServiceError
from store import RecipeStore, get_store

log = logging.getLogger(__name__)

router = APIRouter(tags=["animation"])


async def _watch_disconnect(websocket: WebSocket, cancel: threading.Event) -> None:
    """Set `cancel` once the client closes its side; other client messages are ignored."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            cancel.set()
            return


async def _animate(
    websocket: WebSocket,
    store: RecipeStore,
    name: str,
    algorithm: str,
    delay_ms: Optional[int],
    cancel: threading.Event,
) -> None:
    try:
        plan = await run_in_threadpool(animation_service.plan_animation, store.graph, name, algorithm, cancel)
    except RecipeServiceError as exc:
        if not cancel.is_set():
            await websocket.send_json({"type": "error", "status": exc.status_code, "detail": exc.detail})
            await websocket.close(code=1008)
        return

    if cancel.is_set():
        log.info("Animation client for '%s' disconnected during search", name)
        return

    try:
        sent = await animation_service.stream_animation(
            websocket, plan, animation_service.animation_delay_ms(delay_ms), cancel
        )
    except WebSocketDisconnect:
        cancel.set()
        log.info("Animation client for '%s' disconnected", name)
        return

    if cancel.is_set():
        log.info("Animation client for '%s' disconnected after %d events", name, sent)
        return

    log.debug("Animation for '%s' (%s) sent %d events", name, plan.algorithm, sent)
    await websocket.close()


@router.websocket("/api/animate/{name}")
async def api_animate(
    websocket: WebSocket,
    name: str,
    algorithm: str = "bfs",
    delay_ms: Optional[int] = Query(None, alias="delayMs"),
    store: RecipeStore = Depends(get_store),
) -> None:
    await websocket.accept()
    cancel = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(websocket, cancel))
    try:
        await _animate(websocket, store, name, algorithm, delay_ms, cancel)
    finally:
        cancel.set()
        watcher.cancel()
