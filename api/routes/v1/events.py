"""
api/routes/v1/events.py -- Authenticated WebSocket channel.

The handshake is authenticated before accept(): a missing or invalid token
closes the socket with 1008 (policy violation) and nothing is sent. The
store lookups behind validation are synchronous and run in the thread pool.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from auth.dependencies import get_auth_service
from auth.errors import Unauthorized
from auth.models import AuthUser

logger = logging.getLogger("photovault.api.events")

router = APIRouter()


def _authenticate(websocket: WebSocket) -> AuthUser:
    return get_auth_service(websocket).validate_socket(websocket)


@router.websocket("/ws")
async def events(websocket: WebSocket) -> None:
    try:
        user = await run_in_threadpool(_authenticate, websocket)
    except Unauthorized as exc:
        logger.info("WebSocket handshake rejected: %s", exc)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    await websocket.send_json({"event": "ready", "user_id": user.id})
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("WebSocket closed for user id=%s", user.id)
