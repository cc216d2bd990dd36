import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import sessionmaker

from resumeai.core.auth_dependency import SessionContext, decode_session_token, get_session_factory
from resumeai.services import quota_service
from resumeai.services.ledger_events import ledger_broadcaster

router = APIRouter()
logger = logging.getLogger(__name__)


# Each lookup opens its own session and closes it before the feed loop starts

def _authenticate(session_factory: sessionmaker, token: str) -> SessionContext:
    db = session_factory()
    try:
        return decode_session_token(token, db)
    finally:
        db.close()


def _snapshot(session_factory: sessionmaker, user_id: int) -> Dict[str, Any]:
    db = session_factory()
    try:
        return jsonable_encoder({"event": "snapshot", **quota_service.get_ledger_summary(db, user_id)})
    finally:
        db.close()


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        event = await queue.get()
        await websocket.send_json(event)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Client messages are ignored; receiving only notices the disconnect
    while True:
        await websocket.receive_text()


@router.websocket("/ws/subscription")
async def subscription_feed(
    websocket: WebSocket,
    token: str = Query(...),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Stream the caller's ledger changes. The first message is a snapshot."""
    try:
        session = await run_in_threadpool(_authenticate, session_factory, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue = ledger_broadcaster.subscribe(session.user_id)
    logger.info(f"Ledger feed connected: user_id={session.user_id}")

    tasks = []
    try:
        snapshot = await run_in_threadpool(_snapshot, session_factory, session.user_id)
        await websocket.send_json(snapshot)

        tasks = [
            asyncio.create_task(_forward_events(websocket, queue)),
            asyncio.create_task(_wait_for_disconnect(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                raise exc
    except WebSocketDisconnect:
        pass
    finally:
        for task in tasks:
            task.cancel()
        ledger_broadcaster.unsubscribe(session.user_id, queue)
        logger.info(f"Ledger feed disconnected: user_id={session.user_id}")
