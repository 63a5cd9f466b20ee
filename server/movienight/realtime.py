# websocket fan-out endpoint
import asyncio
import logging
from contextlib import suppress

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from .broadcast import MOVIES_INITIAL, WINNERS_UPDATED, Subscription
from .models import Event

logger = logging.getLogger(__name__)

router = APIRouter()


async def _pump(websocket: WebSocket, sub: Subscription) -> None:
    while True:
        event = await sub.get()
        try:
            await websocket.send_json(event.model_dump(mode="json"))
        except (WebSocketDisconnect, RuntimeError):
            # socket closed under us; the receive loop does the cleanup
            logger.debug("subscriber %d gone, stopped sending", sub.id)
            return


async def _snapshot(websocket: WebSocket, kind: str) -> Event:
    engine = websocket.app.state.engine
    if kind == MOVIES_INITIAL:
        movies = await run_in_threadpool(engine.list_active_candidates)
        return Event(type=MOVIES_INITIAL, data=[m.model_dump() for m in movies])
    winners = await run_in_threadpool(engine.list_winners)
    return Event(type=WINNERS_UPDATED, data=[w.model_dump() for w in winners])


@router.websocket("/ws")
async def realtime(websocket: WebSocket):
    """
    Streams every broadcast event to the client. The client may also send
    {"type": "movies:get"} or {"type": "winners:get"} to receive the
    current snapshot on this connection only.
    """
    broadcaster = websocket.app.state.broadcaster
    # registered before accept so nothing published after the handshake is missed
    sub = broadcaster.subscribe()
    await websocket.accept()
    sender = asyncio.create_task(_pump(websocket, sub))

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except (KeyError, ValueError):
                # KeyError: binary frame, starlette only reads message["text"]
                logger.warning("subscriber %d sent a non-JSON message, ignored", sub.id)
                continue

            kind = message.get("type") if isinstance(message, dict) else None
            if kind == "movies:get":
                sub.deliver(await _snapshot(websocket, MOVIES_INITIAL))
            elif kind == "winners:get":
                sub.deliver(await _snapshot(websocket, WINNERS_UPDATED))
            else:
                logger.warning("subscriber %d sent unknown message type %r", sub.id, kind)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(sub)
        sender.cancel()
        with suppress(asyncio.CancelledError):
            await sender
