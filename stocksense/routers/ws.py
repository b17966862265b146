import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Feed"])


async def _pump(websocket: WebSocket, subscription):
    while True:
        message = await subscription.next_message()
        await websocket.send_json(message)


@router.websocket("/ws/inventory")
async def inventory_feed(websocket: WebSocket):
    broadcaster = websocket.app.state.services.broadcaster
    await websocket.accept()
    client = websocket.client
    name = "ws:{}:{}".format(client.host, client.port) if client else "ws"
    subscription = broadcaster.subscribe_async(asyncio.get_running_loop(), name=name)
    sender = asyncio.create_task(_pump(websocket, subscription))
    try:
        # Clients do not send anything meaningful; reading detects disconnects.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        broadcaster.unsubscribe(subscription)
