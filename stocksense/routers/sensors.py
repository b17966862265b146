from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from stocksense.dependencies import get_services, require_auth
from stocksense.services.container import InventoryServices

router = APIRouter(prefix="/sensors", tags=["Sensors"])


@router.post("/{topic:path}", status_code=202)
def ingest_message(
    topic: str,
    payload: Any = Body(...),
    services: InventoryServices = Depends(get_services),
    _auth=Depends(require_auth),
):
    """HTTP transport for devices that cannot hold a broker connection."""
    listener = services.sensor_listener
    if services.sensor_router.channel_key(topic) is None:
        raise HTTPException(status_code=404, detail="Unknown sensor topic")
    if not listener.running:
        raise HTTPException(status_code=503, detail="Sensor listener is not running")
    if not listener.submit(topic, payload):
        raise HTTPException(
            status_code=503,
            detail="Sensor queue is full, retry later",
            headers={"Retry-After": "1"},
        )
    return {"message": "Accepted", "topic": topic}
