from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from stocksense.config import get_settings
from stocksense.dependencies import get_services
from stocksense.services.container import InventoryServices

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(services: InventoryServices = Depends(get_services)):
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "sensor_listener": services.sensor_listener.running,
        "feed_subscribers": services.broadcaster.subscriber_count,
        "time": datetime.now(timezone.utc).isoformat(),
    }
