from stocksense.routers.health import router as health_router
from stocksense.routers.inventory import router as inventory_router
from stocksense.routers.products import router as products_router
from stocksense.routers.sensors import router as sensors_router
from stocksense.routers.ws import router as ws_router

__all__ = [
    "health_router",
    "inventory_router",
    "products_router",
    "sensors_router",
    "ws_router",
]
