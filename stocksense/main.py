import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from stocksense.config import Settings, get_settings
from stocksense.core.logging import setup_logging
from stocksense.database import Base, SessionLocal, engine as default_engine, ensure_reference_data
from stocksense.models import import_all_models
from stocksense.routers import (
    health_router,
    inventory_router,
    products_router,
    sensors_router,
    ws_router,
)
from stocksense.services.container import build_services
from stocksense.services.voice_service import IntentClassifier

logger = logging.getLogger(__name__)


def init_database(bind: Engine, session_factory: Callable[[], Session]) -> None:
    import_all_models()
    Base.metadata.create_all(bind=bind)
    db = session_factory()
    try:
        ensure_reference_data(db)
    finally:
        db.close()


def create_app(
    *,
    settings: Optional[Settings] = None,
    bind: Optional[Engine] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    classifier: Optional[IntentClassifier] = None,
) -> FastAPI:
    settings = settings or get_settings()
    bind = bind or default_engine
    session_factory = session_factory or SessionLocal

    services = build_services(session_factory, settings=settings, classifier=classifier)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        init_database(bind, session_factory)
        if settings.SENSOR_LISTENER_ENABLED:
            services.sensor_listener.start()
        try:
            yield
        finally:
            services.sensor_listener.stop()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.services = services

    app.include_router(health_router)
    app.include_router(products_router)
    app.include_router(inventory_router)
    app.include_router(sensors_router)
    app.include_router(ws_router)
    return app


setup_logging()
app = create_app()


__all__ = ["app", "create_app", "init_database"]
