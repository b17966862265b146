import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from stocksense.config import Settings, get_settings, parse_weight_channels
from stocksense.core.entry_mode import EntryModeState
from stocksense.core.locks import ProductLocks
from stocksense.services.broadcast_service import InventoryBroadcaster
from stocksense.services.camera_service import CameraReconciler
from stocksense.services.movement_service import MovementRecorder
from stocksense.services.rfid_service import RfidReconciler
from stocksense.services.sensor_service import SensorEventRouter, SensorListener
from stocksense.services.voice_service import IntentClassifier, VoiceCommandService, build_classifier
from stocksense.services.weight_service import WeightReconciler, WeightStabilizer

logger = logging.getLogger(__name__)


@dataclass
class InventoryServices:
    settings: Settings
    session_factory: Callable[[], Session]
    broadcaster: InventoryBroadcaster
    locks: ProductLocks
    entry_mode: EntryModeState
    recorder: MovementRecorder
    rfid: RfidReconciler
    camera: Optional[CameraReconciler]
    weight: Optional[WeightReconciler]
    voice: VoiceCommandService
    sensor_router: SensorEventRouter
    sensor_listener: SensorListener


def build_services(
    session_factory: Callable[[], Session],
    *,
    settings: Optional[Settings] = None,
    classifier: Optional[IntentClassifier] = None,
) -> InventoryServices:
    """Wire the process-wide collaborators once at startup."""
    settings = settings or get_settings()

    broadcaster = InventoryBroadcaster(queue_size=settings.BROADCAST_QUEUE_SIZE)
    locks = ProductLocks(timeout=settings.STOCK_LOCK_TIMEOUT_SECONDS)
    entry_mode = EntryModeState(settings.RFID_ENTRY_MODE_DEFAULT)
    recorder = MovementRecorder(locks, broadcaster, settings=settings)
    company_id = settings.SENSOR_COMPANY_ID

    rfid = RfidReconciler(recorder, entry_mode, company_id=company_id)

    camera = None
    if settings.CAMERA_PRODUCT_ID is not None:
        camera = CameraReconciler(recorder, settings.CAMERA_PRODUCT_ID, company_id=company_id)

    weight = None
    channels = parse_weight_channels(settings.WEIGHT_CHANNELS)
    if channels:
        stabilizer = WeightStabilizer(
            jump_threshold=settings.WEIGHT_JUMP_THRESHOLD,
            stable_count=settings.WEIGHT_STABLE_COUNT,
        )
        weight = WeightReconciler(recorder, stabilizer, channels, company_id=company_id)
        logger.info("Weight channels bound: %s", channels)

    if company_id is None:
        logger.warning("SENSOR_COMPANY_ID is not set; sensor lookups are not tenant scoped")

    sensor_router = SensorEventRouter(
        session_factory,
        prefix=settings.SENSOR_TOPIC_PREFIX,
        rfid=rfid,
        camera=camera,
        weight=weight,
    )
    sensor_listener = SensorListener(sensor_router, queue_size=settings.SENSOR_QUEUE_SIZE)

    voice = VoiceCommandService(classifier or build_classifier(settings), recorder)

    return InventoryServices(
        settings=settings,
        session_factory=session_factory,
        broadcaster=broadcaster,
        locks=locks,
        entry_mode=entry_mode,
        recorder=recorder,
        rfid=rfid,
        camera=camera,
        weight=weight,
        voice=voice,
        sensor_router=sensor_router,
        sensor_listener=sensor_listener,
    )


__all__ = ["InventoryServices", "build_services"]
