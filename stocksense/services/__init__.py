from stocksense.services.broadcast_service import InventoryBroadcaster
from stocksense.services.camera_service import CameraReconciler
from stocksense.services.container import InventoryServices, build_services
from stocksense.services.movement_service import MovementRecorder, register_manual
from stocksense.services.rfid_service import RfidReconciler
from stocksense.services.sensor_service import SensorEventRouter, SensorListener
from stocksense.services.voice_service import VoiceCommandService
from stocksense.services.weight_service import WeightReconciler, WeightStabilizer

__all__ = [
    "CameraReconciler",
    "InventoryBroadcaster",
    "InventoryServices",
    "MovementRecorder",
    "RfidReconciler",
    "SensorEventRouter",
    "SensorListener",
    "VoiceCommandService",
    "WeightReconciler",
    "WeightStabilizer",
    "build_services",
    "register_manual",
]
