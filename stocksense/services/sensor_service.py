"""
Sensor ingestion.

``SensorEventRouter`` turns one device message into a reconciler call.
``SensorListener`` sits in front of it: every channel (rfid, camera and each
weight channel) gets its own FIFO queue and worker thread, so messages on one
channel are handled strictly in arrival order while channels run in parallel.
The transport (MQTT client, HTTP endpoint, log replay) only calls ``submit``.
"""

import json
import logging
import queue
import threading
from typing import Any, Callable, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session

from stocksense.core.constants import CHANNEL_CAMERA, CHANNEL_RFID, CHANNEL_WEIGHT
from stocksense.schemas.sensor import CameraPayload, RfidScanPayload, WeightPayload
from stocksense.services.camera_service import CameraReconciler
from stocksense.services.rfid_service import RfidReconciler
from stocksense.services.weight_service import WeightReconciler

logger = logging.getLogger(__name__)

_STOP = object()


def decode_payload(payload: Any) -> dict:
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        data = json.loads(payload)
        if isinstance(data, dict):
            return data
    raise ValueError("Sensor payload must be a JSON object")


class SensorEventRouter:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        prefix: str = "",
        rfid: Optional[RfidReconciler] = None,
        camera: Optional[CameraReconciler] = None,
        weight: Optional[WeightReconciler] = None,
    ):
        self.session_factory = session_factory
        self.prefix = (prefix or "").strip("/")
        self.rfid = rfid
        self.camera = camera
        self.weight = weight

    def classify(self, topic: str) -> Optional[Tuple[str, Optional[str]]]:
        """Return ``(kind, weight_channel)`` for a topic, or None when unknown.

        Topics may be absolute (``<prefix>/camera``) or relative (``camera``).
        """
        path = (topic or "").strip("/")
        if self.prefix and path.startswith(self.prefix + "/"):
            path = path[len(self.prefix) + 1:]
        if path == CHANNEL_RFID:
            return CHANNEL_RFID, None
        if path == CHANNEL_CAMERA:
            return CHANNEL_CAMERA, None
        if path.startswith(CHANNEL_WEIGHT + "/"):
            channel = path[len(CHANNEL_WEIGHT) + 1:]
            if channel and "/" not in channel:
                return CHANNEL_WEIGHT, channel
        return None

    def channel_key(self, topic: str) -> Optional[str]:
        kind = self.classify(topic)
        if kind is None:
            return None
        if kind[1] is None:
            return kind[0]
        return "{}/{}".format(*kind)

    def dispatch(self, topic: str, payload: Any) -> bool:
        """Handle one message. Never raises; returns False when it was dropped."""
        kind = self.classify(topic)
        if kind is None:
            logger.warning("Message on unknown sensor topic %s dropped", topic)
            return False
        name, channel = kind

        try:
            data = decode_payload(payload)
            if name == CHANNEL_RFID:
                self._handle_rfid(RfidScanPayload.model_validate(data))
            elif name == CHANNEL_CAMERA:
                self._handle_camera(CameraPayload.model_validate(data))
            else:
                self._handle_weight(channel, WeightPayload.model_validate(data))
        except (ValueError, ValidationError) as exc:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors.
            logger.warning("Malformed %s message on %s dropped: %s", name, topic, exc)
            return False
        except Exception as exc:
            if name == CHANNEL_RFID:
                logger.exception("Error processing RFID message on %s", topic)
            else:
                logger.warning("Error processing %s message on %s: %s", name, topic, exc)
            return False
        return True

    def _session(self):
        return self.session_factory()

    def _handle_rfid(self, message: RfidScanPayload) -> None:
        if self.rfid is None:
            logger.warning("RFID message received but no RFID reconciler is configured")
            return
        db = self._session()
        try:
            self.rfid.on_tag_scanned(db, message.rfid_tag)
        finally:
            db.close()

    def _handle_camera(self, message: CameraPayload) -> None:
        if self.camera is None:
            logger.warning("Camera message received but CAMERA_PRODUCT_ID is not set")
            return
        db = self._session()
        try:
            self.camera.on_bottle_count(db, message.botellas)
        finally:
            db.close()

    def _handle_weight(self, channel: str, message: WeightPayload) -> None:
        if self.weight is None:
            logger.warning("Weight message received but no weight channels are configured")
            return
        db = self._session()
        try:
            self.weight.on_reading(db, channel, message.value, message.ts)
        finally:
            db.close()


class SensorListener:
    """Per-channel FIFO workers in front of a ``SensorEventRouter``."""

    def __init__(self, router: SensorEventRouter, *, queue_size: int = 1000):
        self.router = router
        self.queue_size = max(1, int(queue_size))
        self._lock = threading.Lock()
        self._queues: dict[str, queue.Queue] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        with self._lock:
            if self._running:
                return
            self._running = True
            for key in self._queues:
                self._start_worker(key)
        logger.info("Sensor listener started")

    def stop(self, timeout: float = 5.0):
        with self._lock:
            if not self._running:
                return
            self._running = False
            threads = list(self._threads.items())
            for key, _ in threads:
                self._queues[key].put(_STOP)
            self._threads = {}
        for key, thread in threads:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Sensor worker %s did not stop within %ss", key, timeout)
        logger.info("Sensor listener stopped")

    def submit(self, topic: str, payload: Any) -> bool:
        """Queue a message for its channel. Returns False when it was dropped."""
        key = self.router.channel_key(topic)
        if key is None:
            logger.warning("Message on unknown sensor topic %s dropped", topic)
            return False
        with self._lock:
            channel_queue = self._queues.get(key)
            if channel_queue is None:
                channel_queue = queue.Queue(maxsize=self.queue_size)
                self._queues[key] = channel_queue
            if self._running and key not in self._threads:
                self._start_worker(key)
        try:
            channel_queue.put_nowait((topic, payload))
        except queue.Full:
            logger.warning("Sensor queue for %s is full, message dropped", key)
            return False
        return True

    def wait_idle(self):
        """Block until every queued message has been processed."""
        with self._lock:
            queues = list(self._queues.values())
        for channel_queue in queues:
            channel_queue.join()

    def _start_worker(self, key: str):
        thread = threading.Thread(
            target=self._run,
            args=(key, self._queues[key]),
            name="sensor-{}".format(key),
            daemon=True,
        )
        self._threads[key] = thread
        thread.start()

    def _run(self, key: str, channel_queue: queue.Queue):
        while True:
            item = channel_queue.get()
            try:
                if item is _STOP:
                    return
                topic, payload = item
                self.router.dispatch(topic, payload)
            except Exception:
                logger.exception("Sensor worker %s failed on a message", key)
            finally:
                channel_queue.task_done()


__all__ = ["SensorEventRouter", "SensorListener", "decode_payload"]
