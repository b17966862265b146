import json
import logging
from typing import Optional, Protocol
from urllib import error, request
from urllib.parse import urlparse

from pydantic import ValidationError
from sqlalchemy.orm import Session

from stocksense.config import Settings, get_settings
from stocksense.core.exceptions import BadRequestError, UpstreamError
from stocksense.schemas.product import ProductUpdate
from stocksense.schemas.voice import EditIntent, MovementIntent
from stocksense.services.movement_service import MovementRecorder, register_manual
from stocksense.services.product_service import as_number, update_product

logger = logging.getLogger(__name__)

ACTION_EDIT = "editar"
ACTION_MOVEMENT = "movimiento"

NOT_RECOGNIZED = {"message": "Could not interpret the command", "recognized": False}


class IntentClassifier(Protocol):
    def classify(self, text: str) -> dict:
        ...


class NullIntentClassifier:
    def classify(self, text: str) -> dict:
        return {}


class HttpIntentClassifier:
    """POSTs ``{"command": text}`` to an external classifier and returns its JSON."""

    def __init__(self, url: str, *, token: Optional[str] = None, timeout: float = 15):
        parsed = urlparse(url)
        if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            raise RuntimeError("VOICE_CLASSIFIER_URL must be an absolute HTTP(S) URL")
        self.url = url
        self.token = (token or "").strip()
        self.timeout = timeout

    def classify(self, text: str) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = "Bearer {}".format(self.token)
        req = request.Request(
            self.url,
            data=json.dumps({"command": text}).encode("utf-8"),
            headers=headers,
            method="POST",
        )
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read().decode("utf-8", errors="replace")
        except error.HTTPError as exc:
            raise UpstreamError("voice classifier", "HTTP {}".format(exc.code)) from exc
        except (error.URLError, OSError) as exc:
            raise UpstreamError("voice classifier", str(exc)) from exc

        try:
            data = json.loads(body)
        except ValueError:
            logger.warning("Voice classifier returned non-JSON output")
            return {}
        return data if isinstance(data, dict) else {}


def build_classifier(settings: Optional[Settings] = None) -> IntentClassifier:
    settings = settings or get_settings()
    url = (settings.VOICE_CLASSIFIER_URL or "").strip()
    if not url:
        return NullIntentClassifier()
    return HttpIntentClassifier(
        url,
        token=settings.VOICE_CLASSIFIER_TOKEN,
        timeout=settings.VOICE_CLASSIFIER_TIMEOUT_SECONDS,
    )


class VoiceCommandService:
    def __init__(self, classifier: IntentClassifier, recorder: MovementRecorder):
        self.classifier = classifier
        self.recorder = recorder

    def handle(self, db: Session, company_id: int, text: str) -> dict:
        text = (text or "").strip()
        if not text:
            raise BadRequestError("The 'command' field is required")

        intent = self.classifier.classify(text) or {}
        action = str(intent.get("accion") or "").strip().lower()

        if action == ACTION_EDIT:
            return self._edit(db, company_id, intent.get("patch"))
        if action == ACTION_MOVEMENT:
            return self._movement(db, company_id, intent.get("movement"))

        logger.info("Voice command not recognized: %r", text)
        return dict(NOT_RECOGNIZED)

    def _edit(self, db: Session, company_id: int, patch) -> dict:
        try:
            intent = EditIntent.model_validate(patch)
            changes = ProductUpdate.model_validate(intent.changes)
        except ValidationError:
            return dict(NOT_RECOGNIZED)
        product = update_product(db, company_id, intent.product_id, changes)
        return {
            "message": "Product updated",
            "recognized": True,
            "action": ACTION_EDIT,
            "product_id": str(product.id),
        }

    def _movement(self, db: Session, company_id: int, movement) -> dict:
        try:
            intent = MovementIntent.model_validate(movement)
        except ValidationError:
            return dict(NOT_RECOGNIZED)
        result = register_manual(
            db,
            self.recorder,
            company_id=company_id,
            product_id=intent.product_id,
            movement_type=intent.type,
            quantity=intent.quantity,
            note=intent.note,
        )
        return {
            "message": result["message"],
            "recognized": True,
            "action": ACTION_MOVEMENT,
            "product_id": str(intent.product_id),
            "new_stock": as_number(result["new_stock"]),
        }


__all__ = [
    "HttpIntentClassifier",
    "IntentClassifier",
    "NullIntentClassifier",
    "VoiceCommandService",
    "build_classifier",
]
