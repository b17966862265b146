import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stocksense.core.constants import MOVEMENT_ENTRY, MOVEMENT_EXIT, REASON_CAMERA
from stocksense.core.exceptions import BadRequestError, InventoryError
from stocksense.models.movement import Movement
from stocksense.services.movement_service import MovementRecorder

logger = logging.getLogger(__name__)


class CameraReconciler:
    """Sets the stock of one product to the count reported by a camera."""

    def __init__(self, recorder: MovementRecorder, product_id: int, *, company_id: Optional[int] = None):
        self.recorder = recorder
        self.product_id = int(product_id)
        self.company_id = company_id

    def on_bottle_count(self, db: Session, count) -> Optional[Movement]:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise BadRequestError("Invalid camera count: {!r}".format(count))

        product = self.recorder.load_product(db, self.product_id, company_id=self.company_id)
        target = Decimal(count)
        with self.recorder.hold(product.id):
            try:
                product = self.recorder.load_locked(db, product.id)
                current = Decimal(product.stock or 0)
                if target == current:
                    db.rollback()
                    logger.debug("Camera count %s matches stock of product %s", count, product.id)
                    return None
                type_id = MOVEMENT_ENTRY if target > current else MOVEMENT_EXIT
                movement = self.recorder.apply_movement(
                    db,
                    product,
                    type_id,
                    abs(target - current),
                    REASON_CAMERA,
                )
                db.commit()
            except (InventoryError, SQLAlchemyError):
                db.rollback()
                raise

        logger.info(
            "Camera count on product %s: %s -> %s",
            product.id,
            movement.previous_quantity,
            movement.final_quantity,
        )
        self.recorder.publish_update(db, movement.product, movement)
        return movement


__all__ = ["CameraReconciler"]
