"""
Movement recording: the only code path that changes ``Product.stock``.

Every stock change, whatever its source (operator, RFID, camera, scale), goes
through ``MovementRecorder``. It re-reads the product row under the product's
lock, computes ``previous``/``final`` from the committed stock, and writes the
new stock together with an append-only ``Movement`` row in one transaction.
Only after the commit is the update handed to the broadcaster; a broadcast
failure is logged and never rolls the mutation back.
"""

import logging
import math
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stocksense.config import Settings, get_settings
from stocksense.core.constants import (
    DECREASE_TYPES,
    EVENT_PRODUCT_UPDATED,
    INCREASE_TYPES,
    QUANTITY_PLACES,
    SENSOR_MANUAL,
)
from stocksense.core.dates import ensure_utc, split_local, utcnow
from stocksense.core.exceptions import (
    BadRequestError,
    DecimalNotAllowed,
    InsufficientStock,
    InvalidMovementType,
    InventoryError,
    ProductInactive,
    ProductNotFound,
)
from stocksense.core.locks import ProductLocks
from stocksense.models.movement import Movement
from stocksense.models.movement_type import MovementType
from stocksense.models.product import Product
from stocksense.services.broadcast_service import InventoryBroadcaster
from stocksense.services.product_service import as_number, get_product, soonest_expiration

logger = logging.getLogger(__name__)

_UNSET = object()


def signed_quantity(movement: Movement) -> Decimal:
    quantity = Decimal(movement.quantity)
    if movement.type_id in DECREASE_TYPES:
        return -quantity
    return quantity


def format_movement(movement: Movement, tz_name: str, *, keep_empty_comment: bool = False) -> dict:
    date_text, time_text = split_local(movement.movement_date, tz_name)
    item = {
        "id": movement.id,
        "date": date_text,
        "time": time_text,
        "type": movement.type.name if movement.type else str(movement.type_id),
        "stock_before": as_number(movement.previous_quantity),
        "quantity": as_number(signed_quantity(movement)),
        "stock_after": as_number(movement.final_quantity),
    }
    if movement.comment or keep_empty_comment:
        item["comment"] = movement.comment
    return item


def build_update_payload(product: Product, movement: Movement, expiration_date, tz_name: str) -> dict:
    card = {"id": str(product.id), "stock_actual": as_number(product.stock)}
    if expiration_date is not None:
        card["expiration_date"] = expiration_date.isoformat()
    return {
        "cardData": card,
        "detailData": {
            "id": str(product.id),
            "stock_actual": as_number(product.stock),
            "last_updated": ensure_utc(product.updated_at).isoformat(),
        },
        "movementData": format_movement(movement, tz_name, keep_empty_comment=True),
    }


def _to_quantity(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class MovementRecorder:
    def __init__(
        self,
        locks: ProductLocks,
        broadcaster: Optional[InventoryBroadcaster] = None,
        *,
        settings: Optional[Settings] = None,
    ):
        self.locks = locks
        self.broadcaster = broadcaster
        self.settings = settings or get_settings()

    @contextmanager
    def hold(self, product_id: int):
        """Serialize every stock read-modify-write on ``product_id``.

        The lock has to stay held until the transaction commits, so compound
        operations wrap their whole unit of work in it.
        """
        with self.locks.hold(product_id):
            yield

    def load_product(self, db: Session, product_id: int, *, company_id: Optional[int] = None) -> Product:
        """Sensor-side lookup; channels act on behalf of one configured tenant."""
        stmt = select(Product).where(Product.id == product_id, Product.deleted_at.is_(None))
        if company_id is not None:
            stmt = stmt.where(Product.company_id == company_id)
        product = db.execute(stmt).scalars().first()
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def load_locked(self, db: Session, product_id: int) -> Product:
        stmt = (
            select(Product)
            .where(Product.id == product_id)
            .with_for_update(of=Product)
            .execution_options(populate_existing=True)
        )
        product = db.execute(stmt).scalars().first()
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def apply_movement(
        self,
        db: Session,
        product: Product,
        type_id: int,
        quantity,
        reason: Optional[str],
    ) -> Movement:
        """Stage the stock change and its movement row without committing.

        Callers hold ``self.hold(product.id)`` until they commit.
        """
        if isinstance(type_id, bool) or type_id not in INCREASE_TYPES | DECREASE_TYPES:
            raise InvalidMovementType(type_id)
        movement_type = db.get(MovementType, type_id)
        if movement_type is None:
            raise InvalidMovementType(type_id)

        quantity = _to_quantity(quantity)
        if not quantity.is_finite() or quantity <= 0:
            raise BadRequestError("Quantity must be greater than zero")

        product = self.load_locked(db, product.id)
        if not product.is_active or product.deleted_at is not None:
            raise ProductInactive(product.id)

        previous = Decimal(product.stock or 0)
        if type_id in INCREASE_TYPES:
            final = previous + quantity
        else:
            final = previous - quantity
            if final < 0:
                raise InsufficientStock(product.id, previous, quantity)

        product.stock = final
        product.updated_at = utcnow()
        movement = Movement(
            product=product,
            type=movement_type,
            quantity=quantity,
            previous_quantity=previous,
            final_quantity=final,
            comment=reason,
            movement_date=utcnow(),
        )
        db.add(movement)
        db.flush()
        logger.debug(
            "Staged movement type=%s product=%s %s -> %s",
            type_id,
            product.id,
            previous,
            final,
        )
        return movement

    def record_movement(
        self,
        db: Session,
        product: Product,
        type_id: int,
        quantity,
        reason: Optional[str] = None,
    ) -> Movement:
        with self.hold(product.id):
            try:
                movement = self.apply_movement(db, product, type_id, quantity, reason)
                db.commit()
            except (InventoryError, SQLAlchemyError):
                db.rollback()
                raise
        logger.info(
            "Movement %s recorded for product %s: %s %s -> %s",
            movement.id,
            movement.product_id,
            movement.type.name,
            movement.previous_quantity,
            movement.final_quantity,
        )
        self.publish_update(db, movement.product, movement)
        return movement

    def publish_update(self, db: Session, product: Product, movement: Movement, *, expiration_date=_UNSET) -> None:
        if self.broadcaster is None:
            return
        try:
            if expiration_date is _UNSET:
                expiration_date = soonest_expiration(db, product.id)
            payload = build_update_payload(
                product,
                movement,
                expiration_date,
                self.settings.DISPLAY_TIMEZONE,
            )
            self.broadcaster.publish(EVENT_PRODUCT_UPDATED, payload)
        except Exception:
            logger.exception("Broadcast failed for product %s movement %s", product.id, movement.id)


def _parse_manual_quantity(value) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise BadRequestError("Invalid movement data")
    if isinstance(value, float) and not math.isfinite(value):
        raise BadRequestError("Invalid movement data")
    try:
        quantity = _to_quantity(value)
    except InvalidOperation as exc:
        raise BadRequestError("Invalid movement data") from exc
    if quantity <= 0:
        raise BadRequestError("Quantity must be greater than zero")
    return quantity


def register_manual(
    db: Session,
    recorder: MovementRecorder,
    *,
    company_id: int,
    product_id,
    movement_type,
    quantity,
    note: Optional[str] = None,
) -> dict:
    """Apply an operator movement after the business checks, in this order:
    exists, active, manually governed, positive quantity, decimal policy,
    known movement type."""
    product = get_product(db, company_id, product_id)

    if not product.is_active:
        raise ProductInactive(product.id)

    if product.sensor_type != SENSOR_MANUAL:
        raise BadRequestError(
            "This product does not allow manual movements because it has a sensor"
        )

    quantity = _parse_manual_quantity(quantity)

    has_fraction = quantity != quantity.to_integral_value()
    allows_decimals = bool(product.unit and product.unit.allows_decimals)
    if has_fraction and not allows_decimals:
        raise DecimalNotAllowed(product.id, quantity)
    if quantity != quantity.quantize(QUANTITY_PLACES):
        raise BadRequestError("Quantities allow at most two decimal places")

    if isinstance(movement_type, bool) or not isinstance(movement_type, int):
        raise InvalidMovementType(movement_type)
    if db.get(MovementType, movement_type) is None:
        raise InvalidMovementType(movement_type)

    note = note.strip() if isinstance(note, str) else None
    movement = recorder.record_movement(db, product, movement_type, quantity, note or None)
    return {
        "message": "Movement recorded",
        "new_stock": as_number(movement.final_quantity),
    }


def list_movements(db: Session, company_id: int, product_id, *, tz_name: str) -> dict:
    product = get_product(db, company_id, product_id, include_deleted=True)
    movements = db.execute(
        select(Movement)
        .where(Movement.product_id == product.id, Movement.deleted_at.is_(None))
        .order_by(Movement.movement_date.desc(), Movement.id.desc())
    ).unique().scalars().all()
    return {
        "message": "Movements loaded",
        "movements": [format_movement(movement, tz_name) for movement in movements],
    }


__all__ = [
    "MovementRecorder",
    "build_update_payload",
    "format_movement",
    "list_movements",
    "register_manual",
    "signed_quantity",
]
