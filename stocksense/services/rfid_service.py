import logging
from typing import Any, Iterable, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stocksense.core.constants import (
    EVENT_RFID_TAG_DETECTED,
    MOVEMENT_ENTRY,
    MOVEMENT_EXIT,
    REASON_RFID_EXIT,
    REASON_RFID_REGISTER,
    SENSOR_RFID,
)
from stocksense.core.dates import utcnow
from stocksense.core.entry_mode import EntryModeState
from stocksense.core.exceptions import BadRequestError, EntryModeDisabled, InventoryError, RfidTagConflict
from stocksense.models.product import Product
from stocksense.models.stock_entry import StockEntry
from stocksense.schemas.rfid import RfidEntryItem
from stocksense.services.movement_service import MovementRecorder
from stocksense.services.product_service import get_product, soonest_expiration

logger = logging.getLogger(__name__)


def _open_entry_query(tag: str, company_id: Optional[int]):
    stmt = (
        select(StockEntry)
        .join(Product, Product.id == StockEntry.product_id)
        .where(StockEntry.rfid_tag == tag, StockEntry.deleted_at.is_(None))
    )
    if company_id is not None:
        stmt = stmt.where(Product.company_id == company_id)
    return stmt


class RfidReconciler:
    """Keeps one open stock entry per tagged unit in step with product stock.

    A scan of a registered tag means the unit left: its entry is closed and the
    product loses one unit. Tags with no open entry are announced on the feed so
    an operator can register them while entry mode is on.
    """

    def __init__(
        self,
        recorder: MovementRecorder,
        entry_mode: EntryModeState,
        *,
        company_id: Optional[int] = None,
    ):
        self.recorder = recorder
        self.entry_mode = entry_mode
        self.company_id = company_id

    def _announce_unassigned(self, tag: str) -> None:
        broadcaster = self.recorder.broadcaster
        if broadcaster is None:
            return
        try:
            broadcaster.publish(EVENT_RFID_TAG_DETECTED, {"rfid_tag": tag})
        except Exception:
            logger.exception("Could not announce unassigned RFID tag %s", tag)

    def on_tag_scanned(self, db: Session, tag) -> Optional[StockEntry]:
        tag = str(tag or "").strip()
        if not tag:
            logger.warning("Empty RFID tag ignored")
            return None

        entry = db.execute(_open_entry_query(tag, self.company_id)).unique().scalars().first()
        if entry is None:
            logger.info("RFID tag %s has no open entry", tag)
            self._announce_unassigned(tag)
            return None

        product_id = entry.product_id
        with self.recorder.hold(product_id):
            try:
                # Re-read under the lock; a concurrent scan may have closed it.
                entry = db.execute(
                    _open_entry_query(tag, self.company_id).execution_options(populate_existing=True)
                ).unique().scalars().first()
                if entry is None:
                    db.rollback()
                    self._announce_unassigned(tag)
                    return None
                entry.deleted_at = utcnow()
                movement = self.recorder.apply_movement(
                    db,
                    entry.product,
                    MOVEMENT_EXIT,
                    1,
                    REASON_RFID_EXIT,
                )
                db.commit()
            except (InventoryError, SQLAlchemyError):
                db.rollback()
                raise

        logger.info("RFID exit for tag %s on product %s", tag, product_id)
        self.recorder.publish_update(
            db,
            movement.product,
            movement,
            expiration_date=soonest_expiration(db, product_id),
        )
        return entry

    def register_entries(
        self,
        db: Session,
        company_id: int,
        product_id,
        items: Optional[Iterable[Any]],
    ) -> dict:
        product = get_product(db, company_id, product_id)
        if product.sensor_type != SENSOR_RFID:
            raise BadRequestError("This product does not use RFID")
        if not self.entry_mode.get():
            raise EntryModeDisabled()
        if items is None or isinstance(items, (str, bytes, dict)):
            raise BadRequestError("Invalid entries list")

        registered = 0
        duplicates = 0
        movement = None
        with self.recorder.hold(product.id):
            try:
                seen = set()
                for raw in items:
                    try:
                        item = RfidEntryItem.model_validate(raw)
                    except ValidationError:
                        logger.debug("Skipping malformed RFID entry %r", raw)
                        continue
                    tag = item.rfid_tag.strip()
                    if not tag:
                        continue
                    if tag in seen or self._is_open(db, tag):
                        duplicates += 1
                        continue
                    seen.add(tag)
                    db.add(
                        StockEntry(
                            product_id=product.id,
                            rfid_tag=tag,
                            expiration_date=item.expiration_date,
                        )
                    )
                    registered += 1

                if registered:
                    movement = self.recorder.apply_movement(
                        db,
                        product,
                        MOVEMENT_ENTRY,
                        registered,
                        REASON_RFID_REGISTER,
                    )
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                logger.warning(
                    "RFID registration on product %s lost a tag race: %s",
                    product.id,
                    exc.orig,
                )
                raise RfidTagConflict(product.id) from exc
            except (InventoryError, SQLAlchemyError):
                db.rollback()
                raise

        logger.info(
            "RFID registration on product %s: %s registered, %s duplicates",
            product.id,
            registered,
            duplicates,
        )
        if movement is not None:
            self.recorder.publish_update(db, movement.product, movement)
        return {
            "message": "RFID entries registered",
            "registered": registered,
            "duplicates": duplicates,
        }

    @staticmethod
    def _is_open(db: Session, tag: str) -> bool:
        stmt = select(StockEntry.id).where(
            StockEntry.rfid_tag == tag,
            StockEntry.deleted_at.is_(None),
        ).limit(1)
        return db.execute(stmt).first() is not None


__all__ = ["RfidReconciler"]
