import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stocksense.core.constants import MOVEMENT_TYPE_NAMES

logger = logging.getLogger(__name__)


def ensure_reference_data(db: Session) -> int:
    """Insert the fixed movement types that are missing. Returns rows added."""
    from stocksense.models.movement_type import MovementType

    existing = set(db.execute(select(MovementType.id)).scalars())
    added = 0
    try:
        for type_id, name in MOVEMENT_TYPE_NAMES.items():
            if type_id in existing:
                continue
            db.add(MovementType(id=type_id, name=name))
            added += 1
        if added:
            db.commit()
            logger.info("Seeded %s movement types", added)
    except SQLAlchemyError:
        db.rollback()
        raise
    return added


__all__ = ["ensure_reference_data"]
