from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, Text
from sqlalchemy.orm import relationship

from stocksense.database.base import Base


class Movement(Base):
    """Append-only audit row: ``final_quantity = previous_quantity +/- quantity``."""

    __tablename__ = "movements"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    type_id = Column(Integer, ForeignKey("movement_types.id"), nullable=False)

    quantity = Column(Numeric(10, 2), nullable=False)
    previous_quantity = Column(Numeric(10, 2), nullable=False)
    final_quantity = Column(Numeric(10, 2), nullable=False)
    comment = Column(Text)

    movement_date = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    deleted_at = Column(DateTime(timezone=True))

    product = relationship("Product", lazy="joined")
    type = relationship("MovementType", lazy="joined")

    __table_args__ = (
        Index("idx_movements_product_date", "product_id", "movement_date"),
    )


__all__ = ["Movement"]
