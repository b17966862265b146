from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, Text, text
from sqlalchemy.orm import relationship

from stocksense.database.base import Base


class StockEntry(Base):
    """One RFID-tagged physical unit waiting to be consumed."""

    __tablename__ = "stock_entries"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    rfid_tag = Column(Text, nullable=False)
    expiration_date = Column(Date)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    deleted_at = Column(DateTime(timezone=True))

    product = relationship("Product", lazy="joined")

    __table_args__ = (
        Index(
            "uq_stock_entries_open_tag",
            "rfid_tag",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("idx_stock_entries_product_expiration", "product_id", "expiration_date"),
    )


__all__ = ["StockEntry"]
