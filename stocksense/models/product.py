from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from stocksense.database.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, nullable=False, index=True)

    name = Column(String(255), nullable=False)
    brand = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=False, default="")

    stock = Column(Numeric(10, 2), nullable=False, default=0)
    min_stock = Column(Numeric(10, 2), nullable=False, default=0)
    max_stock = Column(Numeric(10, 2))

    sensor_type = Column(String(20), nullable=False, default="manual")
    is_active = Column(Boolean, nullable=False, default=True)
    image_url = Column(Text)

    unit_id = Column(Integer, ForeignKey("units.id"))
    category_id = Column(Integer, ForeignKey("categories.id"))

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    deleted_at = Column(DateTime(timezone=True))

    unit = relationship("Unit", lazy="joined")
    category = relationship("Category", lazy="joined")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint(
            "sensor_type IN ('manual', 'rfid', 'weight', 'camera')",
            name="ck_products_sensor_type",
        ),
        Index("idx_products_company_name", "company_id", "name"),
    )


__all__ = ["Product"]
