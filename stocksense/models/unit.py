from sqlalchemy import Boolean, Column, Integer, String

from stocksense.database.base import Base


class Unit(Base):
    __tablename__ = "units"

    id = Column(Integer, primary_key=True)
    name = Column(String(80), nullable=False, unique=True)
    allows_decimals = Column(Boolean, nullable=False, default=False)


__all__ = ["Unit"]
