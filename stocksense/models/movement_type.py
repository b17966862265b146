from sqlalchemy import Column, Integer, String

from stocksense.database.base import Base


class MovementType(Base):
    __tablename__ = "movement_types"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False)


__all__ = ["MovementType"]
