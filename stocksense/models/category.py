from sqlalchemy import Column, Integer, String

from stocksense.database.base import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    # NULL means shared by every company.
    company_id = Column(Integer, index=True)


__all__ = ["Category"]
