from stocksense.database.base import Base
from stocksense.database.engine import create_database_engine, engine
from stocksense.database.reference import ensure_reference_data
from stocksense.database.session import SessionLocal

__all__ = [
    "Base",
    "SessionLocal",
    "create_database_engine",
    "engine",
    "ensure_reference_data",
]
