from typing import Any, List, Optional

from pydantic import BaseModel


class MovementCreate(BaseModel):
    # Kept loose on purpose: the service validates in a fixed order so the
    # caller gets the first business rule it breaks.
    type: Any = None
    quantity: Any = None
    note: Optional[str] = None


class MovementResult(BaseModel):
    message: str
    new_stock: float


class MovementRead(BaseModel):
    id: int
    date: str
    time: str
    type: str
    stock_before: float
    quantity: float
    stock_after: float
    comment: Optional[str] = None


class MovementHistory(BaseModel):
    message: str
    movements: List[MovementRead]
