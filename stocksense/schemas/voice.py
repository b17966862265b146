from typing import Any, Optional

from pydantic import BaseModel, Field


class VoiceCommandRequest(BaseModel):
    command: str = Field(min_length=1)


class MovementIntent(BaseModel):
    product_id: int
    type: Any = None
    quantity: Any = None
    note: Optional[str] = None


class EditIntent(BaseModel):
    product_id: int
    changes: dict[str, Any]
