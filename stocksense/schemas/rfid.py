from datetime import date
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class RfidEntryItem(BaseModel):
    rfid_tag: str = Field(min_length=1)
    expiration_date: Optional[date] = None


class RfidEntryRequest(BaseModel):
    # Individual items are validated one by one; malformed ones are skipped.
    entries: Optional[List[Any]] = None


class RfidEntryResult(BaseModel):
    message: str
    registered: int
    duplicates: int


class EntryModeUpdate(BaseModel):
    entry_mode: Optional[bool] = None
