from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator


class RfidScanPayload(BaseModel):
    rfid_tag: str

    model_config = ConfigDict(extra="ignore")


class CameraPayload(BaseModel):
    botellas: StrictInt = Field(ge=0)

    model_config = ConfigDict(extra="ignore")

    @field_validator("botellas", mode="before")
    @classmethod
    def _whole_float_count(cls, value):
        # Some camera firmware reports counts as 3.0.
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value


class WeightPayload(BaseModel):
    value: float
    ts: Optional[float] = None

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)
