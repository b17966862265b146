from datetime import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

SensorType = Literal["manual", "rfid", "weight", "camera"]


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    brand: str = ""
    description: str = ""
    category: int
    unit_type: int
    stock_min: float = Field(default=0, ge=0)
    stock_max: Optional[float] = Field(default=None, ge=0)
    sensor_type: str
    image_url: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    brand: Optional[str] = None
    description: Optional[str] = None
    stock_minimum: Optional[float] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("stock_minimum", "stock_min", "min_stock"),
    )
    stock_maximum: Optional[float] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("stock_maximum", "stock_max", "max_stock"),
    )
    image_url: Optional[str] = None
    category: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ProductCard(BaseModel):
    id: str
    name: str
    image_url: Optional[str] = None
    stock_actual: float
    stock_minimum: float
    stock_maximum: Optional[float] = None
    sensor_type: SensorType
    category: Optional[str] = None
    status: str
    is_active: bool


class ProductDetail(ProductCard):
    brand: str
    description: str
    unit: Optional[str] = None
    allows_decimals: bool = False
    expiration_date: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProductPage(BaseModel):
    items: List[ProductCard]
    total: int
    page: int
    limit: int
