from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class VehicleAttributes(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: Literal["vehicle"] = "vehicle"
    mileage: int = Field(ge=0)
    top_speed: int = Field(ge=0)


class RealEstateAttributes(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: Literal["real_estate"] = "real_estate"


class ItemAttributes(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: Literal["item"] = "item"


class ServiceAttributes(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: Literal["service"] = "service"


# Category-specific attributes as a tagged variant: vehicle fields cannot be
# expressed for any other category.
ListingAttributes = Annotated[
    Union[VehicleAttributes, RealEstateAttributes, ItemAttributes, ServiceAttributes],
    Field(discriminator="category"),
]

Price = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]


class ListingCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(default="", max_length=10_000)
    image_url: str | None = Field(default=None, max_length=500)
    price: Price
    attributes: ListingAttributes
    shop_id: str | None = None


class ListingUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = Field(default=None, max_length=10_000)
    image_url: str | None = Field(default=None, max_length=500)
    price: Price | None = None
    attributes: ListingAttributes | None = None


class StatusChange(BaseModel):
    # "sold" is reachable only through purchase
    status: Literal["active", "passive", "out_of_stock"]


class TransferIn(BaseModel):
    shop_id: str = Field(max_length=100)


class BoostIn(BaseModel):
    option: Literal["24h", "7d"]


class ListingOut(BaseModel):
    id: str
    owner_id: str
    shop_id: str | None
    title: str
    description: str
    image_url: str | None
    price: Decimal
    status: str
    view_count: int
    boosted_until: datetime | None
    is_boosted: bool
    attributes: ListingAttributes
    created_at: datetime | None
    updated_at: datetime | None


class PermissionsOut(BaseModel):
    can_view: bool
    can_edit: bool
    can_transfer: bool
    can_purchase: bool
    purchase_denial: str | None
