from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class PurchaseIn(BaseModel):
    # the price the buyer saw; a stale value fails with PriceMismatch
    expected_price: Decimal = Field(ge=0, max_digits=14, decimal_places=2)


class ReceiptOut(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_account_id: str
    seller_account_type: str
    price: Decimal
    purchased_at: datetime
