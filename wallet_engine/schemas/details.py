"""
Per-category detail payloads for wallet operations.

Every audit entry stores a `details` payload. Rather than accept free-form
JSON, each category has its own model and the models are joined into a
discriminated union on `category`, so an airtime purchase can't arrive
without a phone number and a deposit can't carry a meter number.

Purchase categories also name their dedup target: the thing that makes two
purchases "the same purchase" (the phone being topped up, the meter being
credited, the order being paid for).
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class AirtimePurchaseDetails(BaseModel):
    category: Literal["airtime"] = "airtime"
    phone_number: str = Field(min_length=7, max_length=20)
    network: str = Field(min_length=2, max_length=20, description="e.g. MTN, GLO, AIRTEL, 9MOBILE")

    @property
    def dedup_target(self) -> str:
        return self.phone_number


class DataPurchaseDetails(BaseModel):
    category: Literal["data"] = "data"
    phone_number: str = Field(min_length=7, max_length=20)
    network: str = Field(min_length=2, max_length=20)
    plan_code: str = Field(min_length=1, max_length=50)

    @property
    def dedup_target(self) -> str:
        return f"{self.phone_number}:{self.plan_code}"


class ElectricityPurchaseDetails(BaseModel):
    category: Literal["electricity"] = "electricity"
    meter_number: str = Field(min_length=6, max_length=20)
    disco: str = Field(min_length=2, max_length=50, description="Distribution company, e.g. IKEDC")
    meter_type: Literal["prepaid", "postpaid"] = "prepaid"

    @property
    def dedup_target(self) -> str:
        return self.meter_number


class GoodsPurchaseDetails(BaseModel):
    category: Literal["goods"] = "goods"
    order_id: str = Field(min_length=1, max_length=64)
    item_count: int = Field(default=1, ge=1)

    @property
    def dedup_target(self) -> str:
        return self.order_id


class DepositDetails(BaseModel):
    category: Literal["deposit"] = "deposit"
    channel: str = Field(default="bank_transfer", max_length=30)
    payer_name: str | None = Field(default=None, max_length=200)


class RefundDetails(BaseModel):
    category: Literal["refund"] = "refund"
    original_category: str | None = Field(default=None, max_length=30)
    note: str | None = Field(default=None, max_length=255)


PurchaseDetails = Annotated[
    Union[
        AirtimePurchaseDetails,
        DataPurchaseDetails,
        ElectricityPurchaseDetails,
        GoodsPurchaseDetails,
    ],
    Field(discriminator="category"),
]

PURCHASE_CATEGORIES = ("airtime", "data", "electricity", "goods")
