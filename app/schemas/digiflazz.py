from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class DigiflazzProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    product_name: str
    category: str
    brand: str
    product_type: str = Field(..., alias="type")
    seller_name: str
    price: int
    buyer_sku_code: str
    buyer_product_status: bool
    seller_product_status: bool
    unlimited_stock: bool
    stock: Optional[int] = None
    multi: Optional[bool] = None
    start_cut_off: Optional[str] = None
    end_cut_off: Optional[str] = None
    description: Optional[str] = None
    nominal: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SaldoOut(BaseModel):
    deposit: Decimal


class InquiryPlnRequest(BaseModel):
    customer_no: str = Field(..., min_length=1, max_length=32)


class TopupRequest(BaseModel):
    account_id: str = Field(..., min_length=1, max_length=64)
    buyer_sku_code: str = Field(..., min_length=1, max_length=64)
    customer_no: str = Field(..., min_length=1, max_length=64)
    # Length/digits are checked by the PIN authenticator so the error stays a 400.
    pin: str = Field(..., max_length=32)
    amount: Optional[Decimal] = None


class InquiryPascaRequest(BaseModel):
    buyer_sku_code: str = Field(..., min_length=1, max_length=64)
    customer_no: str = Field(..., min_length=1, max_length=64)
    account_id: Optional[str] = Field(default=None, max_length=64)
    amount: Optional[Decimal] = None


class PayPascaRequest(BaseModel):
    ref_id: Optional[str] = Field(default=None, max_length=64)
    account_id: str = Field(..., min_length=1, max_length=64)
    pin: str = Field(..., max_length=32)


class PpobTransactionOut(BaseModel):
    ref_id: str
    buyer_sku_code: str
    customer_no: str
    product_type: str
    status: str
    price: Optional[Decimal] = None
    amount_nominal: Optional[Decimal] = None
    rc: Optional[str] = None
    message: Optional[str] = None
    sn: Optional[str] = None
    reversed: bool = False
    data: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
