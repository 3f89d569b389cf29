from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from garmentflow.core.state_machine import TransactionType


class StockTransactionRequest(BaseModel):
    type: TransactionType = Field(
        description="IN/RETURN add, OUT subtracts, ADJUSTMENT sets stock to the absolute quantity (not a delta).",
    )
    quantity: Decimal = Field(ge=0)
    batch_id: Optional[str] = None
    notes: Optional[str] = None
    # Purchase metadata, applied to the variant on IN only.
    roll_quantity: Optional[Decimal] = Field(default=None, ge=0)
    meter_per_roll: Optional[Decimal] = Field(default=None, ge=0)
    purchase_order_number: Optional[str] = None
    supplier: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_notes: Optional[str] = None


class MaterialColorVariantResponse(BaseModel):
    id: str
    material_id: str
    color_name: str
    color_code: Optional[str] = None
    stock: Decimal
    minimum_stock: Decimal
    unit: str
    roll_quantity: Optional[Decimal] = None
    meter_per_roll: Optional[Decimal] = None
    purchase_order_number: Optional[str] = None
    supplier: Optional[str] = None
    purchase_date: Optional[date] = None

    class Config:
        from_attributes = True


class MaterialTransactionResponse(BaseModel):
    id: str
    material_id: str
    material_color_variant_id: str
    type: str
    quantity: Decimal
    unit: str
    stock_before: Decimal
    stock_after: Decimal
    batch_id: Optional[str] = None
    user_id: str
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StockTransactionResponse(BaseModel):
    new_stock: Decimal
    variant: MaterialColorVariantResponse
    transaction: MaterialTransactionResponse


class StockReconciliationResponse(BaseModel):
    variant_id: str
    stored_stock: Decimal
    replayed_stock: Decimal
    transaction_count: int
    consistent: bool
    broken_links: List[str] = Field(default_factory=list)
