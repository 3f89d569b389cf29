from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class SewingItemIn(BaseModel):
    product_size: str = Field(min_length=1, max_length=20)
    color: str = Field(min_length=1, max_length=100)
    quantity: int = Field(ge=0)


class SewingSubBatchCreate(BaseModel):
    items: List[SewingItemIn] = Field(min_length=1)
    notes: Optional[str] = None


class FinishingItemIn(BaseModel):
    product_size: str = Field(min_length=1, max_length=20)
    color: str = Field(min_length=1, max_length=100)
    good_quantity: int = Field(default=0, ge=0)
    reject_kotor: int = Field(default=0, ge=0)
    reject_sobek: int = Field(default=0, ge=0)
    reject_rusak_jahit: int = Field(default=0, ge=0)

    @property
    def total_quantity(self) -> int:
        return self.good_quantity + self.reject_kotor + self.reject_sobek + self.reject_rusak_jahit


class FinishingSubBatchCreate(BaseModel):
    items: List[FinishingItemIn] = Field(min_length=1)
    notes: Optional[str] = None


class SubBatchVerifyRequest(BaseModel):
    action: Literal["approve", "reject"]
    notes: Optional[str] = None


class ForwardToFinishingRequest(BaseModel):
    assigned_to_id: Optional[str] = None
    notes: Optional[str] = None


class WarehouseVerifyRequest(BaseModel):
    location: str
    notes: Optional[str] = None

    @field_validator("location")
    @classmethod
    def location_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("location must not be blank")
        return value


class SubBatchItemResponse(BaseModel):
    product_size: str
    color: str
    good_quantity: int
    reject_kotor: int
    reject_sobek: int
    reject_rusak_jahit: int

    class Config:
        from_attributes = True


class SubBatchTimelineResponse(BaseModel):
    event: str
    details: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SubBatchResponse(BaseModel):
    id: str
    sub_batch_sku: str
    batch_id: str
    source: str
    status: str
    stage_task_id: str
    sewing_output: int
    finishing_good_output: int
    reject_kotor: int
    reject_sobek: int
    reject_rusak_jahit: int
    total_quantity: int
    notes: Optional[str] = None
    created_by_id: str
    verified_by_prod_at: Optional[datetime] = None
    forwarded_at: Optional[datetime] = None
    submitted_to_warehouse_at: Optional[datetime] = None
    warehouse_verified_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    items: List[SubBatchItemResponse] = Field(default_factory=list)
    timeline: List[SubBatchTimelineResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class SubBatchRejectionResponse(BaseModel):
    deleted: bool = True
    sub_batch_id: str
    sub_batch_sku: str
    total_quantity: int


class FinishedGoodResponse(BaseModel):
    id: str
    batch_id: str
    product_id: str
    sub_batch_id: str
    type: str
    quantity: int
    location: str
    notes: Optional[str] = None
    verified_by_id: str
    verified_at: datetime

    class Config:
        from_attributes = True


class WarehouseVerificationResponse(BaseModel):
    sub_batch: SubBatchResponse
    finished_goods: List[FinishedGoodResponse]
