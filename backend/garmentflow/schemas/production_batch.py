from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SizeColorRequestIn(BaseModel):
    product_size: str = Field(min_length=1, max_length=20)
    color: str = Field(min_length=1, max_length=100)
    requested_pieces: int = Field(gt=0)


class MaterialAllocationIn(BaseModel):
    material_color_variant_id: str
    allocated_qty: Decimal = Field(gt=0)
    roll_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    meter_per_roll: Optional[Decimal] = Field(default=None, ge=0)


class ProductionBatchCreate(BaseModel):
    product_id: str
    notes: Optional[str] = None
    size_color_requests: List[SizeColorRequestIn] = Field(min_length=1)
    material_allocations: List[MaterialAllocationIn] = Field(default_factory=list)


class AssignTaskRequest(BaseModel):
    assigned_to_id: str
    notes: Optional[str] = None


class AllocationResponse(BaseModel):
    id: str
    material_color_variant_id: str
    status: str
    allocated_qty: Decimal
    roll_quantity: Decimal
    meter_per_roll: Optional[Decimal] = None
    stock_at_allocation: Optional[Decimal] = None
    roll_quantity_at_allocation: Optional[Decimal] = None
    allocated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SizeColorRequestResponse(BaseModel):
    product_size: str
    color: str
    requested_pieces: int

    class Config:
        from_attributes = True


class BatchTimelineResponse(BaseModel):
    id: str
    event: str
    details: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProductionBatchResponse(BaseModel):
    id: str
    batch_sku: str
    product_id: str
    status: str
    target_quantity: int
    actual_quantity: int
    reject_quantity: int
    total_rolls: Decimal
    notes: Optional[str] = None
    created_by_id: str
    start_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: datetime
    material_allocations: List[AllocationResponse] = Field(default_factory=list)
    size_color_requests: List[SizeColorRequestResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ProductionBatchListResponse(BaseModel):
    items: List[ProductionBatchResponse]
    total: int
    page: int
    page_size: int


class BatchCompletionSummary(BaseModel):
    sub_batches_completed: int
    actual_quantity: int
    reject_quantity: int
    sewing_pieces_completed: int


class BatchCompletionResponse(BaseModel):
    batch: ProductionBatchResponse
    summary: BatchCompletionSummary


class ReconciliationIssue(BaseModel):
    entity: str
    entity_id: str
    field: str
    stored: int
    derived: int


class BatchReconciliationResponse(BaseModel):
    batch_id: str
    consistent: bool
    issues: List[ReconciliationIssue] = Field(default_factory=list)


class PendingVerificationItem(BaseModel):
    task_id: str
    stage: str
    batch_id: str
    batch_sku: str
    assigned_to_id: str
    pieces_completed: int
    completed_at: Optional[datetime] = None


class ProductionStatisticsResponse(BaseModel):
    active_batches: int
    batches_by_status: Dict[str, int]
    pending_task_verifications: List[PendingVerificationItem]
    sub_batches_awaiting_production_check: int
    sub_batches_awaiting_warehouse_check: int
