from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class StageTaskResponse(BaseModel):
    id: str
    batch_id: str
    stage: str
    assigned_to_id: str
    status: str
    pieces_received: int
    pieces_completed: int
    reject_pieces: int
    waste_qty: Optional[Decimal] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    verified_by_id: Optional[str] = None

    class Config:
        from_attributes = True


class CuttingResultIn(BaseModel):
    product_size: str = Field(min_length=1, max_length=20)
    color: str = Field(min_length=1, max_length=100)
    actual_pieces: int = Field(ge=0)


class CuttingProgressRequest(BaseModel):
    results: List[CuttingResultIn] = Field(min_length=1)
    reject_pieces: int = Field(default=0, ge=0)
    waste_qty: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class CuttingResultResponse(BaseModel):
    id: str
    batch_id: str
    product_size: str
    color: str
    actual_pieces: int
    is_confirmed: bool
    confirmed_by_id: Optional[str] = None
    confirmed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaskNotesRequest(BaseModel):
    notes: Optional[str] = None


class VerifyRequest(BaseModel):
    action: Literal["approve", "reject"]
    notes: Optional[str] = None
