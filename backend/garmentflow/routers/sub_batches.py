"""
Sub-Batches Router — production check, hand-over and warehouse verification
"""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from garmentflow.core.state_machine import SubBatchSource, SubBatchStatus
from garmentflow.database import get_db
from garmentflow.dependencies import get_current_user
from garmentflow.models.user import User
from garmentflow.schemas.sub_batch import (
    FinishedGoodResponse,
    FinishingSubBatchCreate,
    ForwardToFinishingRequest,
    SubBatchRejectionResponse,
    SubBatchResponse,
    SubBatchVerifyRequest,
    WarehouseVerificationResponse,
    WarehouseVerifyRequest,
)
from garmentflow.services.sub_batch_service import SubBatchService

router = APIRouter(prefix="/sub-batches", tags=["Sub-Batches"])


def get_sub_batch_service(db: Session = Depends(get_db)) -> SubBatchService:
    return SubBatchService(db)


@router.get("", response_model=List[SubBatchResponse])
def list_sub_batches(
    batch_id: Optional[str] = None,
    source: Optional[SubBatchSource] = None,
    status: Optional[SubBatchStatus] = None,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.list_sub_batches(
        current_user,
        batch_id=batch_id,
        source=source.value if source else None,
        status=status.value if status else None,
    )


@router.get("/{sub_batch_id}", response_model=SubBatchResponse)
def get_sub_batch(
    sub_batch_id: str,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.get(sub_batch_id, current_user)


@router.post("/{sub_batch_id}/verify", response_model=Union[SubBatchResponse, SubBatchRejectionResponse])
def verify_sub_batch(
    sub_batch_id: str,
    body: SubBatchVerifyRequest,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    result = service.verify(sub_batch_id, body, current_user)
    if isinstance(result, SubBatchRejectionResponse):
        return result
    return SubBatchResponse.model_validate(result)


@router.post("/{sub_batch_id}/forward-to-finishing", response_model=SubBatchResponse)
def forward_to_finishing(
    sub_batch_id: str,
    body: ForwardToFinishingRequest,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.forward_to_finishing(sub_batch_id, body, current_user)


@router.put("/{sub_batch_id}/finishing-items", response_model=SubBatchResponse)
def update_finishing_items(
    sub_batch_id: str,
    body: FinishingSubBatchCreate,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.update_finishing_items(sub_batch_id, body, current_user)


@router.post("/{sub_batch_id}/verify-warehouse", response_model=WarehouseVerificationResponse)
def verify_warehouse(
    sub_batch_id: str,
    body: WarehouseVerifyRequest,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    sub_batch, goods = service.verify_warehouse(sub_batch_id, body, current_user)
    return WarehouseVerificationResponse(
        sub_batch=SubBatchResponse.model_validate(sub_batch),
        finished_goods=[FinishedGoodResponse.model_validate(g) for g in goods],
    )
