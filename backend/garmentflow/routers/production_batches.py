"""
Production Batches Router — Thin Controller

Batch lifecycle, material confirmation, stage assignment and the sub-batch
endpoints scoped to one batch.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from garmentflow.core.state_machine import BatchStatus, Stage, SubBatchSource
from garmentflow.database import get_db
from garmentflow.dependencies import get_current_user
from garmentflow.models.user import User
from garmentflow.schemas.production_batch import (
    AssignTaskRequest,
    BatchCompletionResponse,
    BatchReconciliationResponse,
    BatchTimelineResponse,
    ProductionBatchCreate,
    ProductionBatchListResponse,
    ProductionBatchResponse,
    ProductionStatisticsResponse,
)
from garmentflow.schemas.stage_task import CuttingResultResponse, StageTaskResponse
from garmentflow.schemas.sub_batch import FinishingSubBatchCreate, SewingSubBatchCreate, SubBatchResponse
from garmentflow.services.material_allocation_service import MaterialAllocationService
from garmentflow.services.production_batch_service import ProductionBatchService
from garmentflow.services.stage_task_service import StageTaskService
from garmentflow.services.sub_batch_service import SubBatchService

router = APIRouter(prefix="/production-batches", tags=["Production Batches"])


def get_batch_service(db: Session = Depends(get_db)) -> ProductionBatchService:
    return ProductionBatchService(db)


def get_allocation_service(db: Session = Depends(get_db)) -> MaterialAllocationService:
    return MaterialAllocationService(db)


def get_sub_batch_service(db: Session = Depends(get_db)) -> SubBatchService:
    return SubBatchService(db)


def get_stage_service(stage: Stage):
    def _factory(db: Session = Depends(get_db)) -> StageTaskService:
        return StageTaskService(db, stage)

    return _factory


@router.post("", response_model=ProductionBatchResponse, status_code=201)
def create_batch(
    body: ProductionBatchCreate,
    service: ProductionBatchService = Depends(get_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.create_batch(body, current_user)


@router.get("", response_model=ProductionBatchListResponse)
def list_batches(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[BatchStatus] = None,
    product_id: Optional[str] = None,
    include_archived: bool = False,
    service: ProductionBatchService = Depends(get_batch_service),
    current_user: User = Depends(get_current_user),
):
    items, total = service.list_batches(
        current_user,
        status=status.value if status else None,
        product_id=product_id,
        include_archived=include_archived,
        page=page,
        page_size=page_size,
    )
    return ProductionBatchListResponse(
        items=[ProductionBatchResponse.model_validate(b) for b in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/statistics", response_model=ProductionStatisticsResponse)
def production_statistics(
    service: ProductionBatchService = Depends(get_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.statistics(current_user)


@router.get("/{batch_id}", response_model=ProductionBatchResponse)
def get_batch(
    batch_id: str,
    service: ProductionBatchService = Depends(get_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.get_batch(batch_id, current_user)


@router.get("/{batch_id}/timeline", response_model=List[BatchTimelineResponse])
def get_timeline(
    batch_id: str,
    service: ProductionBatchService = Depends(get_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.get_timeline(batch_id, current_user)


@router.post("/{batch_id}/confirm", response_model=ProductionBatchResponse)
def confirm_materials(
    batch_id: str,
    service: MaterialAllocationService = Depends(get_allocation_service),
    current_user: User = Depends(get_current_user),
):
    return service.confirm(batch_id, current_user)


@router.post("/{batch_id}/assign-cutter", response_model=StageTaskResponse, status_code=201)
def assign_cutter(
    batch_id: str,
    body: AssignTaskRequest,
    service: StageTaskService = Depends(get_stage_service(Stage.CUTTING)),
    current_user: User = Depends(get_current_user),
):
    return service.assign(batch_id, body.assigned_to_id, current_user, notes=body.notes)


@router.post("/{batch_id}/assign-sewer", response_model=StageTaskResponse, status_code=201)
def assign_sewer(
    batch_id: str,
    body: AssignTaskRequest,
    service: StageTaskService = Depends(get_stage_service(Stage.SEWING)),
    current_user: User = Depends(get_current_user),
):
    return service.assign(batch_id, body.assigned_to_id, current_user, notes=body.notes)


@router.post("/{batch_id}/assign-finisher", response_model=StageTaskResponse, status_code=201)
def assign_finisher(
    batch_id: str,
    body: AssignTaskRequest,
    service: StageTaskService = Depends(get_stage_service(Stage.FINISHING)),
    current_user: User = Depends(get_current_user),
):
    return service.assign(batch_id, body.assigned_to_id, current_user, notes=body.notes)


@router.get("/{batch_id}/cutting-results", response_model=List[CuttingResultResponse])
def list_cutting_results(
    batch_id: str,
    service: StageTaskService = Depends(get_stage_service(Stage.CUTTING)),
    current_user: User = Depends(get_current_user),
):
    return service.list_cutting_results(batch_id, current_user)


@router.post("/{batch_id}/sewing-results", response_model=SubBatchResponse, status_code=201)
def create_sewing_sub_batch(
    batch_id: str,
    body: SewingSubBatchCreate,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.create_sewing_sub_batch(batch_id, body, current_user)


@router.post("/{batch_id}/finishing-results", response_model=SubBatchResponse, status_code=201)
def create_finishing_sub_batch(
    batch_id: str,
    body: FinishingSubBatchCreate,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.create_finishing_sub_batch(batch_id, body, current_user)


@router.get("/{batch_id}/sub-batches", response_model=List[SubBatchResponse])
def list_batch_sub_batches(
    batch_id: str,
    source: Optional[SubBatchSource] = None,
    service: SubBatchService = Depends(get_sub_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.list_sub_batches(current_user, batch_id=batch_id, source=source.value if source else None)


@router.post("/{batch_id}/complete", response_model=BatchCompletionResponse)
def complete_batch(
    batch_id: str,
    service: ProductionBatchService = Depends(get_batch_service),
    current_user: User = Depends(get_current_user),
):
    batch, summary = service.complete_batch(batch_id, current_user)
    return BatchCompletionResponse(batch=ProductionBatchResponse.model_validate(batch), summary=summary)


@router.get("/{batch_id}/reconciliation", response_model=BatchReconciliationResponse)
def reconcile_batch(
    batch_id: str,
    service: ProductionBatchService = Depends(get_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.reconciliation_report(batch_id, current_user)


@router.post("/{batch_id}/archive", response_model=ProductionBatchResponse)
def archive_batch(
    batch_id: str,
    service: ProductionBatchService = Depends(get_batch_service),
    current_user: User = Depends(get_current_user),
):
    return service.archive_batch(batch_id, current_user)
