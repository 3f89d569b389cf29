"""
Stage Task Routers — one router per stage, built by build_stage_router().
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from garmentflow.core.state_machine import Stage, TaskStatus
from garmentflow.database import get_db
from garmentflow.dependencies import get_current_user
from garmentflow.models.user import User
from garmentflow.schemas.stage_task import (
    CuttingProgressRequest,
    CuttingResultResponse,
    StageTaskResponse,
    TaskNotesRequest,
    VerifyRequest,
)
from garmentflow.services.stage_task_service import StageTaskService


def build_stage_router(stage: Stage) -> APIRouter:
    slug = stage.value.lower()
    router = APIRouter(prefix=f"/{slug}-tasks", tags=[f"{stage.value.title()} Tasks"])

    def get_service(db: Session = Depends(get_db)) -> StageTaskService:
        return StageTaskService(db, stage)

    @router.get("/me", response_model=List[StageTaskResponse])
    def my_tasks(
        status: Optional[TaskStatus] = None,
        service: StageTaskService = Depends(get_service),
        current_user: User = Depends(get_current_user),
    ):
        return service.list_my_tasks(current_user, status=status.value if status else None)

    @router.get("/by-batch/{batch_id}", response_model=StageTaskResponse)
    def task_for_batch(
        batch_id: str,
        service: StageTaskService = Depends(get_service),
        current_user: User = Depends(get_current_user),
    ):
        return service.get_for_batch(batch_id, current_user)

    @router.get("/{task_id}", response_model=StageTaskResponse)
    def get_task(
        task_id: str,
        service: StageTaskService = Depends(get_service),
        current_user: User = Depends(get_current_user),
    ):
        return service.get_task(task_id, current_user)

    @router.post("/{task_id}/start", response_model=StageTaskResponse)
    def start_task(
        task_id: str,
        body: Optional[TaskNotesRequest] = None,
        service: StageTaskService = Depends(get_service),
        current_user: User = Depends(get_current_user),
    ):
        return service.start(task_id, current_user, notes=body.notes if body else None)

    @router.post("/{task_id}/complete", response_model=StageTaskResponse)
    def complete_task(
        task_id: str,
        body: Optional[TaskNotesRequest] = None,
        service: StageTaskService = Depends(get_service),
        current_user: User = Depends(get_current_user),
    ):
        return service.complete(task_id, current_user, notes=body.notes if body else None)

    @router.post("/{task_id}/verify", response_model=StageTaskResponse)
    def verify_task(
        task_id: str,
        body: VerifyRequest,
        service: StageTaskService = Depends(get_service),
        current_user: User = Depends(get_current_user),
    ):
        return service.verify(task_id, body, current_user)

    if stage == Stage.CUTTING:

        @router.put("/{task_id}/progress", response_model=StageTaskResponse)
        def record_progress(
            task_id: str,
            body: CuttingProgressRequest,
            service: StageTaskService = Depends(get_service),
            current_user: User = Depends(get_current_user),
        ):
            return service.record_cutting_progress(task_id, body, current_user)

        @router.post("/results/{result_id}/confirm", response_model=CuttingResultResponse)
        def confirm_result(
            result_id: str,
            service: StageTaskService = Depends(get_service),
            current_user: User = Depends(get_current_user),
        ):
            return service.confirm_cutting_result(result_id, current_user)

    return router


cutting_router = build_stage_router(Stage.CUTTING)
sewing_router = build_stage_router(Stage.SEWING)
finishing_router = build_stage_router(Stage.FINISHING)
