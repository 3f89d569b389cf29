# Repository Layer — Data Access (Repository Pattern, GoF)
from garmentflow.repositories.base import BaseRepository
from garmentflow.repositories.material_repository import MaterialColorVariantRepository, MaterialTransactionRepository
from garmentflow.repositories.production_batch_repository import ProductionBatchRepository, BatchTimelineRepository
from garmentflow.repositories.stage_task_repository import StageTaskRepository, CuttingResultRepository
from garmentflow.repositories.sub_batch_repository import SubBatchRepository, SubBatchTimelineRepository
from garmentflow.repositories.finished_good_repository import FinishedGoodRepository
from garmentflow.repositories.audit_log_repository import AuditLogRepository

__all__ = [
    "BaseRepository",
    "MaterialColorVariantRepository",
    "MaterialTransactionRepository",
    "ProductionBatchRepository",
    "BatchTimelineRepository",
    "StageTaskRepository",
    "CuttingResultRepository",
    "SubBatchRepository",
    "SubBatchTimelineRepository",
    "FinishedGoodRepository",
    "AuditLogRepository",
]
