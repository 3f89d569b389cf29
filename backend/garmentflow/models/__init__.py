from garmentflow.models.user import User
from garmentflow.models.product import Product
from garmentflow.models.material import Material, MaterialColorVariant, MaterialTransaction
from garmentflow.models.production_batch import (
    ProductionBatch,
    BatchMaterialColorAllocation,
    SizeColorRequest,
    BatchTimeline,
)
from garmentflow.models.stage_task import StageTask, CuttingTask, SewingTask, FinishingTask, CuttingResult
from garmentflow.models.sub_batch import SubBatch, SubBatchItem, SubBatchTimeline
from garmentflow.models.finished_good import FinishedGood
from garmentflow.models.notification import Notification
from garmentflow.models.audit_log import AuditLog

__all__ = [
    "User",
    "Product",
    "Material",
    "MaterialColorVariant",
    "MaterialTransaction",
    "ProductionBatch",
    "BatchMaterialColorAllocation",
    "SizeColorRequest",
    "BatchTimeline",
    "StageTask",
    "CuttingTask",
    "SewingTask",
    "FinishingTask",
    "CuttingResult",
    "SubBatch",
    "SubBatchItem",
    "SubBatchTimeline",
    "FinishedGood",
    "Notification",
    "AuditLog",
]
