from garmentflow.schemas.material import (
    StockTransactionRequest,
    MaterialColorVariantResponse,
    MaterialTransactionResponse,
    StockTransactionResponse,
    StockReconciliationResponse,
)
from garmentflow.schemas.production_batch import (
    SizeColorRequestIn,
    MaterialAllocationIn,
    ProductionBatchCreate,
    AssignTaskRequest,
    ProductionBatchResponse,
    ProductionBatchListResponse,
    BatchTimelineResponse,
    BatchCompletionResponse,
    BatchReconciliationResponse,
    ProductionStatisticsResponse,
)
from garmentflow.schemas.stage_task import (
    StageTaskResponse,
    CuttingResultIn,
    CuttingProgressRequest,
    CuttingResultResponse,
    TaskNotesRequest,
    VerifyRequest,
)
from garmentflow.schemas.sub_batch import (
    SewingItemIn,
    SewingSubBatchCreate,
    FinishingItemIn,
    FinishingSubBatchCreate,
    SubBatchVerifyRequest,
    ForwardToFinishingRequest,
    WarehouseVerifyRequest,
    SubBatchResponse,
    SubBatchRejectionResponse,
    FinishedGoodResponse,
    WarehouseVerificationResponse,
)
