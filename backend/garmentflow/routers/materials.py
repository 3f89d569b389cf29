"""
Materials Router — stock ledger endpoints (Thin Controller)
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from garmentflow.core.state_machine import TransactionType
from garmentflow.database import get_db
from garmentflow.dependencies import get_current_user
from garmentflow.models.user import User
from garmentflow.schemas.material import (
    MaterialColorVariantResponse,
    MaterialTransactionResponse,
    StockReconciliationResponse,
    StockTransactionRequest,
    StockTransactionResponse,
)
from garmentflow.services.stock_ledger_service import StockLedgerService

router = APIRouter(prefix="/materials", tags=["Materials"])


def get_stock_ledger_service(db: Session = Depends(get_db)) -> StockLedgerService:
    return StockLedgerService(db)


@router.get("/variants", response_model=List[MaterialColorVariantResponse])
def list_variants(
    material_id: Optional[str] = None,
    below_minimum: bool = False,
    service: StockLedgerService = Depends(get_stock_ledger_service),
    current_user: User = Depends(get_current_user),
):
    return service.list_variants(current_user, material_id=material_id, below_minimum=below_minimum)


@router.get("/variants/{variant_id}", response_model=MaterialColorVariantResponse)
def get_variant(
    variant_id: str,
    service: StockLedgerService = Depends(get_stock_ledger_service),
    current_user: User = Depends(get_current_user),
):
    return service.view_variant(variant_id, current_user)


@router.post("/variants/{variant_id}/transactions", response_model=StockTransactionResponse, status_code=201)
def record_transaction(
    variant_id: str,
    body: StockTransactionRequest,
    service: StockLedgerService = Depends(get_stock_ledger_service),
    current_user: User = Depends(get_current_user),
):
    movement = service.record_transaction(variant_id, body, current_user)
    return StockTransactionResponse(
        new_stock=movement.new_stock,
        variant=MaterialColorVariantResponse.model_validate(movement.variant),
        transaction=MaterialTransactionResponse.model_validate(movement.transaction),
    )


@router.get("/transactions", response_model=List[MaterialTransactionResponse])
def list_transactions(
    variant_id: Optional[str] = None,
    batch_id: Optional[str] = None,
    type: Optional[TransactionType] = None,
    service: StockLedgerService = Depends(get_stock_ledger_service),
    current_user: User = Depends(get_current_user),
):
    return service.list_transactions(
        current_user,
        variant_id=variant_id,
        batch_id=batch_id,
        transaction_type=type.value if type else None,
    )


@router.get("/variants/{variant_id}/reconciliation", response_model=StockReconciliationResponse)
def reconcile_variant(
    variant_id: str,
    service: StockLedgerService = Depends(get_stock_ledger_service),
    current_user: User = Depends(get_current_user),
):
    return service.reconcile_variant(variant_id, current_user)
