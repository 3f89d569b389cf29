import random
from decimal import Decimal

import pytest

from garmentflow.core.exceptions import (
    AuthorizationException,
    BelowMinimumStockException,
    EntityNotFoundException,
    InsufficientStockException,
    ValidationException,
)
from garmentflow.core.state_machine import TransactionType
from garmentflow.models.material import MaterialTransaction
from garmentflow.schemas.material import StockTransactionRequest
from garmentflow.services.stock_ledger_service import StockLedgerService


def _request(tx_type: str, quantity: str, **extra) -> StockTransactionRequest:
    return StockTransactionRequest.model_validate({"type": tx_type, "quantity": quantity, **extra})


def test_in_adds_stock_and_records_transaction(db, variant, warehouse_head):
    service = StockLedgerService(db)
    movement = service.record_transaction(variant.id, _request("IN", "25"), warehouse_head)

    assert movement.new_stock == Decimal("175")
    row = movement.transaction
    assert row.type == "IN"
    assert Decimal(str(row.stock_before)) == Decimal("150")
    assert Decimal(str(row.stock_after)) == Decimal("175")
    assert row.user_id == warehouse_head.id


def test_in_applies_purchase_metadata(db, variant, warehouse_head):
    service = StockLedgerService(db)
    service.record_transaction(
        variant.id,
        _request("IN", "40", roll_quantity="2", meter_per_roll="20", supplier="PT Tekstil", purchase_order_number="PO-9"),
        warehouse_head,
    )
    db.refresh(variant)

    assert variant.supplier == "PT Tekstil"
    assert variant.purchase_order_number == "PO-9"
    assert Decimal(str(variant.roll_quantity)) == Decimal("2")


def test_out_subtracts(db, variant, owner):
    movement = StockLedgerService(db).record_transaction(variant.id, _request("OUT", "30"), owner)
    assert movement.new_stock == Decimal("120")


def test_out_beyond_stock_fails_and_writes_nothing(db, variant, warehouse_head):
    with pytest.raises(InsufficientStockException):
        StockLedgerService(db).record_transaction(variant.id, _request("OUT", "151"), warehouse_head)

    db.refresh(variant)
    assert Decimal(str(variant.stock)) == Decimal("150")
    assert db.query(MaterialTransaction).count() == 0


def test_apply_out_respects_floor(db, variant, warehouse_head):
    service = StockLedgerService(db)
    with pytest.raises(BelowMinimumStockException):
        service.apply(variant.id, TransactionType.OUT, Decimal("140"), user_id=warehouse_head.id, floor=Decimal("20"))
    db.rollback()

    db.refresh(variant)
    assert Decimal(str(variant.stock)) == Decimal("150")


def test_adjustment_sets_absolute_stock(db, variant, warehouse_head):
    service = StockLedgerService(db)
    movement = service.record_transaction(variant.id, _request("ADJUSTMENT", "42.5"), warehouse_head)
    assert movement.new_stock == Decimal("42.5")

    movement = service.record_transaction(variant.id, _request("ADJUSTMENT", "0"), warehouse_head)
    assert movement.new_stock == Decimal("0")


def test_return_adds_stock(db, variant, warehouse_head):
    movement = StockLedgerService(db).record_transaction(variant.id, _request("RETURN", "5"), warehouse_head)
    assert movement.new_stock == Decimal("155")


def test_zero_quantity_rejected_for_movements(db, variant, warehouse_head):
    with pytest.raises(ValidationException):
        StockLedgerService(db).record_transaction(variant.id, _request("IN", "0"), warehouse_head)


def test_unknown_variant(db, warehouse_head):
    with pytest.raises(EntityNotFoundException):
        StockLedgerService(db).record_transaction("missing", _request("IN", "1"), warehouse_head)


def test_workers_cannot_move_stock(db, variant, cutter):
    with pytest.raises(AuthorizationException):
        StockLedgerService(db).record_transaction(variant.id, _request("IN", "1"), cutter)


def test_replay_matches_stored_stock(db, variant, warehouse_head):
    service = StockLedgerService(db)
    service.record_transaction(variant.id, _request("IN", "50"), warehouse_head)
    service.record_transaction(variant.id, _request("OUT", "70"), warehouse_head)
    service.record_transaction(variant.id, _request("ADJUSTMENT", "100"), warehouse_head)
    service.record_transaction(variant.id, _request("RETURN", "3"), warehouse_head)

    result = service.reconcile_variant(variant.id, warehouse_head)
    assert result.consistent is True
    assert result.transaction_count == 4
    assert result.replayed_stock == Decimal("103")
    assert result.broken_links == []


def test_relative_movement_takes_before_from_written_stock(db, variant, warehouse_head, monkeypatch):
    service = StockLedgerService(db)
    increment = service._variants.increment_stock

    def after_another_receipt(variant_id, quantity):
        increment(variant_id, Decimal("10"))
        return increment(variant_id, quantity)

    monkeypatch.setattr(service._variants, "increment_stock", after_another_receipt)
    row = service.record_transaction(variant.id, _request("IN", "25"), warehouse_head).transaction

    assert Decimal(str(row.stock_before)) == Decimal("160")
    assert Decimal(str(row.stock_after)) == Decimal("185")


def test_transactions_chain_before_and_after(db, variant, warehouse_head):
    service = StockLedgerService(db)
    for tx_type, quantity in (("IN", "20"), ("OUT", "45"), ("RETURN", "5"), ("OUT", "10")):
        service.record_transaction(variant.id, _request(tx_type, quantity), warehouse_head)

    rows = service.list_transactions(warehouse_head, variant_id=variant.id)
    links = sorted((int(Decimal(str(r.stock_before))), int(Decimal(str(r.stock_after)))) for r in rows)
    assert links == [(125, 130), (130, 120), (150, 170), (170, 125)]


@pytest.mark.parametrize("seed", range(6))
def test_random_movements_never_drive_stock_negative(db, variant, warehouse_head, seed):
    rng = random.Random(seed)
    service = StockLedgerService(db)
    expected = Decimal("150")

    for _ in range(15):
        tx_type = rng.choice(["IN", "OUT", "OUT", "RETURN"])
        quantity = Decimal(rng.randint(1, 120))
        if tx_type == "OUT" and quantity > expected:
            with pytest.raises(InsufficientStockException):
                service.record_transaction(variant.id, _request("OUT", str(quantity)), warehouse_head)
        else:
            service.record_transaction(variant.id, _request(tx_type, str(quantity)), warehouse_head)
            expected += -quantity if tx_type == "OUT" else quantity

        db.refresh(variant)
        stock = Decimal(str(variant.stock))
        assert stock == expected
        assert stock >= 0
