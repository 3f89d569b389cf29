"""
Integration Tests — Production Batch Workflow Endpoints

Tests:
- POST/GET /api/v1/production-batches
- Material confirmation and stage assignment
- Full flow: cutting -> sewing deliveries -> finishing -> warehouse -> complete
- Completion gate, archival, reconciliation and statistics
"""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from garmentflow.core.state_machine import Role

BASE = "/api/v1/production-batches"


@pytest.fixture
def batch_payload(product, variant):
    return {
        "product_id": product.id,
        "size_color_requests": [{"product_size": "M", "color": "Red", "requested_pieces": 80}],
        "material_allocations": [{"material_color_variant_id": variant.id, "allocated_qty": "100"}],
    }


@pytest.fixture
def created_batch(client: TestClient, headers, batch_payload):
    resp = client.post(BASE, headers=headers[Role.KEPALA_PRODUKSI], json=batch_payload)
    assert resp.status_code == 201
    return resp.json()


def _ok(resp, status_code=200):
    assert resp.status_code == status_code, resp.text
    return resp.json()


class TestBatchCreation:
    def test_create_batch(self, created_batch):
        assert created_batch["status"] == "MATERIAL_REQUESTED"
        assert created_batch["batch_sku"].startswith("PROD-")
        assert created_batch["target_quantity"] == 80
        assert created_batch["material_allocations"][0]["status"] == "REQUESTED"

    def test_duplicate_size_colour_returns_422(self, client: TestClient, headers, batch_payload):
        batch_payload["size_color_requests"].append({"product_size": "M", "color": "Red", "requested_pieces": 5})
        resp = client.post(BASE, headers=headers[Role.OWNER], json=batch_payload)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_zero_pieces_rejected_by_schema(self, client: TestClient, headers, batch_payload):
        batch_payload["size_color_requests"][0]["requested_pieces"] = 0
        resp = client.post(BASE, headers=headers[Role.OWNER], json=batch_payload)
        assert resp.status_code == 422

    def test_worker_cannot_create(self, client: TestClient, headers, batch_payload):
        resp = client.post(BASE, headers=headers[Role.PEMOTONG], json=batch_payload)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    def test_list_and_get(self, client: TestClient, headers, created_batch):
        data = _ok(client.get(BASE, headers=headers[Role.KEPALA_GUDANG]))
        assert data["total"] == 1
        assert data["items"][0]["id"] == created_batch["id"]

        one = _ok(client.get(f"{BASE}/{created_batch['id']}", headers=headers[Role.OWNER]))
        assert one["batch_sku"] == created_batch["batch_sku"]

    def test_list_filters_by_status(self, client: TestClient, headers, created_batch):
        data = _ok(client.get(f"{BASE}?status=PENDING", headers=headers[Role.OWNER]))
        assert data["total"] == 0

    def test_get_missing_batch_returns_404(self, client: TestClient, headers):
        resp = client.get(f"{BASE}/missing", headers=headers[Role.OWNER])
        assert resp.status_code == 404


class TestMaterialConfirmation:
    def test_confirm_deducts_stock(self, client: TestClient, headers, created_batch, variant):
        data = _ok(client.post(f"{BASE}/{created_batch['id']}/confirm", headers=headers[Role.KEPALA_GUDANG]))
        assert data["status"] == "MATERIAL_ALLOCATED"
        assert Decimal(data["material_allocations"][0]["stock_at_allocation"]) == Decimal("150")

        stock = _ok(client.get(f"/api/v1/materials/variants/{variant.id}", headers=headers[Role.OWNER]))["stock"]
        assert Decimal(stock) == Decimal("50")

    def test_confirm_below_minimum_returns_409(self, client: TestClient, headers, batch_payload, variant):
        batch_payload["material_allocations"][0]["allocated_qty"] = "140"
        batch = _ok(client.post(BASE, headers=headers[Role.OWNER], json=batch_payload), 201)

        resp = client.post(f"{BASE}/{batch['id']}/confirm", headers=headers[Role.KEPALA_GUDANG])
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "BELOW_MINIMUM_STOCK"

    def test_confirm_twice_returns_409(self, client: TestClient, headers, created_batch):
        _ok(client.post(f"{BASE}/{created_batch['id']}/confirm", headers=headers[Role.KEPALA_GUDANG]))
        resp = client.post(f"{BASE}/{created_batch['id']}/confirm", headers=headers[Role.KEPALA_GUDANG])
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "INVALID_STATE"


class TestFullWorkflow:
    def test_batch_from_creation_to_completion(self, client: TestClient, headers, users, created_batch):
        head = headers[Role.KEPALA_PRODUKSI]
        batch_id = created_batch["id"]
        url = f"{BASE}/{batch_id}"

        _ok(client.post(f"{url}/confirm", headers=headers[Role.KEPALA_GUDANG]))

        # cutting
        cutting = _ok(
            client.post(f"{url}/assign-cutter", headers=head, json={"assigned_to_id": users[Role.PEMOTONG].id}), 201
        )
        assert cutting["pieces_received"] == 80
        cutter = headers[Role.PEMOTONG]
        _ok(client.post(f"/api/v1/cutting-tasks/{cutting['id']}/start", headers=cutter))
        progress = _ok(
            client.put(
                f"/api/v1/cutting-tasks/{cutting['id']}/progress",
                headers=cutter,
                json={"results": [{"product_size": "M", "color": "Red", "actual_pieces": 80}]},
            )
        )
        assert progress["pieces_completed"] == 80
        _ok(client.post(f"/api/v1/cutting-tasks/{cutting['id']}/complete", headers=cutter))
        verified = _ok(
            client.post(f"/api/v1/cutting-tasks/{cutting['id']}/verify", headers=head, json={"action": "approve"})
        )
        assert verified["status"] == "VERIFIED"
        assert _ok(client.get(url, headers=head))["status"] == "CUTTING_VERIFIED"

        # sewing, two deliveries
        sewing = _ok(
            client.post(f"{url}/assign-sewer", headers=head, json={"assigned_to_id": users[Role.PENJAHIT].id}), 201
        )
        sewer = headers[Role.PENJAHIT]
        _ok(client.post(f"/api/v1/sewing-tasks/{sewing['id']}/start", headers=sewer))
        first = _ok(
            client.post(
                f"{url}/sewing-results",
                headers=sewer,
                json={"items": [{"product_size": "M", "color": "Red", "quantity": 50}]},
            ),
            201,
        )
        over = client.post(
            f"{url}/sewing-results", headers=sewer, json={"items": [{"product_size": "M", "color": "Red", "quantity": 40}]}
        )
        assert over.status_code == 409
        assert over.json()["error"]["code"] == "EXCEEDS_AVAILABLE"
        second = _ok(
            client.post(
                f"{url}/sewing-results",
                headers=sewer,
                json={"items": [{"product_size": "M", "color": "Red", "quantity": 30}]},
            ),
            201,
        )

        for sub_batch in (first, second):
            _ok(client.post(f"/api/v1/sub-batches/{sub_batch['id']}/verify", headers=head, json={"action": "approve"}))
        _ok(
            client.post(
                f"/api/v1/sub-batches/{first['id']}/forward-to-finishing",
                headers=head,
                json={"assigned_to_id": users[Role.FINISHING].id},
            )
        )
        _ok(client.post(f"/api/v1/sub-batches/{second['id']}/forward-to-finishing", headers=head, json={}))

        # finishing
        finisher = headers[Role.FINISHING]
        finishing = _ok(client.get(f"/api/v1/finishing-tasks/by-batch/{batch_id}", headers=head))
        assert finishing["pieces_received"] == 80
        _ok(client.post(f"/api/v1/finishing-tasks/{finishing['id']}/start", headers=finisher))
        delivery = _ok(
            client.post(
                f"{url}/finishing-results",
                headers=finisher,
                json={"items": [{"product_size": "M", "color": "Red", "good_quantity": 75, "reject_sobek": 5}]},
            ),
            201,
        )
        _ok(client.post(f"/api/v1/sub-batches/{delivery['id']}/verify", headers=head, json={"action": "approve"}))
        warehouse = _ok(
            client.post(
                f"/api/v1/sub-batches/{delivery['id']}/verify-warehouse",
                headers=headers[Role.KEPALA_GUDANG],
                json={"location": "Rak A-3"},
            )
        )
        assert warehouse["sub_batch"]["status"] == "WAREHOUSE_VERIFIED"
        assert sorted((g["type"], g["quantity"]) for g in warehouse["finished_goods"]) == [
            ("FINISHED", 75),
            ("REJECT", 5),
        ]

        _ok(client.post(f"/api/v1/finishing-tasks/{finishing['id']}/complete", headers=finisher))
        _ok(client.post(f"/api/v1/sewing-tasks/{sewing['id']}/complete", headers=sewer))

        batch = _ok(client.get(url, headers=head))
        assert batch["status"] == "WAREHOUSE_VERIFIED"
        assert batch["actual_quantity"] == 75
        assert batch["reject_quantity"] == 5

        report = _ok(client.get(f"{url}/reconciliation", headers=head))
        assert report["consistent"] is True

        completed = _ok(client.post(f"{url}/complete", headers=head))
        assert completed["batch"]["status"] == "COMPLETED"
        assert completed["summary"] == {
            "sub_batches_completed": 3,
            "actual_quantity": 75,
            "reject_quantity": 5,
            "sewing_pieces_completed": 80,
        }

        events = [t["event"] for t in _ok(client.get(f"{url}/timeline", headers=head))]
        assert events[0] == "BATCH_CREATED"
        assert events[-1] == "COMPLETED"


class TestBatchAdministration:
    def test_archive_requires_owner(self, client: TestClient, headers, created_batch):
        url = f"{BASE}/{created_batch['id']}/archive"
        assert client.post(url, headers=headers[Role.KEPALA_PRODUKSI]).status_code == 403

        data = _ok(client.post(url, headers=headers[Role.OWNER]))
        assert data["archived_at"] is not None
        assert _ok(client.get(BASE, headers=headers[Role.OWNER]))["total"] == 0

    def test_complete_before_sewing_returns_409(self, client: TestClient, headers, created_batch):
        resp = client.post(f"{BASE}/{created_batch['id']}/complete", headers=headers[Role.KEPALA_PRODUKSI])
        assert resp.status_code == 409

    def test_statistics(self, client: TestClient, headers, created_batch):
        data = _ok(client.get(f"{BASE}/statistics", headers=headers[Role.KEPALA_GUDANG]))
        assert data["active_batches"] == 1
        assert data["batches_by_status"] == {"MATERIAL_REQUESTED": 1}

    def test_assign_wrong_role_returns_422(self, client: TestClient, headers, users, created_batch):
        url = f"{BASE}/{created_batch['id']}"
        _ok(client.post(f"{url}/confirm", headers=headers[Role.KEPALA_GUDANG]))
        resp = client.post(
            f"{url}/assign-cutter", headers=headers[Role.OWNER], json={"assigned_to_id": users[Role.PENJAHIT].id}
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "ROLE_MISMATCH"
