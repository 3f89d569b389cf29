"""
Shared fixtures: an in-memory SQLite database, one user per role, a product
with one material colour variant, and a Workflow helper that drives a batch
through the stage services.
"""
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from garmentflow.core.state_machine import Role, Stage
from garmentflow.database import Base, get_db
from garmentflow.main import app
from garmentflow.models import Material, MaterialColorVariant, Product, User
from garmentflow.schemas.production_batch import MaterialAllocationIn, ProductionBatchCreate, SizeColorRequestIn
from garmentflow.schemas.stage_task import CuttingProgressRequest, CuttingResultIn, VerifyRequest
from garmentflow.schemas.sub_batch import (
    FinishingItemIn,
    FinishingSubBatchCreate,
    ForwardToFinishingRequest,
    SewingItemIn,
    SewingSubBatchCreate,
    SubBatchVerifyRequest,
)
from garmentflow.services.material_allocation_service import MaterialAllocationService
from garmentflow.services.production_batch_service import ProductionBatchService
from garmentflow.services.stage_task_service import StageTaskService
from garmentflow.services.sub_batch_service import SubBatchService
from garmentflow.utils.events import configure_event_bus
from garmentflow.utils.security import create_access_token

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    configure_event_bus(db_session_factory=TestingSessionLocal)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_user(db, username: str, role: Role) -> User:
    user = User(username=username, name=username.title(), role=role.value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def users(db) -> Dict[Role, User]:
    return {role: _create_user(db, role.value.lower(), role) for role in Role}


@pytest.fixture
def owner(users):
    return users[Role.OWNER]


@pytest.fixture
def production_head(users):
    return users[Role.KEPALA_PRODUKSI]


@pytest.fixture
def warehouse_head(users):
    return users[Role.KEPALA_GUDANG]


@pytest.fixture
def cutter(users):
    return users[Role.PEMOTONG]


@pytest.fixture
def sewer(users):
    return users[Role.PENJAHIT]


@pytest.fixture
def finisher(users):
    return users[Role.FINISHING]


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}


@pytest.fixture
def headers(users) -> Dict[Role, Dict[str, str]]:
    return {role: auth_headers(user) for role, user in users.items()}


@pytest.fixture
def product(db) -> Product:
    product = Product(sku="KMJ-001", name="Kemeja")
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def variant(db) -> MaterialColorVariant:
    material = Material(code="CTN-30S", name="Katun 30s", unit="METER")
    db.add(material)
    db.flush()
    variant = MaterialColorVariant(
        material_id=material.id,
        color_name="Red",
        stock=Decimal("150"),
        minimum_stock=Decimal("20"),
        unit="METER",
    )
    db.add(variant)
    db.commit()
    db.refresh(variant)
    return variant


class Workflow:
    """Drives one batch through the services the way the HTTP layer would."""

    def __init__(self, db, users: Dict[Role, User], product: Product, variant: MaterialColorVariant):
        self.db = db
        self.users = users
        self.product = product
        self.variant = variant
        self.batch = None

    @property
    def head(self) -> User:
        return self.users[Role.KEPALA_PRODUKSI]

    def stage(self, stage: Stage) -> StageTaskService:
        return StageTaskService(self.db, stage)

    def sub_batches(self) -> SubBatchService:
        return SubBatchService(self.db)

    def create_batch(
        self,
        requests: Optional[List[Tuple[str, str, int]]] = None,
        allocated_qty: Optional[str] = "100",
    ):
        requests = requests or [("M", "Red", 80)]
        body = ProductionBatchCreate(
            product_id=self.product.id,
            size_color_requests=[
                SizeColorRequestIn(product_size=s, color=c, requested_pieces=n) for s, c, n in requests
            ],
            material_allocations=(
                [MaterialAllocationIn(material_color_variant_id=self.variant.id, allocated_qty=Decimal(allocated_qty))]
                if allocated_qty
                else []
            ),
        )
        self.batch = ProductionBatchService(self.db).create_batch(body, self.head)
        return self.batch

    def allocate(self):
        return MaterialAllocationService(self.db).confirm(self.batch.id, self.users[Role.KEPALA_GUDANG])

    def cut(self, results: Optional[List[Tuple[str, str, int]]] = None, approve: bool = True):
        results = results or [("M", "Red", 80)]
        service = self.stage(Stage.CUTTING)
        cutter = self.users[Role.PEMOTONG]
        task = service.assign(self.batch.id, cutter.id, self.head)
        service.start(task.id, cutter)
        service.record_cutting_progress(
            task.id,
            CuttingProgressRequest(
                results=[CuttingResultIn(product_size=s, color=c, actual_pieces=n) for s, c, n in results]
            ),
            cutter,
        )
        service.complete(task.id, cutter)
        if approve:
            service.verify(task.id, VerifyRequest(action="approve"), self.head)
        return task

    def start_sewing(self):
        service = self.stage(Stage.SEWING)
        sewer = self.users[Role.PENJAHIT]
        task = service.assign(self.batch.id, sewer.id, self.head)
        return service.start(task.id, sewer)

    def sew(self, items: List[Tuple[str, str, int]]):
        body = SewingSubBatchCreate(
            items=[SewingItemIn(product_size=s, color=c, quantity=n) for s, c, n in items]
        )
        return self.sub_batches().create_sewing_sub_batch(self.batch.id, body, self.users[Role.PENJAHIT])

    def approve_and_forward(self, sub_batch):
        service = self.sub_batches()
        service.verify(sub_batch.id, SubBatchVerifyRequest(action="approve"), self.head)
        return service.forward_to_finishing(
            sub_batch.id,
            ForwardToFinishingRequest(assigned_to_id=self.users[Role.FINISHING].id),
            self.head,
        )

    def finishing_task(self):
        return self.stage(Stage.FINISHING).get_for_batch(self.batch.id, self.head)

    def start_finishing(self):
        task = self.finishing_task()
        return self.stage(Stage.FINISHING).start(task.id, self.users[Role.FINISHING])

    def finish(self, items: List[Tuple[str, str, int, int]]):
        """items: (size, colour, good, reject_sobek)"""
        body = FinishingSubBatchCreate(
            items=[
                FinishingItemIn(product_size=s, color=c, good_quantity=g, reject_sobek=r)
                for s, c, g, r in items
            ]
        )
        return self.sub_batches().create_finishing_sub_batch(self.batch.id, body, self.users[Role.FINISHING])

    def to_sewing(self, cut_pieces: int = 80):
        """Batch allocated, cut and verified, sewing task IN_PROGRESS."""
        self.create_batch(requests=[("M", "Red", cut_pieces)])
        self.allocate()
        self.cut(results=[("M", "Red", cut_pieces)])
        return self.start_sewing()

    def to_finishing(self, sewn: int = 50):
        """One approved sewing delivery forwarded, finishing task IN_PROGRESS."""
        self.to_sewing()
        sub_batch = self.sew([("M", "Red", sewn)])
        self.approve_and_forward(sub_batch)
        return self.start_finishing()

    def reload_batch(self):
        self.db.expire_all()
        return ProductionBatchService(self.db).get_batch(self.batch.id, self.head)


@pytest.fixture
def workflow(db, users, product, variant) -> Workflow:
    return Workflow(db, users, product, variant)
