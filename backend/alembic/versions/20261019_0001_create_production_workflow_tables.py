"""create production workflow tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

ROLES = "'OWNER', 'KEPALA_PRODUKSI', 'KEPALA_GUDANG', 'PEMOTONG', 'PENJAHIT', 'FINISHING'"
BATCH_STATUSES = (
    "'PENDING', 'MATERIAL_REQUESTED', 'MATERIAL_ALLOCATED', 'ASSIGNED_TO_CUTTER', 'IN_CUTTING', "
    "'CUTTING_COMPLETED', 'CUTTING_VERIFIED', 'ASSIGNED_TO_SEWER', 'IN_SEWING', 'SEWING_COMPLETED', "
    "'SEWING_VERIFIED', 'ASSIGNED_TO_FINISHING', 'IN_FINISHING', 'FINISHING_COMPLETED', "
    "'SUBMITTED_TO_WAREHOUSE', 'WAREHOUSE_VERIFIED', 'COMPLETED'"
)
TASK_STATUSES = "'PENDING', 'IN_PROGRESS', 'COMPLETED', 'VERIFIED', 'REJECTED'"
SUB_BATCH_STATUSES = (
    "'CREATED', 'SEWING_VERIFIED', 'FORWARDED_TO_FINISHING', 'SUBMITTED_TO_WAREHOUSE', "
    "'WAREHOUSE_VERIFIED', 'COMPLETED'"
)


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=36), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(f"role IN ({ROLES})", name="ck_users_role"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "products",
        _id(),
        sa.Column("sku", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_sku", "products", ["sku"], unique=True)

    op.create_table(
        "materials",
        _id(),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_materials_code", "materials", ["code"], unique=True)

    op.create_table(
        "material_color_variants",
        _id(),
        sa.Column("material_id", sa.String(length=36), nullable=False),
        sa.Column("color_name", sa.String(length=100), nullable=False),
        sa.Column("color_code", sa.String(length=50), nullable=True),
        sa.Column("stock", sa.Numeric(12, 2), nullable=False),
        sa.Column("minimum_stock", sa.Numeric(12, 2), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("roll_quantity", sa.Numeric(12, 2), nullable=True),
        sa.Column("meter_per_roll", sa.Numeric(12, 2), nullable=True),
        sa.Column("purchase_order_number", sa.String(length=100), nullable=True),
        sa.Column("supplier", sa.String(length=200), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("purchase_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["material_id"], ["materials.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("material_id", "color_name", name="uq_material_color_variant"),
        sa.CheckConstraint("stock >= 0", name="ck_material_color_variants_stock_non_negative"),
        sa.CheckConstraint("minimum_stock >= 0", name="ck_material_color_variants_minimum_non_negative"),
    )
    op.create_index("ix_material_color_variants_material_id", "material_color_variants", ["material_id"])

    op.create_table(
        "production_batches",
        _id(),
        sa.Column("batch_sku", sa.String(length=50), nullable=False),
        sa.Column("product_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("target_quantity", sa.Integer(), nullable=False),
        sa.Column("actual_quantity", sa.Integer(), nullable=False),
        sa.Column("reject_quantity", sa.Integer(), nullable=False),
        sa.Column("total_rolls", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.String(length=36), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("completed_date", sa.DateTime(), nullable=True),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(f"status IN ({BATCH_STATUSES})", name="ck_production_batches_status"),
        sa.CheckConstraint("target_quantity >= 0", name="ck_production_batches_target_non_negative"),
        sa.CheckConstraint("actual_quantity >= 0", name="ck_production_batches_actual_non_negative"),
        sa.CheckConstraint("reject_quantity >= 0", name="ck_production_batches_reject_non_negative"),
    )
    op.create_index("ix_production_batches_batch_sku", "production_batches", ["batch_sku"], unique=True)
    op.create_index("ix_production_batches_product_id", "production_batches", ["product_id"])
    op.create_index("ix_production_batches_status_created", "production_batches", ["status", "created_at"])

    op.create_table(
        "material_transactions",
        _id(),
        sa.Column("material_id", sa.String(length=36), nullable=False),
        sa.Column("material_color_variant_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("stock_before", sa.Numeric(12, 2), nullable=False),
        sa.Column("stock_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["material_id"], ["materials.id"]),
        sa.ForeignKeyConstraint(["material_color_variant_id"], ["material_color_variants.id"]),
        sa.ForeignKeyConstraint(["batch_id"], ["production_batches.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "type IN ('IN', 'OUT', 'ADJUSTMENT', 'RETURN')", name="ck_material_transactions_type"
        ),
        sa.CheckConstraint("quantity >= 0", name="ck_material_transactions_quantity_non_negative"),
    )
    op.create_index("ix_material_transactions_material_id", "material_transactions", ["material_id"])
    op.create_index("ix_material_transactions_batch_id", "material_transactions", ["batch_id"])
    op.create_index(
        "ix_material_transactions_variant_created",
        "material_transactions",
        ["material_color_variant_id", "created_at"],
    )

    op.create_table(
        "batch_material_color_allocations",
        _id(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("material_color_variant_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("allocated_qty", sa.Numeric(12, 2), nullable=False),
        sa.Column("roll_quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("meter_per_roll", sa.Numeric(12, 2), nullable=True),
        sa.Column("stock_at_allocation", sa.Numeric(12, 2), nullable=True),
        sa.Column("roll_quantity_at_allocation", sa.Numeric(12, 2), nullable=True),
        sa.Column("allocated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["batch_id"], ["production_batches.id"]),
        sa.ForeignKeyConstraint(["material_color_variant_id"], ["material_color_variants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('REQUESTED', 'ALLOCATED')", name="ck_batch_allocations_status"),
        sa.CheckConstraint("allocated_qty > 0", name="ck_batch_allocations_qty_positive"),
    )
    op.create_index(
        "ix_batch_material_color_allocations_batch_id", "batch_material_color_allocations", ["batch_id"]
    )

    op.create_table(
        "size_color_requests",
        _id(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("product_size", sa.String(length=20), nullable=False),
        sa.Column("color", sa.String(length=100), nullable=False),
        sa.Column("requested_pieces", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["batch_id"], ["production_batches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("batch_id", "product_size", "color", name="uq_size_color_request"),
        sa.CheckConstraint("requested_pieces > 0", name="ck_size_color_requests_pieces_positive"),
    )
    op.create_index("ix_size_color_requests_batch_id", "size_color_requests", ["batch_id"])

    op.create_table(
        "batch_timeline",
        _id(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("event", sa.String(length=50), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["batch_id"], ["production_batches.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_batch_timeline_batch_id", "batch_timeline", ["batch_id"])

    op.create_table(
        "stage_tasks",
        _id(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("stage", sa.String(length=20), nullable=False),
        sa.Column("assigned_to_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("pieces_received", sa.Integer(), nullable=False),
        sa.Column("pieces_completed", sa.Integer(), nullable=False),
        sa.Column("reject_pieces", sa.Integer(), nullable=False),
        sa.Column("waste_qty", sa.Numeric(12, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("verified_by_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["batch_id"], ["production_batches.id"]),
        sa.ForeignKeyConstraint(["assigned_to_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["verified_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("batch_id", "stage", name="uq_stage_tasks_batch_stage"),
        sa.CheckConstraint("stage IN ('CUTTING', 'SEWING', 'FINISHING')", name="ck_stage_tasks_stage"),
        sa.CheckConstraint(f"status IN ({TASK_STATUSES})", name="ck_stage_tasks_status"),
        sa.CheckConstraint("pieces_received >= 0", name="ck_stage_tasks_received_non_negative"),
        sa.CheckConstraint("pieces_completed >= 0", name="ck_stage_tasks_completed_non_negative"),
        sa.CheckConstraint("reject_pieces >= 0", name="ck_stage_tasks_reject_non_negative"),
    )
    op.create_index("ix_stage_tasks_batch_id", "stage_tasks", ["batch_id"])
    op.create_index("ix_stage_tasks_assigned_to_id", "stage_tasks", ["assigned_to_id"])

    op.create_table(
        "cutting_results",
        _id(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("product_size", sa.String(length=20), nullable=False),
        sa.Column("color", sa.String(length=100), nullable=False),
        sa.Column("actual_pieces", sa.Integer(), nullable=False),
        sa.Column("is_confirmed", sa.Boolean(), nullable=False),
        sa.Column("confirmed_by_id", sa.String(length=36), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("input_by_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["batch_id"], ["production_batches.id"]),
        sa.ForeignKeyConstraint(["confirmed_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["input_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("batch_id", "product_size", "color", name="uq_cutting_results_batch_size_color"),
        sa.CheckConstraint("actual_pieces >= 0", name="ck_cutting_results_pieces_non_negative"),
    )
    op.create_index("ix_cutting_results_batch_id", "cutting_results", ["batch_id"])

    op.create_table(
        "sub_batches",
        _id(),
        sa.Column("sub_batch_sku", sa.String(length=80), nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("stage_task_id", sa.String(length=36), nullable=False),
        sa.Column("sewing_output", sa.Integer(), nullable=False),
        sa.Column("finishing_good_output", sa.Integer(), nullable=False),
        sa.Column("reject_kotor", sa.Integer(), nullable=False),
        sa.Column("reject_sobek", sa.Integer(), nullable=False),
        sa.Column("reject_rusak_jahit", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.String(length=36), nullable=False),
        sa.Column("verified_by_prod_id", sa.String(length=36), nullable=True),
        sa.Column("verified_by_prod_at", sa.DateTime(), nullable=True),
        sa.Column("forwarded_at", sa.DateTime(), nullable=True),
        sa.Column("submitted_to_warehouse_at", sa.DateTime(), nullable=True),
        sa.Column("warehouse_verified_by_id", sa.String(length=36), nullable=True),
        sa.Column("warehouse_verified_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["batch_id"], ["production_batches.id"]),
        sa.ForeignKeyConstraint(["stage_task_id"], ["stage_tasks.id"]),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["verified_by_prod_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["warehouse_verified_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("source IN ('SEWING', 'FINISHING')", name="ck_sub_batches_source"),
        sa.CheckConstraint(f"status IN ({SUB_BATCH_STATUSES})", name="ck_sub_batches_status"),
    )
    op.create_index("ix_sub_batches_sub_batch_sku", "sub_batches", ["sub_batch_sku"], unique=True)
    op.create_index("ix_sub_batches_batch_id", "sub_batches", ["batch_id"])
    op.create_index("ix_sub_batches_stage_task_id", "sub_batches", ["stage_task_id"])
    op.create_index("ix_sub_batches_batch_source_status", "sub_batches", ["batch_id", "source", "status"])

    op.create_table(
        "sub_batch_items",
        _id(),
        sa.Column("sub_batch_id", sa.String(length=36), nullable=False),
        sa.Column("product_size", sa.String(length=20), nullable=False),
        sa.Column("color", sa.String(length=100), nullable=False),
        sa.Column("good_quantity", sa.Integer(), nullable=False),
        sa.Column("reject_kotor", sa.Integer(), nullable=False),
        sa.Column("reject_sobek", sa.Integer(), nullable=False),
        sa.Column("reject_rusak_jahit", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["sub_batch_id"], ["sub_batches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sub_batch_id", "product_size", "color", name="uq_sub_batch_items_size_color"),
        sa.CheckConstraint("good_quantity >= 0", name="ck_sub_batch_items_good_non_negative"),
        sa.CheckConstraint(
            "reject_kotor >= 0 AND reject_sobek >= 0 AND reject_rusak_jahit >= 0",
            name="ck_sub_batch_items_rejects_non_negative",
        ),
    )
    op.create_index("ix_sub_batch_items_sub_batch_id", "sub_batch_items", ["sub_batch_id"])

    op.create_table(
        "sub_batch_timeline",
        _id(),
        sa.Column("sub_batch_id", sa.String(length=36), nullable=False),
        sa.Column("event", sa.String(length=50), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["sub_batch_id"], ["sub_batches.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sub_batch_timeline_sub_batch_id", "sub_batch_timeline", ["sub_batch_id"])

    op.create_table(
        "finished_goods",
        _id(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("product_id", sa.String(length=36), nullable=False),
        sa.Column("sub_batch_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(length=100), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("verified_by_id", sa.String(length=36), nullable=False),
        sa.Column("verified_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["batch_id"], ["production_batches.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["sub_batch_id"], ["sub_batches.id"]),
        sa.ForeignKeyConstraint(["verified_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("type IN ('FINISHED', 'REJECT')", name="ck_finished_goods_type"),
        sa.CheckConstraint("quantity > 0", name="ck_finished_goods_quantity_positive"),
    )
    op.create_index("ix_finished_goods_batch_id", "finished_goods", ["batch_id"])
    op.create_index("ix_finished_goods_product_id", "finished_goods", ["product_id"])
    op.create_index("ix_finished_goods_sub_batch_id", "finished_goods", ["sub_batch_id"])

    op.create_table(
        "notifications",
        _id(),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "type IN ('BATCH_ASSIGNMENT', 'TASK_COMPLETED', 'VERIFICATION_NEEDED', 'VERIFICATION_RESULT')",
            name="ck_notifications_type",
        ),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "audit_logs",
        _id(),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("entity", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("old_values", sa.Text(), nullable=True),
        sa.Column("new_values", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "notifications",
        "finished_goods",
        "sub_batch_timeline",
        "sub_batch_items",
        "sub_batches",
        "cutting_results",
        "stage_tasks",
        "batch_timeline",
        "size_color_requests",
        "batch_material_color_allocations",
        "material_transactions",
        "production_batches",
        "material_color_variants",
        "materials",
        "products",
        "users",
    ):
        op.drop_table(table)
