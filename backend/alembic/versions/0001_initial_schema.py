"""Initial roastery schema.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Identity ─────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "MANAGER", "ROASTER", "CASHIER", "WAREHOUSE_STAFF", name="userrole"),
        ),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("custom_permissions", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # ── Catalog ──────────────────────────────────────────────
    op.create_table(
        "green_beans",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("origin", sa.String(100), nullable=False),
        sa.Column("variety", sa.String(100)),
        sa.Column("supplier", sa.String(255)),
        sa.Column("quantity_kg", sa.Float(), server_default="0"),
        sa.Column("cost_per_kg", sa.Float(), server_default="0"),
        sa.Column("purchase_date", sa.Date()),
        sa.Column("harvest_date", sa.Date()),
        sa.Column("quality_grade", sa.String(50)),
        sa.Column("batch_number", sa.String(50)),
        sa.Column("is_organic", sa.Boolean(), server_default="false"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "package_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("size_label", sa.String(50), nullable=False),
        sa.Column("weight_kg", sa.Float(), nullable=False),
        sa.Column("unit_cost", sa.Float(), server_default="0"),
        sa.Column("shelf_life_days", sa.Integer()),
        sa.Column("sku_prefix", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "product_definitions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(100)),
        sa.Column("product_type", sa.String(30), nullable=False),
        sa.Column("roast_level", sa.String(20)),
        sa.Column("template_id", sa.String(36), sa.ForeignKey("package_templates.id")),
        sa.Column("base_price", sa.Float(), server_default="0"),
        sa.Column("labor_cost", sa.Float(), server_default="0"),
        sa.Column("roasting_overhead", sa.Float(), server_default="0"),
        sa.Column("recipe", sa.JSON()),
        sa.Column("add_ons", sa.JSON()),
        sa.Column("image", sa.String(500)),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_product_definitions_product_type", "product_definitions", ["product_type"])

    op.create_table(
        "locations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.Text()),
        sa.Column("location_type", sa.String(20), server_default="BRANCH"),
        sa.Column("is_roastery", sa.Boolean(), server_default="false"),
        sa.Column("contact_person", sa.JSON()),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Roasting & packaging ─────────────────────────────────
    op.create_table(
        "roasting_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_code", sa.String(50), nullable=False),
        sa.Column("bean_id", sa.String(36), sa.ForeignKey("green_beans.id"), nullable=False),
        sa.Column("roast_date", sa.Date()),
        sa.Column("level", sa.String(20), nullable=False),
        sa.Column("pre_weight_kg", sa.Float(), nullable=False),
        sa.Column("post_weight_kg", sa.Float()),
        sa.Column("waste_pct", sa.Float()),
        sa.Column("packaged_weight_kg", sa.Float(), server_default="0"),
        sa.Column("cost_per_kg", sa.Float(), server_default="0"),
        sa.Column("status", sa.String(20), server_default="IN_PROGRESS"),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("operator", sa.String(255)),
        sa.Column("notes", sa.Text()),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_roasting_batches_batch_code", "roasting_batches", ["batch_code"], unique=True)
    op.create_index("ix_roasting_batches_bean_id", "roasting_batches", ["bean_id"])
    op.create_index("ix_roasting_batches_roast_date", "roasting_batches", ["roast_date"])
    op.create_index("ix_roasting_batches_status", "roasting_batches", ["status"])
    op.create_index("ix_roasting_batches_created_at", "roasting_batches", ["created_at"])

    op.create_table(
        "batch_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("roasting_batches.id"), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("operator", sa.String(255)),
        sa.Column("details", sa.Text()),
        sa.Column("event_data", sa.JSON()),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_batch_history_batch_id", "batch_history", ["batch_id"])
    op.create_index("ix_batch_history_action", "batch_history", ["action"])
    op.create_index("ix_batch_history_recorded_at", "batch_history", ["recorded_at"])

    op.create_table(
        "packaging_units",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("roasting_batches.id"), nullable=False),
        sa.Column("template_id", sa.String(36), sa.ForeignKey("package_templates.id"), nullable=False),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("product_definitions.id"), nullable=False),
        sa.Column("location_id", sa.String(36), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("size_label", sa.String(50)),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_weight_kg", sa.Float(), nullable=False),
        sa.Column("packaging_cost_total", sa.Float(), server_default="0"),
        sa.Column("production_date", sa.Date(), nullable=False),
        sa.Column("packaging_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("sku", sa.String(60), nullable=False),
        sa.Column("allocation_key", sa.String(64)),
        sa.Column("operator", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_packaging_units_batch_id", "packaging_units", ["batch_id"])
    op.create_index("ix_packaging_units_sku", "packaging_units", ["sku"], unique=True)
    op.create_index("ix_packaging_units_allocation_key", "packaging_units", ["allocation_key"])
    op.create_index("ix_packaging_units_created_at", "packaging_units", ["created_at"])

    # ── Inventory ────────────────────────────────────────────
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(100)),
        sa.Column("item_type", sa.String(30), nullable=False),
        sa.Column("size", sa.String(50)),
        sa.Column("unit", sa.String(20)),
        sa.Column("location_id", sa.String(36), sa.ForeignKey("locations.id")),
        sa.Column("stock_qty", sa.Float(), server_default="0"),
        sa.Column("min_stock", sa.Float()),
        sa.Column("price", sa.Float(), server_default="0"),
        sa.Column("cost_per_unit", sa.Float()),
        sa.Column("batch_id", sa.String(36)),
        sa.Column("product_id", sa.String(36)),
        sa.Column("sku_prefix", sa.String(20)),
        sa.Column("sku", sa.String(60)),
        sa.Column("expiry_date", sa.Date()),
        sa.Column("image", sa.String(500)),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_inventory_items_name", "inventory_items", ["name"])
    op.create_index("ix_inventory_items_item_type", "inventory_items", ["item_type"])
    op.create_index("ix_inventory_items_location_id", "inventory_items", ["location_id"])
    op.create_index("ix_inventory_items_batch_id", "inventory_items", ["batch_id"])
    op.create_index("ix_inventory_items_sku", "inventory_items", ["sku"])
    op.create_index("ix_inventory_items_created_at", "inventory_items", ["created_at"])

    op.create_table(
        "stock_adjustments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("item_id", sa.String(36), sa.ForeignKey("inventory_items.id"), nullable=False),
        sa.Column("location_id", sa.String(36), sa.ForeignKey("locations.id")),
        sa.Column("quantity_delta", sa.Float(), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("value", sa.Float(), server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("user_id", sa.String(36)),
        sa.Column("user_name", sa.String(255)),
        sa.Column("item_name", sa.String(255)),
        sa.Column("location_name", sa.String(255)),
        sa.Column("resolved_by", sa.String(36)),
        sa.Column("resolved_by_name", sa.String(255)),
        sa.Column("resolved_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_stock_adjustments_item_id", "stock_adjustments", ["item_id"])
    op.create_index("ix_stock_adjustments_status", "stock_adjustments", ["status"])
    op.create_index("ix_stock_adjustments_created_at", "stock_adjustments", ["created_at"])

    op.create_table(
        "stock_transfers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source_location_id", sa.String(36), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("destination_location_id", sa.String(36), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("status", sa.String(20), server_default="DRAFT"),
        sa.Column("manifest", sa.JSON(), nullable=False),
        sa.Column("items_count", sa.Integer(), server_default="0"),
        sa.Column("total_value", sa.Float(), server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_by_name", sa.String(255)),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("received_at", sa.DateTime()),
        sa.Column("cancelled_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_stock_transfers_source_location_id", "stock_transfers", ["source_location_id"])
    op.create_index("ix_stock_transfers_destination_location_id", "stock_transfers", ["destination_location_id"])
    op.create_index("ix_stock_transfers_status", "stock_transfers", ["status"])
    op.create_index("ix_stock_transfers_created_at", "stock_transfers", ["created_at"])

    # ── Sales ────────────────────────────────────────────────
    op.create_table(
        "sale_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        sa.Column("location_id", sa.String(36), sa.ForeignKey("locations.id")),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("subtotal", sa.Float(), nullable=False),
        sa.Column("vat_amount", sa.Float(), server_default="0"),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_breakdown", sa.JSON()),
        sa.Column("card_reference", sa.String(100)),
        sa.Column("received_amount", sa.Float()),
        sa.Column("change_amount", sa.Float(), server_default="0"),
        sa.Column("user_id", sa.String(36)),
        sa.Column("cashier_name", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_sale_transactions_invoice_number", "sale_transactions", ["invoice_number"], unique=True)
    op.create_index("ix_sale_transactions_location_id", "sale_transactions", ["location_id"])
    op.create_index("ix_sale_transactions_user_id", "sale_transactions", ["user_id"])
    op.create_index("ix_sale_transactions_created_at", "sale_transactions", ["created_at"])

    op.create_table(
        "reprint_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("sale_id", sa.String(36), sa.ForeignKey("sale_transactions.id"), nullable=False),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("user_id", sa.String(36)),
        sa.Column("user_name", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_reprint_logs_sale_id", "reprint_logs", ["sale_id"])

    # ── Audit & reconciliation ───────────────────────────────
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36)),
        sa.Column("user_name", sa.String(200), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("entity_code", sa.String(100)),
        sa.Column("location_id", sa.String(36), sa.ForeignKey("locations.id")),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_entity_id", "activity_logs", ["entity_id"])
    op.create_index("ix_activity_logs_location_id", "activity_logs", ["location_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])

    op.create_table(
        "reconciliation_alerts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("alert_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("expected_value", sa.Float()),
        sa.Column("actual_value", sa.Float()),
        sa.Column("variance", sa.Float()),
        sa.Column("variance_pct", sa.Float()),
        sa.Column("unit", sa.String(20)),
        sa.Column("entity_refs", sa.JSON()),
        sa.Column("status", sa.String(20), server_default="open"),
        sa.Column("resolved_at", sa.DateTime()),
        sa.Column("resolved_by", sa.String(36)),
        sa.Column("resolution_note", sa.Text()),
        sa.Column("run_id", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_reconciliation_alerts_alert_type", "reconciliation_alerts", ["alert_type"])
    op.create_index("ix_reconciliation_alerts_severity", "reconciliation_alerts", ["severity"])
    op.create_index("ix_reconciliation_alerts_status", "reconciliation_alerts", ["status"])
    op.create_index("ix_reconciliation_alerts_run_id", "reconciliation_alerts", ["run_id"])


def downgrade() -> None:
    for table in (
        "reconciliation_alerts",
        "activity_logs",
        "reprint_logs",
        "sale_transactions",
        "stock_transfers",
        "stock_adjustments",
        "inventory_items",
        "packaging_units",
        "batch_history",
        "roasting_batches",
        "locations",
        "product_definitions",
        "package_templates",
        "green_beans",
        "users",
    ):
        op.drop_table(table)
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
