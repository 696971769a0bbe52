"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "ppob_transactions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("ref_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("account_id", sa.String(64), nullable=True),
        sa.Column("buyer_sku_code", sa.String(64), nullable=False),
        sa.Column("customer_no", sa.String(64), nullable=False),
        sa.Column("product_type", sa.String(16), nullable=False, server_default="prepaid"),
        sa.Column("amount_nominal", sa.Numeric(14, 2), nullable=True),
        sa.Column("price", sa.Numeric(14, 2), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="INQUIRY"),
        sa.Column("rc", sa.String(16), nullable=True),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("sn", sa.String(255), nullable=True),
        sa.Column("debit_reference", sa.String(64), nullable=True),
        sa.Column("reversal_reference", sa.String(64), nullable=True),
        sa.Column("raw_request", sa.JSON, nullable=True),
        sa.Column("raw_response", sa.JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_ppob_transactions_ref_id", "ppob_transactions", ["ref_id"], unique=True)
    op.create_index("ix_ppob_transactions_user_id", "ppob_transactions", ["user_id"], unique=False)
    op.create_index("ix_ppob_transactions_user_status", "ppob_transactions", ["user_id", "status"], unique=False)
    op.create_index("ix_ppob_transactions_status_updated", "ppob_transactions", ["status", "updated_at"], unique=False)

    op.create_table(
        "digiflazz_products",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("brand", sa.String(64), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("seller_name", sa.String(128), nullable=False, server_default=""),
        sa.Column("price", sa.Integer, nullable=False),
        sa.Column("buyer_sku_code", sa.String(64), nullable=False),
        sa.Column("buyer_product_status", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("seller_product_status", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("unlimited_stock", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("stock", sa.Integer, nullable=True),
        sa.Column("multi", sa.Boolean, nullable=True),
        sa.Column("start_cut_off", sa.String(16), nullable=True),
        sa.Column("end_cut_off", sa.String(16), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("nominal", sa.Integer, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_digiflazz_products_buyer_sku_code", "digiflazz_products", ["buyer_sku_code"], unique=True)
    op.create_index("ix_digiflazz_products_category_brand", "digiflazz_products", ["category", "brand"], unique=False)

    op.create_table(
        "device_tokens",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("token", sa.String(512), nullable=False, unique=True),
        sa.Column("platform", sa.String(16), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_device_tokens_user_id", "device_tokens", ["user_id"], unique=False)

    op.create_table(
        "api_logs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("service", sa.String(64), nullable=False),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("status_code", sa.Integer, nullable=False),
        sa.Column("duration_ms", sa.Numeric(10, 2), nullable=False),
        sa.Column("reference", sa.String(64), nullable=True),
        sa.Column("success", sa.Integer, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_api_logs_service_status", "api_logs", ["service", "status_code"], unique=False)
    op.create_index("ix_api_logs_reference", "api_logs", ["reference"], unique=False)


def downgrade():
    op.drop_table("api_logs")
    op.drop_table("device_tokens")
    op.drop_table("digiflazz_products")
    op.drop_table("ppob_transactions")
