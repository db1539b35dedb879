"""create depot-vente schema

Revision ID: 5b1e0c7a9d42
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5b1e0c7a9d42"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = False, with_deleted: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if with_updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    if with_deleted:
        cols.append(sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True))
    return cols


def upgrade() -> None:
    # --- CATALOGUE
    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(14, 2)),
        sa.Column("recommended_sale_price", sa.Numeric(14, 2)),
        sa.Column("barcode", sa.String(64), unique=True),
        *_timestamps(),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_product_price_nonneg"),
    )
    op.create_table(
        "sub_products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_sub_products_product_id", "sub_products", ["product_id"])

    # --- CLIENTS / DEPOT
    op.create_table(
        "clients",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        *_timestamps(),
    )
    op.create_table(
        "client_products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("custom_price", sa.Numeric(14, 2)),
        sa.Column("custom_recommended_sale_price", sa.Numeric(14, 2)),
        sa.Column("initial_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(with_updated=True),
        sa.CheckConstraint("current_stock >= 0", name="ck_client_product_stock_nonneg"),
    )
    op.create_index("ix_client_products_client_product", "client_products", ["client_id", "product_id"])
    op.create_table(
        "client_sub_products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "sub_product_id",
            sa.BigInteger(),
            sa.ForeignKey("sub_products.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("initial_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(with_updated=True),
        sa.CheckConstraint("current_stock >= 0", name="ck_client_sub_product_stock_nonneg"),
    )
    op.create_index("ix_client_sub_products_client_sub", "client_sub_products", ["client_id", "sub_product_id"])

    # --- FACTURATION
    op.create_table(
        "invoices",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("invoice_number", sa.String(32), unique=True),
        sa.Column("total_stock_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("discount_percentage", sa.Numeric(5, 2)),
        sa.Column("invoice_pdf_path", sa.String(512)),
        sa.Column("stock_report_pdf_path", sa.String(512)),
        sa.Column("deposit_slip_pdf_path", sa.String(512)),
        *_timestamps(with_deleted=False),
        sa.CheckConstraint("total_amount >= 0", name="ck_invoice_total_nonneg"),
        sa.CheckConstraint(
            "discount_percentage IS NULL OR (discount_percentage > 0 AND discount_percentage <= 100)",
            name="ck_invoice_discount_range",
        ),
    )
    op.create_index("ix_invoices_client_id", "invoices", ["client_id"])
    op.create_table(
        "invoice_adjustments",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("invoice_id", sa.BigInteger(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("operation_name", sa.String(255), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        *_timestamps(with_deleted=False),
        sa.CheckConstraint("quantity > 0", name="ck_invoice_adjustment_qty_pos"),
    )
    op.create_index("ix_invoice_adjustments_invoice_id", "invoice_adjustments", ["invoice_id"])
    op.create_table(
        "credit_notes",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("invoice_id", sa.BigInteger(), sa.ForeignKey("invoices.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("credit_note_number", sa.String(32), unique=True),
        sa.Column("operation_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("credit_note_pdf_path", sa.String(512)),
        *_timestamps(with_deleted=False),
        sa.CheckConstraint("quantity > 0", name="ck_credit_note_qty_pos"),
        sa.CheckConstraint("unit_price > 0", name="ck_credit_note_unit_price_pos"),
    )
    op.create_index("ix_credit_notes_invoice_id", "credit_notes", ["invoice_id"])
    op.create_table(
        "direct_sales",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("invoice_id", sa.BigInteger(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("stock_sold", sa.Integer(), nullable=False),
        sa.Column("unit_price_ht", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount_ht", sa.Numeric(14, 2), nullable=False),
        *_timestamps(with_deleted=False),
        sa.CheckConstraint("stock_sold > 0", name="ck_direct_sale_qty_pos"),
    )
    op.create_index("ix_direct_sales_invoice_id", "direct_sales", ["invoice_id"])

    # --- JOURNAL DE STOCK (append-only)
    op.create_table(
        "stock_updates",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT")),
        sa.Column("sub_product_id", sa.BigInteger(), sa.ForeignKey("sub_products.id", ondelete="RESTRICT")),
        sa.Column("invoice_id", sa.BigInteger(), sa.ForeignKey("invoices.id", ondelete="SET NULL")),
        sa.Column("previous_stock", sa.Integer(), nullable=False),
        sa.Column("counted_stock", sa.Integer(), nullable=False),
        sa.Column("stock_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock_added", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("new_stock", sa.Integer(), nullable=False),
        sa.Column("product_info", sa.Text()),
        sa.Column("unit_price_ht", sa.Numeric(14, 2)),
        sa.Column("total_amount_ht", sa.Numeric(14, 2)),
        *_timestamps(with_deleted=False),
        sa.CheckConstraint(
            "(product_id IS NOT NULL AND sub_product_id IS NULL) OR (product_id IS NULL AND sub_product_id IS NOT NULL)",
            name="ck_stock_update_product_xor_sub",
        ),
        sa.CheckConstraint("stock_sold >= 0", name="ck_stock_update_sold_nonneg"),
        sa.CheckConstraint("new_stock >= 0", name="ck_stock_update_new_nonneg"),
    )
    op.create_index("ix_stock_updates_invoice_id", "stock_updates", ["invoice_id"])
    op.create_index("ix_stock_updates_client_time", "stock_updates", ["client_id", "created_at"])

    # --- BROUILLONS
    draft_kind = sa.Enum("stock_update", "credit_note", name="draft_kind")
    op.create_table(
        "drafts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", draft_kind, nullable=False, server_default="stock_update"),
        sa.Column("draft_data", sa.JSON(), nullable=False),
        *_timestamps(with_updated=True),
    )
    op.create_index("ix_drafts_client_kind", "drafts", ["client_id", "kind"])


def downgrade() -> None:
    op.drop_index("ix_drafts_client_kind", table_name="drafts")
    op.drop_table("drafts")
    sa.Enum(name="draft_kind").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_stock_updates_client_time", table_name="stock_updates")
    op.drop_index("ix_stock_updates_invoice_id", table_name="stock_updates")
    op.drop_table("stock_updates")

    op.drop_index("ix_direct_sales_invoice_id", table_name="direct_sales")
    op.drop_table("direct_sales")
    op.drop_index("ix_credit_notes_invoice_id", table_name="credit_notes")
    op.drop_table("credit_notes")
    op.drop_index("ix_invoice_adjustments_invoice_id", table_name="invoice_adjustments")
    op.drop_table("invoice_adjustments")
    op.drop_index("ix_invoices_client_id", table_name="invoices")
    op.drop_table("invoices")

    op.drop_index("ix_client_sub_products_client_sub", table_name="client_sub_products")
    op.drop_table("client_sub_products")
    op.drop_index("ix_client_products_client_product", table_name="client_products")
    op.drop_table("client_products")
    op.drop_table("clients")

    op.drop_index("ix_sub_products_product_id", table_name="sub_products")
    op.drop_table("sub_products")
    op.drop_table("products")
