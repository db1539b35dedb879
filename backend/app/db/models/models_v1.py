from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    JSON,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.db.base import Base, BigIntPK
from backend.app.db.models.core_types import DraftKind


# ---------- CATALOGUE ----------
class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    recommended_sale_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    barcode: Mapped[str | None] = mapped_column(String(64), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    sub_products: Mapped[list["SubProduct"]] = relationship(back_populates="product")

    __table_args__ = (
        CheckConstraint("price IS NULL OR price >= 0", name="ck_product_price_nonneg"),
    )


class SubProduct(Base):
    __tablename__ = "sub_products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    product: Mapped[Product] = relationship(back_populates="sub_products")


# ---------- CLIENTS / DEPOT ----------
class Client(Base):
    __tablename__ = "clients"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class ClientProduct(Base):
    __tablename__ = "client_products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    custom_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    custom_recommended_sale_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    initial_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    product: Mapped[Product] = relationship()

    # unicité (client, produit) limitée aux lignes non supprimées
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_client_product_stock_nonneg"),
        Index("ix_client_products_client_product", "client_id", "product_id"),
        Index(
            "ux_client_products_live",
            "client_id",
            "product_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )


class ClientSubProduct(Base):
    __tablename__ = "client_sub_products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    sub_product_id: Mapped[int] = mapped_column(ForeignKey("sub_products.id", ondelete="RESTRICT"), nullable=False)

    initial_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_client_sub_product_stock_nonneg"),
        Index("ix_client_sub_products_client_sub", "client_id", "sub_product_id"),
        Index(
            "ux_client_sub_products_live",
            "client_id",
            "sub_product_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )


# ---------- FACTURATION ----------
class Invoice(Base):
    __tablename__ = "invoices"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    invoice_number: Mapped[str | None] = mapped_column(String(32), unique=True)
    total_stock_sold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    discount_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))

    # chemins immuables : écrits une seule fois
    invoice_pdf_path: Mapped[str | None] = mapped_column(String(512))
    stock_report_pdf_path: Mapped[str | None] = mapped_column(String(512))
    deposit_slip_pdf_path: Mapped[str | None] = mapped_column(String(512))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    adjustments: Mapped[list["InvoiceAdjustment"]] = relationship(back_populates="invoice")

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_invoice_total_nonneg"),
        CheckConstraint(
            "discount_percentage IS NULL OR (discount_percentage > 0 AND discount_percentage <= 100)",
            name="ck_invoice_discount_range",
        ),
    )


class InvoiceAdjustment(Base):
    __tablename__ = "invoice_adjustments"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    operation_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="adjustments")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_adjustment_qty_pos"),
    )


class CreditNote(Base):
    __tablename__ = "credit_notes"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    credit_note_number: Mapped[str | None] = mapped_column(String(32), unique=True)
    operation_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    credit_note_pdf_path: Mapped[str | None] = mapped_column(String(512))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_credit_note_qty_pos"),
        CheckConstraint("unit_price > 0", name="ck_credit_note_unit_price_pos"),
    )


class DirectSale(Base):
    __tablename__ = "direct_sales"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    stock_sold: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_ht: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_amount_ht: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("stock_sold > 0", name="ck_direct_sale_qty_pos"),
    )


# ---------- JOURNAL DE STOCK (append-only) ----------
class StockUpdate(Base):
    __tablename__ = "stock_updates"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"))
    sub_product_id: Mapped[int | None] = mapped_column(ForeignKey("sub_products.id", ondelete="RESTRICT"))
    invoice_id: Mapped[int | None] = mapped_column(ForeignKey("invoices.id", ondelete="SET NULL"), index=True)

    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    counted_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_sold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # peut être négatif pour un ajustement manuel à la baisse
    stock_added: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)

    product_info: Mapped[str | None] = mapped_column(Text)
    unit_price_ht: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    total_amount_ht: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(product_id IS NOT NULL AND sub_product_id IS NULL) OR (product_id IS NULL AND sub_product_id IS NOT NULL)",
            name="ck_stock_update_product_xor_sub",
        ),
        CheckConstraint("stock_sold >= 0", name="ck_stock_update_sold_nonneg"),
        CheckConstraint("new_stock >= 0", name="ck_stock_update_new_nonneg"),
        Index("ix_stock_updates_client_time", "client_id", "created_at"),
    )


# ---------- BROUILLONS ----------
class Draft(Base):
    __tablename__ = "drafts"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    kind: Mapped[DraftKind] = mapped_column(
        Enum(DraftKind, name="draft_kind"),
        default=DraftKind.stock_update,
        nullable=False,
    )
    draft_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_drafts_client_kind", "client_id", "kind"),
        Index(
            "ux_drafts_live",
            "client_id",
            "kind",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )
