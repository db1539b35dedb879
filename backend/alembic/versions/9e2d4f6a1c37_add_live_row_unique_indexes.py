"""add unique indexes on live client rows and drafts

Revision ID: 9e2d4f6a1c37
Revises: 5b1e0c7a9d42
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "9e2d4f6a1c37"
down_revision: Union[str, Sequence[str], None] = "5b1e0c7a9d42"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# une seule ligne vivante par clé ; les lignes soft-deleted restent en historique
UX_CLIENT_PRODUCT = "ux_client_products_live"
UX_CLIENT_SUB_PRODUCT = "ux_client_sub_products_live"
UX_DRAFT = "ux_drafts_live"


def _soft_delete_duplicates(table: str, key: str) -> None:
    # Idempotent Postgres : garde la ligne la plus récente
    op.execute(
        f"""
        UPDATE {table} t
        SET deleted_at = now()
        WHERE t.deleted_at IS NULL
          AND EXISTS (
              SELECT 1 FROM {table} o
              WHERE o.deleted_at IS NULL
                AND ({" AND ".join(f"o.{c} = t.{c}" for c in key.split(", "))})
                AND o.id > t.id
          );
        """
    )


def upgrade() -> None:
    # --- SAFETY FIX (données existantes)
    _soft_delete_duplicates("client_products", "client_id, product_id")
    _soft_delete_duplicates("client_sub_products", "client_id, sub_product_id")
    _soft_delete_duplicates("drafts", "client_id, kind")

    op.execute(
        f"CREATE UNIQUE INDEX IF NOT EXISTS {UX_CLIENT_PRODUCT} "
        "ON client_products (client_id, product_id) WHERE deleted_at IS NULL;"
    )
    op.execute(
        f"CREATE UNIQUE INDEX IF NOT EXISTS {UX_CLIENT_SUB_PRODUCT} "
        "ON client_sub_products (client_id, sub_product_id) WHERE deleted_at IS NULL;"
    )
    op.execute(
        f"CREATE UNIQUE INDEX IF NOT EXISTS {UX_DRAFT} "
        "ON drafts (client_id, kind) WHERE deleted_at IS NULL;"
    )


def downgrade() -> None:
    op.execute(f"DROP INDEX IF EXISTS {UX_DRAFT};")
    op.execute(f"DROP INDEX IF EXISTS {UX_CLIENT_SUB_PRODUCT};")
    op.execute(f"DROP INDEX IF EXISTS {UX_CLIENT_PRODUCT};")
