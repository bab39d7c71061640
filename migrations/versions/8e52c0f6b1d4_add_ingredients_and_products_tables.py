"""add ingredients, ingredient components and products tables

Revision ID: 8e52c0f6b1d4
Revises: 3b7d1e9a4c20
Create Date: 2026-10-17 09:40:05.551872

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "8e52c0f6b1d4"
down_revision: Union[str, Sequence[str], None] = "3b7d1e9a4c20"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "ingredients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column(
            "name_key",
            sa.String(500),
            nullable=False,
            comment="Normalised name identity",
        ),
        sa.Column("branded", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "source_id",
            sa.Text,
            nullable=True,
            comment="Identifier of the matched nutrition record",
        ),
        sa.Column("gram_protein_per_gram", sa.Float, nullable=True),
        sa.Column("gram_carbs_per_gram", sa.Float, nullable=True),
        sa.Column("gram_fat_per_gram", sa.Float, nullable=True),
        sa.Column("gram_fiber_per_gram", sa.Float, nullable=True),
        sa.Column("gram_trans_fat_per_gram", sa.Float, nullable=True),
        sa.Column(
            "ingredients_text",
            sa.Text,
            nullable=True,
            comment="Ingredient statement from the nutrition record",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("name_key", name="uq_ingredients_name_key"),
    )

    # Sub-ingredients are referenced by name key; the child may not exist yet
    op.create_table(
        "ingredient_components",
        sa.Column(
            "parent_id",
            sa.Integer,
            sa.ForeignKey("ingredients.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("position", sa.Integer, primary_key=True),
        sa.Column("component_key", sa.String(500), nullable=False),
        sa.Column("component_name", sa.String(500), nullable=False),
    )
    op.create_index(
        "ix_ingredient_components_component_key",
        "ingredient_components",
        ["component_key"],
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("barcode", sa.String(255), nullable=False),
        sa.Column("product_name", sa.Text, nullable=True),
        sa.Column("brands", sa.Text, nullable=True),
        sa.Column("categories", sa.Text, nullable=True),
        sa.Column("quantity", sa.String(255), nullable=True),
        sa.Column("image_url", sa.Text, nullable=True),
        sa.Column("ingredients_text", sa.Text, nullable=True),
        sa.Column("allergens", sa.Text, nullable=True),
        sa.Column(
            "full_response",
            sa.JSON,
            nullable=True,
            comment="Raw provider product object",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("barcode", name="uq_products_barcode"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("products")
    op.drop_index(
        "ix_ingredient_components_component_key", table_name="ingredient_components"
    )
    op.drop_table("ingredient_components")
    op.drop_table("ingredients")
