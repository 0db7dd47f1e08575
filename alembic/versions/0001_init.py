"""Migração inicial: categorias e itens do cardápio (inclui registros de sistema)."""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("order", sa.Integer, nullable=True, server_default="999"),
        sa.Column("icon", sa.String(32), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False)),
    )
    op.create_table(
        "menu_items",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("price", sa.Float, nullable=False, server_default="0"),
        # sem FK: produto com categoria inexistente aparece como "N/A"
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("image", sa.Text, nullable=False, server_default=""),
        sa.Column("available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("order", sa.Integer, nullable=True, server_default="999"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False)),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=False), nullable=True),
    )
    op.create_index("ix_menu_items_category", "menu_items", ["category"])

def downgrade() -> None:
    op.drop_index("ix_menu_items_category", table_name="menu_items")
    op.drop_table("menu_items")
    op.drop_table("categories")
