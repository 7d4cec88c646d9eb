"""users and escrows

Revision ID: 3c1e7a9d5b20
Revises:
Create Date: 2026-09-14

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3c1e7a9d5b20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    tables = sa.inspect(bind).get_table_names()

    if "users" not in tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("api_key", sa.String(length=96), nullable=False),
            sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        op.create_index("ix_users_api_key", "users", ["api_key"], unique=True)

    if "escrows" not in tables:
        op.create_table(
            "escrows",
            sa.Column("id", sa.String(length=32), primary_key=True),
            sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("role", sa.String(length=16), nullable=False),
            sa.Column("invited_role", sa.String(length=16), nullable=False),
            sa.Column("invitation_status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("product_name", sa.String(length=200), nullable=False),
            sa.Column("category", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("logistics", sa.String(length=16), nullable=False, server_default="NO"),
            sa.Column("amount", sa.Numeric(18, 2), nullable=False),
            sa.Column("currency", sa.String(length=8), nullable=False, server_default="NGN"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("photo_url", sa.String(length=1024), nullable=True),
            sa.Column("color", sa.String(length=64), nullable=True),
            sa.Column("source", sa.String(length=16), nullable=False, server_default="INTERNAL"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_escrows_creator_id", "escrows", ["creator_id"])
        op.create_index("ix_escrows_buyer_id", "escrows", ["buyer_id"])
        op.create_index("ix_escrows_seller_id", "escrows", ["seller_id"])
        op.create_index("ix_escrows_invitation_status", "escrows", ["invitation_status"])
        op.create_index("ix_escrows_status", "escrows", ["status"])
        op.create_index("ix_escrows_created_at", "escrows", ["created_at"])
        op.create_index("ix_escrows_created_at_id", "escrows", ["created_at", "id"])


def downgrade():
    op.drop_table("escrows")
    op.drop_table("users")
