from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_listings"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),

        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.Numeric(14, 2), nullable=False, server_default="0"),

        sa.Column("category", sa.String(length=300), nullable=False, server_default=""),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("category_path", postgresql.JSONB(astext_type=sa.Text()), nullable=True),

        sa.Column("location", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("images", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("main_image_index", sa.Integer(), nullable=False, server_default="0"),

        sa.Column("attributes", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("condition", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("urgency", sa.String(length=20), nullable=False, server_default="medium"),
        sa.Column("geolocation", sa.String(length=120), nullable=True),

        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_urgent_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_showcase", sa.Boolean(), nullable=False, server_default=sa.false()),

        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending_approval"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
    )

    op.create_index("ix_listings_user_id", "listings", ["user_id"])
    op.create_index("ix_listings_status", "listings", ["status"])


def downgrade():
    op.drop_index("ix_listings_status", table_name="listings")
    op.drop_index("ix_listings_user_id", table_name="listings")
    op.drop_table("listings")
