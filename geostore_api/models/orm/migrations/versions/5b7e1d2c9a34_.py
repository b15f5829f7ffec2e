"""Create geostore and geostore_aliases tables.

Revision ID: 5b7e1d2c9a34
Revises:
Create Date: 2024-03-11 10:12:41.327804
"""
import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5b7e1d2c9a34"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "geostore",
        sa.Column("created_on", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_on", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("hash", postgresql.TEXT(), nullable=False),
        sa.Column("geojson", postgresql.JSONB(), nullable=False),
        sa.Column("area_ha", postgresql.DOUBLE_PRECISION(), nullable=True),
        sa.Column(
            "bbox", postgresql.ARRAY(postgresql.DOUBLE_PRECISION()), nullable=True
        ),
        sa.Column("info", postgresql.JSONB(), server_default="{}", nullable=False),
        sa.Column(
            "provider", postgresql.JSONB(), server_default="{}", nullable=False
        ),
        sa.Column("lock", sa.Boolean(), server_default="false", nullable=False),
        sa.PrimaryKeyConstraint("hash"),
    )
    op.create_index(
        "geostore_info_idx", "geostore", ["info"], postgresql_using="gin"
    )

    op.create_table(
        "geostore_aliases",
        sa.Column("created_on", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_on", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("old_id", postgresql.TEXT(), nullable=False),
        sa.Column("hash", postgresql.TEXT(), nullable=False),
        sa.PrimaryKeyConstraint("old_id"),
    )


def downgrade():
    op.drop_table("geostore_aliases")
    op.drop_index("geostore_info_idx", table_name="geostore")
    op.drop_table("geostore")
