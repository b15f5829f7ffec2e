"""Add geostore_descriptors table.

Revision ID: 9c2f4a7e1b05
Revises: 5b7e1d2c9a34
Create Date: 2024-04-02 15:47:09.118203
"""
import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "9c2f4a7e1b05"
down_revision = "5b7e1d2c9a34"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "geostore_descriptors",
        sa.Column("created_on", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_on", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("descriptor", postgresql.JSONB(), nullable=False),
        sa.Column("hash", postgresql.TEXT(), nullable=False),
        sa.ForeignKeyConstraint(["hash"], ["geostore.hash"]),
        sa.PrimaryKeyConstraint("descriptor"),
    )


def downgrade():
    op.drop_table("geostore_descriptors")
