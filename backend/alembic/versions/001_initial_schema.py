"""Create the equipment hierarchy: sites, cells, equipment, plcs, tags.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-07-29 08:21:47.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Apply schema migrations."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')
    uuid_pk = dict(primary_key=True, server_default=sa.text("gen_random_uuid()"))

    op.create_table(
        "sites",
        sa.Column("id", postgresql.UUID(as_uuid=True), **uuid_pk),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "cells",
        sa.Column("id", postgresql.UUID(as_uuid=True), **uuid_pk),
        sa.Column("site_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("line_number", sa.String(50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("site_id", "line_number", name="uq_cells_site_line"),
    )
    op.create_index("ix_cells_site_id", "cells", ["site_id"])

    op.create_table(
        "equipment",
        sa.Column("id", postgresql.UUID(as_uuid=True), **uuid_pk),
        sa.Column("cell_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("cells.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("equipment_type", sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_equipment_cell_id", "equipment", ["cell_id"])

    op.create_table(
        "plcs",
        sa.Column("id", postgresql.UUID(as_uuid=True), **uuid_pk),
        sa.Column(
            "equipment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("equipment.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tag_id", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("make", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("firmware_version", sa.String(50), nullable=True),
        sa.Column("search_vector", postgresql.TSVECTOR, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_plcs_equipment_id", "plcs", ["equipment_id"])
    op.create_index("idx_plcs_make_model", "plcs", ["make", "model"])
    op.create_index("idx_plcs_search_vector", "plcs", ["search_vector"], postgresql_using="gin")

    op.create_table(
        "tags",
        sa.Column("id", postgresql.UUID(as_uuid=True), **uuid_pk),
        sa.Column("plc_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("plcs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("data_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("address", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tags_plc_id", "tags", ["plc_id"])

    # Keep plcs.search_vector current (description > make/model > tag id)
    op.execute(
        """
        CREATE OR REPLACE FUNCTION update_plc_search_vector()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.search_vector :=
                setweight(to_tsvector('english', coalesce(NEW.description, '')), 'A') ||
                setweight(to_tsvector('english', coalesce(NEW.make, '') || ' ' || coalesce(NEW.model, '')), 'B') ||
                setweight(to_tsvector('english', coalesce(NEW.tag_id, '')), 'C');
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER update_plcs_search_vector
            BEFORE INSERT OR UPDATE ON plcs
            FOR EACH ROW
            EXECUTE FUNCTION update_plc_search_vector();
        """
    )


def downgrade() -> None:
    """Revert schema migrations."""
    op.execute("DROP TRIGGER IF EXISTS update_plcs_search_vector ON plcs")
    op.execute("DROP FUNCTION IF EXISTS update_plc_search_vector()")
    op.drop_table("tags")
    op.drop_table("plcs")
    op.drop_table("equipment")
    op.drop_table("cells")
    op.drop_table("sites")
