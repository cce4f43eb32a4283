"""Equipment search view: pg_trgm, mv_equipment_search and its refresh function.

Revision ID: 002_equipment_search_view
Revises: 001_initial_schema
Create Date: 2025-08-20 00:00:00.000000

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002_equipment_search_view"
down_revision: Union[str, None] = "001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_TRGM_COLUMNS = ("description", "make", "model", "tag_id")


def upgrade() -> None:
    """Apply schema migrations."""
    op.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")

    # Backfill vectors for rows written before the trigger existed
    op.execute(
        """
        UPDATE plcs SET search_vector =
            setweight(to_tsvector('english', coalesce(description, '')), 'A') ||
            setweight(to_tsvector('english', coalesce(make, '') || ' ' || coalesce(model, '')), 'B') ||
            setweight(to_tsvector('english', coalesce(tag_id, '')), 'C')
        """
    )

    for column in _TRGM_COLUMNS:
        op.execute(f"CREATE INDEX IF NOT EXISTS idx_plcs_{column}_trgm ON plcs USING gin ({column} gin_trgm_ops)")

    op.execute(
        """
        CREATE MATERIALIZED VIEW mv_equipment_search AS
        SELECT
            p.id AS plc_id,
            p.tag_id,
            p.description AS plc_description,
            p.make,
            p.model,
            p.ip_address,
            p.firmware_version,
            e.id AS equipment_id,
            e.name AS equipment_name,
            e.equipment_type,
            c.id AS cell_id,
            c.name AS cell_name,
            c.line_number,
            s.id AS site_id,
            s.name AS site_name,
            concat(s.name, ' > ', c.name, ' > ', e.name, ' > ', p.tag_id) AS hierarchy_path,
            setweight(to_tsvector('english', coalesce(p.description, '')), 'A') ||
            setweight(to_tsvector('english', coalesce(p.make, '') || ' ' || coalesce(p.model, '')), 'B') ||
            setweight(to_tsvector('english', coalesce(p.tag_id, '')), 'C') ||
            setweight(
                to_tsvector('english', coalesce(s.name, '') || ' ' || coalesce(c.name, '') || ' ' || coalesce(e.name, '')),
                'D'
            ) AS combined_search_vector,
            coalesce(
                (SELECT string_agg(t.name || ' ' || coalesce(t.description, ''), ' ')
                 FROM tags t WHERE t.plc_id = p.id),
                ''
            ) AS tags_text
        FROM plcs p
        JOIN equipment e ON p.equipment_id = e.id
        JOIN cells c ON e.cell_id = c.id
        JOIN sites s ON c.site_id = s.id
        """
    )

    # The unique index is required for REFRESH ... CONCURRENTLY
    op.execute("CREATE UNIQUE INDEX idx_mv_equipment_search_plc_id ON mv_equipment_search (plc_id)")
    op.execute(
        "CREATE INDEX idx_mv_equipment_search_combined_vector ON mv_equipment_search USING gin (combined_search_vector)"
    )
    op.execute("CREATE INDEX idx_mv_equipment_search_site_name ON mv_equipment_search (site_name)")
    op.execute("CREATE INDEX idx_mv_equipment_search_equipment_type ON mv_equipment_search (equipment_type)")
    op.execute("CREATE INDEX idx_mv_equipment_search_make_model ON mv_equipment_search (make, model)")

    op.execute(
        """
        CREATE OR REPLACE FUNCTION refresh_equipment_search_view()
        RETURNS void AS $$
        BEGIN
            REFRESH MATERIALIZED VIEW CONCURRENTLY mv_equipment_search;
        END;
        $$ LANGUAGE plpgsql;
        """
    )


def downgrade() -> None:
    """Revert schema migrations."""
    op.execute("DROP FUNCTION IF EXISTS refresh_equipment_search_view()")
    op.execute("DROP MATERIALIZED VIEW IF EXISTS mv_equipment_search")
    for column in _TRGM_COLUMNS:
        op.execute(f"DROP INDEX IF EXISTS idx_plcs_{column}_trgm")
    # pg_trgm is left installed; other schemas may use it
