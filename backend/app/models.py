"""ORM models for the equipment hierarchy and the search view.

Site → Cell → Equipment → PLC → Tag. The search subsystem never writes
these tables; it reads the ``mv_equipment_search`` materialized view,
which is mapped below as a plain Core table on its own metadata so that
``Base.metadata.create_all`` never tries to create it as a table.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import TSVECTOR, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Site(Base):
    """A manufacturing site."""

    __tablename__ = "sites"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    cells: Mapped[list["Cell"]] = relationship(back_populates="site", cascade="all, delete-orphan")


class Cell(Base):
    """A production cell (line) inside a site."""

    __tablename__ = "cells"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    site_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sites.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    line_number: Mapped[str] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    site: Mapped[Site] = relationship(back_populates="cells")
    equipment: Mapped[list["Equipment"]] = relationship(back_populates="cell", cascade="all, delete-orphan")

    __table_args__ = (UniqueConstraint("site_id", "line_number", name="uq_cells_site_line"),)


class Equipment(Base):
    """A machine inside a cell; hosts one or more PLCs."""

    __tablename__ = "equipment"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cell_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("cells.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    equipment_type: Mapped[str] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    cell: Mapped[Cell] = relationship(back_populates="equipment")
    plcs: Mapped[list["PLC"]] = relationship(back_populates="equipment", cascade="all, delete-orphan")


class PLC(Base):
    """A programmable logic controller attached to a piece of equipment."""

    __tablename__ = "plcs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    equipment_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("equipment.id", ondelete="CASCADE"), index=True)
    tag_id: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    make: Mapped[str] = mapped_column(String(100))
    model: Mapped[str] = mapped_column(String(100))
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    firmware_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Maintained by the update_plc_search_vector trigger
    search_vector: Mapped[str | None] = mapped_column(TSVECTOR, nullable=True)

    equipment: Mapped[Equipment] = relationship(back_populates="plcs")
    tags: Mapped[list["Tag"]] = relationship(back_populates="plc", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_plcs_search_vector", "search_vector", postgresql_using="gin"),
        Index("idx_plcs_make_model", "make", "model"),
    )


class Tag(Base):
    """An I/O tag exposed by a PLC."""

    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    plc_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("plcs.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    data_type: Mapped[str] = mapped_column(String(20))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    plc: Mapped[PLC] = relationship(back_populates="tags")


# ---------------------------------------------------------------------------
# Search view (created by migration 002, refreshed by SearchViewRefresher)
# ---------------------------------------------------------------------------

view_metadata = MetaData()

equipment_search_view = Table(
    "mv_equipment_search",
    view_metadata,
    Column("plc_id", UUID(as_uuid=False), primary_key=True),
    Column("tag_id", String),
    Column("plc_description", Text),
    Column("make", String),
    Column("model", String),
    Column("ip_address", String),
    Column("firmware_version", String),
    Column("equipment_id", UUID(as_uuid=False)),
    Column("equipment_name", String),
    Column("equipment_type", String),
    Column("cell_id", UUID(as_uuid=False)),
    Column("cell_name", String),
    Column("line_number", String),
    Column("site_id", UUID(as_uuid=False)),
    Column("site_name", String),
    Column("hierarchy_path", Text),
    Column("combined_search_vector", TSVECTOR),
    Column("tags_text", Text),
)
