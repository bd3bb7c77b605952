"""SQLAlchemy async database models for RoadCalc.

Quantities are stored as NUMERIC so values round-trip exactly; measured input
values are stored as JSON with decimal strings for the same reason.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class RoadModel(Base):
    __tablename__ = "roads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int | None] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)


class PhaseModel(Base):
    """Phase definition instantiated on a road."""

    __tablename__ = "phases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    road_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("roads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phase_definition_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    measure: Mapped[str] = mapped_column(String(10), nullable=False, default="LINEAR")
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("measure IN ('LINEAR', 'POINT')", name="check_phase_measure"),
    )


class PhaseItemModel(Base):
    __tablename__ = "phase_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phase_definition_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    spec: Mapped[str | None] = mapped_column(Text)
    measure: Mapped[str] = mapped_column(String(10), nullable=False, default="LINEAR")
    unit: Mapped[str | None] = mapped_column(String(32))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("measure IN ('LINEAR', 'POINT')", name="check_phase_item_measure"),
        Index("idx_phase_items_definition_active", "phase_definition_id", "is_active"),
    )


class PhaseItemFormulaModel(Base):
    """At most one formula per phase item."""

    __tablename__ = "phase_item_formulas"

    phase_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("phase_items.id", ondelete="CASCADE"), primary_key=True
    )
    expression: Mapped[str] = mapped_column(Text, nullable=False)
    input_schema: Mapped[dict | None] = mapped_column(JSON)
    unit: Mapped[str | None] = mapped_column(String(32))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class IntervalModel(Base):
    __tablename__ = "intervals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phase_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_pk: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    end_pk: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    side: Mapped[str] = mapped_column(String(10), nullable=False, default="BOTH")
    spec: Mapped[str | None] = mapped_column(Text)
    bill_quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))

    __table_args__ = (
        CheckConstraint("side IN ('LEFT', 'RIGHT', 'BOTH')", name="check_interval_side"),
    )


class PhaseItemInputModel(Base):
    """Measured values and stored quantities for one (phase item, interval)."""

    __tablename__ = "phase_item_inputs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phase_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("phase_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    interval_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("intervals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    values: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    manual_quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    computed_quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    computed_error: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("phase_item_id", "interval_id", name="uq_phase_item_interval"),
    )


class BoqItemModel(Base):
    """Bill-of-quantities line on the CONTRACT or ACTUAL sheet."""

    __tablename__ = "boq_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    sheet_type: Mapped[str] = mapped_column(String(10), nullable=False, default="CONTRACT")
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    designation_zh: Mapped[str] = mapped_column(Text, nullable=False, default="")
    designation_fr: Mapped[str] = mapped_column(Text, nullable=False, default="")
    unit: Mapped[str | None] = mapped_column(String(32))
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 3))
    total_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    tone: Mapped[str] = mapped_column(String(12), nullable=False, default="ITEM")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    contract_item_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("boq_items.id", ondelete="SET NULL")
    )

    __table_args__ = (
        CheckConstraint("sheet_type IN ('CONTRACT', 'ACTUAL')", name="check_boq_sheet_type"),
        CheckConstraint(
            "tone IN ('SECTION', 'SUBSECTION', 'ITEM', 'TOTAL')", name="check_boq_tone"
        ),
        Index("idx_boq_items_project_sheet", "project_id", "sheet_type", "sort_order"),
    )


class PhaseItemBoqLinkModel(Base):
    """Phase item to BOQ line association. Unlinking flips is_active."""

    __tablename__ = "phase_item_boq_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phase_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("phase_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    boq_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("boq_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("phase_item_id", "boq_item_id", name="uq_phase_item_boq_item"),
        Index("idx_links_project_active", "project_id", "is_active"),
    )
