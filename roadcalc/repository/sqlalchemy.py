"""SQLAlchemy implementation of the persistence port.

Wraps an AsyncSession. ``transaction()`` opens a transaction, or a SAVEPOINT
when the session already has one, and translates driver failures into the
RoadCalc error taxonomy.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TypeVar

from pydantic import BaseModel
from sqlalchemy import and_, case, delete, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roadcalc.db.models import (
    BoqItemModel,
    IntervalModel,
    PhaseItemBoqLinkModel,
    PhaseItemFormulaModel,
    PhaseItemInputModel,
    PhaseItemModel,
    PhaseModel,
    RoadModel,
)
from roadcalc.errors import ConstraintViolation, TransactionFailure
from roadcalc.models import (
    BoqItem,
    BoqSheetType,
    BoqTone,
    Interval,
    Phase,
    PhaseItem,
    PhaseItemBoqLink,
    PhaseItemFormula,
    PhaseItemInput,
    Road,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_SIDE_ORDER = case({"LEFT": 0, "RIGHT": 1, "BOTH": 2}, value=IntervalModel.side, else_=3)


def _to_model(row, model_cls: type[M]) -> M:
    return model_cls.model_validate(row, from_attributes=True)


class SqlAlchemyRepository:
    """QuantityRepository backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            if self.session.in_transaction():
                async with self.session.begin_nested():
                    yield
            else:
                async with self.session.begin():
                    yield
        except IntegrityError as exc:
            logger.warning("Transaction rejected by database constraint: %s", exc.orig)
            raise ConstraintViolation(f"database constraint violated: {exc.orig}") from exc
        except DBAPIError as exc:
            logger.error("Transaction aborted: %s", exc.orig)
            raise TransactionFailure(f"transaction aborted: {exc.orig}") from exc

    async def _flush(self, row) -> None:
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)

    # ------------------------------------------------------------------
    # Roads & phases
    # ------------------------------------------------------------------

    async def get_road(self, road_id: int) -> Road | None:
        row = await self.session.get(RoadModel, road_id)
        return _to_model(row, Road) if row else None

    async def list_roads(self, project_id: int | None = None) -> list[Road]:
        stmt = select(RoadModel).order_by(RoadModel.name, RoadModel.id)
        if project_id is not None:
            stmt = stmt.where(RoadModel.project_id == project_id)
        result = await self.session.execute(stmt)
        return [_to_model(row, Road) for row in result.scalars().all()]

    async def get_phase(self, phase_id: int) -> Phase | None:
        row = await self.session.get(PhaseModel, phase_id)
        return _to_model(row, Phase) if row else None

    async def list_phases(self, road_id: int) -> list[Phase]:
        stmt = select(PhaseModel).where(PhaseModel.road_id == road_id).order_by(PhaseModel.id)
        result = await self.session.execute(stmt)
        return [_to_model(row, Phase) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Phase items & formulas
    # ------------------------------------------------------------------

    async def get_phase_item(self, phase_item_id: int) -> PhaseItem | None:
        row = await self.session.get(PhaseItemModel, phase_item_id)
        return _to_model(row, PhaseItem) if row else None

    async def list_phase_items(
        self, phase_definition_id: int, include_inactive: bool = False
    ) -> list[PhaseItem]:
        stmt = (
            select(PhaseItemModel)
            .where(PhaseItemModel.phase_definition_id == phase_definition_id)
            .order_by(PhaseItemModel.name, PhaseItemModel.id)
        )
        if not include_inactive:
            stmt = stmt.where(PhaseItemModel.is_active.is_(True))
        result = await self.session.execute(stmt)
        return [_to_model(row, PhaseItem) for row in result.scalars().all()]

    async def save_phase_item(self, item: PhaseItem) -> PhaseItem:
        row = await self.session.get(PhaseItemModel, item.id)
        if row is None:
            row = PhaseItemModel(id=item.id)
        row.phase_definition_id = item.phase_definition_id
        row.name = item.name
        row.spec = item.spec
        row.measure = item.measure.value
        row.unit = item.unit
        row.is_active = item.is_active
        await self._flush(row)
        return _to_model(row, PhaseItem)

    async def get_formula(self, phase_item_id: int) -> PhaseItemFormula | None:
        row = await self.session.get(PhaseItemFormulaModel, phase_item_id)
        return _to_model(row, PhaseItemFormula) if row else None

    async def get_formulas(self, phase_item_ids: Iterable[int]) -> dict[int, PhaseItemFormula]:
        ids = list(phase_item_ids)
        if not ids:
            return {}
        stmt = select(PhaseItemFormulaModel).where(PhaseItemFormulaModel.phase_item_id.in_(ids))
        result = await self.session.execute(stmt)
        return {
            row.phase_item_id: _to_model(row, PhaseItemFormula)
            for row in result.scalars().all()
        }

    async def save_formula(self, formula: PhaseItemFormula) -> PhaseItemFormula:
        row = await self.session.get(PhaseItemFormulaModel, formula.phase_item_id)
        if row is None:
            row = PhaseItemFormulaModel(phase_item_id=formula.phase_item_id)
        row.expression = formula.expression
        row.input_schema = (
            formula.input_schema.model_dump(mode="json") if formula.input_schema else None
        )
        row.unit = formula.unit
        row.updated_at = datetime.now(timezone.utc)
        await self._flush(row)
        return _to_model(row, PhaseItemFormula)

    async def delete_formula(self, phase_item_id: int) -> None:
        await self.session.execute(
            delete(PhaseItemFormulaModel).where(
                PhaseItemFormulaModel.phase_item_id == phase_item_id
            )
        )

    # ------------------------------------------------------------------
    # Intervals
    # ------------------------------------------------------------------

    async def get_interval(self, interval_id: int) -> Interval | None:
        row = await self.session.get(IntervalModel, interval_id)
        return _to_model(row, Interval) if row else None

    async def get_intervals(self, interval_ids: Iterable[int]) -> dict[int, Interval]:
        ids = list(interval_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(IntervalModel).where(IntervalModel.id.in_(ids))
        )
        return {row.id: _to_model(row, Interval) for row in result.scalars().all()}

    async def list_intervals(self, phase_id: int) -> list[Interval]:
        stmt = (
            select(IntervalModel)
            .where(IntervalModel.phase_id == phase_id)
            .order_by(IntervalModel.start_pk, IntervalModel.end_pk, _SIDE_ORDER, IntervalModel.id)
        )
        result = await self.session.execute(stmt)
        return [_to_model(row, Interval) for row in result.scalars().all()]

    async def delete_interval(self, interval_id: int) -> bool:
        row = await self.session.get(IntervalModel, interval_id)
        if row is None:
            return False
        # Not every backend enforces ON DELETE CASCADE
        await self.session.execute(
            delete(PhaseItemInputModel).where(PhaseItemInputModel.interval_id == interval_id)
        )
        await self.session.delete(row)
        await self.session.flush()
        return True

    # ------------------------------------------------------------------
    # Input rows
    # ------------------------------------------------------------------

    async def _get_input_row(
        self, phase_item_id: int, interval_id: int
    ) -> PhaseItemInputModel | None:
        stmt = select(PhaseItemInputModel).where(
            and_(
                PhaseItemInputModel.phase_item_id == phase_item_id,
                PhaseItemInputModel.interval_id == interval_id,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_input(self, phase_item_id: int, interval_id: int) -> PhaseItemInput | None:
        row = await self._get_input_row(phase_item_id, interval_id)
        return _to_model(row, PhaseItemInput) if row else None

    async def list_inputs(
        self,
        phase_item_ids: Sequence[int] | None = None,
        interval_ids: Sequence[int] | None = None,
    ) -> list[PhaseItemInput]:
        stmt = select(PhaseItemInputModel).order_by(PhaseItemInputModel.id)
        if phase_item_ids is not None:
            stmt = stmt.where(PhaseItemInputModel.phase_item_id.in_(list(phase_item_ids)))
        if interval_ids is not None:
            stmt = stmt.where(PhaseItemInputModel.interval_id.in_(list(interval_ids)))
        result = await self.session.execute(stmt)
        return [_to_model(row, PhaseItemInput) for row in result.scalars().all()]

    async def save_input(self, row: PhaseItemInput) -> PhaseItemInput:
        stored = await self._get_input_row(row.phase_item_id, row.interval_id)
        if stored is None:
            stored = PhaseItemInputModel(
                phase_item_id=row.phase_item_id, interval_id=row.interval_id
            )
        # JSON has no decimal type; keep exact digits as strings
        stored.values = {name: str(value) for name, value in row.values.items()}
        stored.manual_quantity = row.manual_quantity
        stored.computed_quantity = row.computed_quantity
        stored.computed_error = row.computed_error
        stored.updated_at = datetime.now(timezone.utc)
        await self._flush(stored)
        return _to_model(stored, PhaseItemInput)

    # ------------------------------------------------------------------
    # BOQ items & links
    # ------------------------------------------------------------------

    async def get_boq_items(self, boq_item_ids: Iterable[int]) -> dict[int, BoqItem]:
        ids = list(boq_item_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(BoqItemModel).where(BoqItemModel.id.in_(ids)))
        return {row.id: _to_model(row, BoqItem) for row in result.scalars().all()}

    async def list_boq_items(
        self,
        project_id: int,
        sheet_type: BoqSheetType,
        tone: BoqTone | None = None,
        include_inactive: bool = False,
    ) -> list[BoqItem]:
        stmt = (
            select(BoqItemModel)
            .where(
                and_(
                    BoqItemModel.project_id == project_id,
                    BoqItemModel.sheet_type == sheet_type.value,
                )
            )
            .order_by(BoqItemModel.sort_order, BoqItemModel.id)
        )
        if tone is not None:
            stmt = stmt.where(BoqItemModel.tone == tone.value)
        if not include_inactive:
            stmt = stmt.where(BoqItemModel.is_active.is_(True))
        result = await self.session.execute(stmt)
        return [_to_model(row, BoqItem) for row in result.scalars().all()]

    async def add_boq_items(self, items: Sequence[BoqItem]) -> list[BoqItem]:
        rows = [
            BoqItemModel(
                id=item.id,
                project_id=item.project_id,
                sheet_type=item.sheet_type.value,
                code=item.code,
                designation_zh=item.designation_zh,
                designation_fr=item.designation_fr,
                unit=item.unit,
                unit_price=item.unit_price,
                quantity=item.quantity,
                total_price=item.total_price,
                tone=item.tone.value,
                is_active=item.is_active,
                sort_order=item.sort_order,
                contract_item_id=item.contract_item_id,
            )
            for item in items
        ]
        self.session.add_all(rows)
        await self.session.flush()
        return [_to_model(row, BoqItem) for row in rows]

    async def list_links(
        self,
        phase_item_ids: Sequence[int] | None = None,
        active_only: bool = True,
        project_id: int | None = None,
        for_update: bool = False,
    ) -> list[PhaseItemBoqLink]:
        stmt = select(PhaseItemBoqLinkModel).order_by(PhaseItemBoqLinkModel.id)
        if phase_item_ids is not None:
            stmt = stmt.where(PhaseItemBoqLinkModel.phase_item_id.in_(list(phase_item_ids)))
        if active_only:
            stmt = stmt.where(PhaseItemBoqLinkModel.is_active.is_(True))
        if project_id is not None:
            stmt = stmt.where(PhaseItemBoqLinkModel.project_id == project_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return [_to_model(row, PhaseItemBoqLink) for row in result.scalars().all()]

    async def save_link(self, link: PhaseItemBoqLink) -> PhaseItemBoqLink:
        row = None
        if link.id is not None:
            row = await self.session.get(PhaseItemBoqLinkModel, link.id)
        if row is None:
            row = PhaseItemBoqLinkModel()
        row.phase_item_id = link.phase_item_id
        row.boq_item_id = link.boq_item_id
        row.project_id = link.project_id
        row.is_active = link.is_active
        row.updated_at = datetime.now(timezone.utc)
        await self._flush(row)
        return _to_model(row, PhaseItemBoqLink)
