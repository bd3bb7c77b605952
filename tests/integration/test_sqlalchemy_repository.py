"""Integration tests for the SQLAlchemy repository on SQLite.

Runs the quantity, binding and progress services against real tables so that
constraints, savepoints and NUMERIC round-trips are exercised.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from roadcalc.boq.bindings import BoqBindingManager
from roadcalc.boq.sheets import seed_actual_sheet
from roadcalc.db.connection import enable_sqlite_transactions
from roadcalc.db.models import (
    Base,
    BoqItemModel,
    IntervalModel,
    PhaseItemBoqLinkModel,
    PhaseItemModel,
    PhaseModel,
    RoadModel,
)
from roadcalc.errors import ConstraintViolation
from roadcalc.models import BoqSheetType, PhaseItemBoqLink
from roadcalc.progress.service import load_project_progress
from roadcalc.quantities.service import (
    delete_interval,
    upsert_phase_item_formula,
    upsert_phase_item_input,
)
from roadcalc.repository.sqlalchemy import SqlAlchemyRepository


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    enable_sqlite_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def repository(db_session: AsyncSession) -> SqlAlchemyRepository:
    """One road, one phase with two intervals, two phase items, a small CONTRACT sheet."""
    stamp = datetime(2026, 5, 1, tzinfo=timezone.utc)
    db_session.add_all(
        [
            RoadModel(id=1, project_id=1, name="RN1", slug="rn1"),
            PhaseItemModel(id=11, phase_definition_id=100, name="Backfill", unit="m3"),
            PhaseItemModel(
                id=12, phase_definition_id=100, name="Compaction", unit="m2", measure="POINT"
            ),
            BoqItemModel(id=4, project_id=1, code="300", tone="SECTION", sort_order=0),
            BoqItemModel(
                id=5, project_id=1, code="300.1", unit_price=Decimal("12.50"), sort_order=10
            ),
            BoqItemModel(id=7, project_id=1, code="300.3", sort_order=30),
            BoqItemModel(id=9, project_id=1, code="300.4", sort_order=50),
        ]
    )
    await db_session.flush()
    db_session.add_all(
        [
            PhaseModel(
                id=10, road_id=1, phase_definition_id=100, name="Base layer", updated_at=stamp
            ),
        ]
    )
    await db_session.flush()
    db_session.add_all(
        [
            IntervalModel(
                id=1001, phase_id=10, start_pk=Decimal("100"), end_pk=Decimal("150"), side="LEFT"
            ),
            IntervalModel(id=1000, phase_id=10, start_pk=Decimal("0"), end_pk=Decimal("100")),
        ]
    )
    await db_session.commit()
    return SqlAlchemyRepository(db_session)


class TestQuantities:
    """Tests for input and formula persistence."""

    @pytest.mark.asyncio
    async def test_input_round_trip(self, repository):
        await upsert_phase_item_formula(
            repository, 11, "length * width", input_schema=["width"], unit="m2"
        )
        await upsert_phase_item_input(repository, 11, 1000, {"length": "10", "width": "2"})

        row = await repository.get_input(11, 1000)
        formula = await repository.get_formula(11)

        assert row.computed_quantity == Decimal("20.000")
        assert row.computed_error is None
        assert row.values == {"length": Decimal("10"), "width": Decimal("2")}
        assert formula.input_schema.names == ["width"]

    @pytest.mark.asyncio
    async def test_upsert_keeps_one_row(self, repository):
        await upsert_phase_item_input(repository, 12, 1000, {"a": "1"})
        await upsert_phase_item_input(repository, 12, 1000, {"a": "2"}, manual_quantity="5")

        rows = await repository.list_inputs(phase_item_ids=[12])

        assert len(rows) == 1
        assert rows[0].manual_quantity == Decimal("5.000")

    @pytest.mark.asyncio
    async def test_intervals_in_chainage_order(self, repository):
        intervals = await repository.list_intervals(10)
        assert [i.id for i in intervals] == [1000, 1001]

    @pytest.mark.asyncio
    async def test_delete_interval_removes_inputs(self, repository):
        await upsert_phase_item_input(repository, 11, 1001, {"a": "1"})

        await delete_interval(repository, 1001)

        assert await repository.get_interval(1001) is None
        assert await repository.list_inputs(interval_ids=[1001]) == []


class TestBindings:
    """Tests for link persistence and constraint mapping."""

    @pytest.mark.asyncio
    async def test_symmetric_difference(self, repository, db_session):
        manager = BoqBindingManager(repository)
        await manager.set_bindings(11, [5, 7])

        await manager.set_bindings(11, [7, 9])

        links = await repository.list_links(phase_item_ids=[11], active_only=False)
        assert {(link.boq_item_id, link.is_active) for link in links} == {
            (5, False),
            (7, True),
            (9, True),
        }
        assert [item.id for item in await manager.list_bindings(11)] == [7, 9]

    @pytest.mark.asyncio
    async def test_rejected_set_writes_nothing(self, repository, db_session):
        manager = BoqBindingManager(repository)

        with pytest.raises(ConstraintViolation):
            await manager.set_bindings(11, [5, 4])

        count = await db_session.scalar(select(func.count()).select_from(PhaseItemBoqLinkModel))
        assert count == 0

    @pytest.mark.asyncio
    async def test_duplicate_link_is_constraint_violation(self, repository):
        async with repository.transaction():
            await repository.save_link(
                PhaseItemBoqLink(phase_item_id=11, boq_item_id=5, project_id=1)
            )

        with pytest.raises(ConstraintViolation):
            async with repository.transaction():
                await repository.save_link(
                    PhaseItemBoqLink(phase_item_id=11, boq_item_id=5, project_id=1)
                )

        links = await repository.list_links(phase_item_ids=[11])
        assert len(links) == 1

    @pytest.mark.asyncio
    async def test_failed_block_rolls_back(self, repository):
        with pytest.raises(RuntimeError):
            async with repository.transaction():
                await repository.save_link(
                    PhaseItemBoqLink(phase_item_id=11, boq_item_id=7, project_id=1)
                )
                raise RuntimeError("abort")

        assert await repository.list_links(phase_item_ids=[11]) == []


class TestSheetsAndProgress:
    """Tests for ACTUAL seeding and progress over stored rows."""

    @pytest.mark.asyncio
    async def test_seed_actual_sheet(self, repository):
        result = await seed_actual_sheet(repository, 1)

        assert result.created is True
        assert [item.contract_item_id for item in result.items] == [4, 5, 7, 9]
        assert {item.sheet_type for item in result.items} == {BoqSheetType.ACTUAL}
        assert (await seed_actual_sheet(repository, 1)).created is False

    @pytest.mark.asyncio
    async def test_progress(self, repository):
        await upsert_phase_item_input(repository, 11, 1000, {}, manual_quantity="50")

        (road,) = await load_project_progress(repository, 1)

        assert road.completed_quantity == Decimal("50")
        assert road.target_quantity == Decimal("200")
        assert road.ratio == Decimal("0.25")
        assert road.unmeasured_count == 1

    @pytest.mark.asyncio
    async def test_progress_ignores_other_measure(self, repository):
        await upsert_phase_item_input(repository, 11, 1000, {}, manual_quantity="50")
        await upsert_phase_item_input(repository, 12, 1000, {}, manual_quantity="7")
        await upsert_phase_item_input(repository, 12, 1001, {}, manual_quantity="3")

        (road,) = await load_project_progress(repository, 1)

        assert road.completed_quantity == Decimal("50")
        assert road.unmeasured_count == 1
