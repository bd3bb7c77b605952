"""Pytest configuration and fixtures for RoadCalc tests.

Provides a seeded in-memory repository shaped like a small project:

    project 1
      road 1 "RN1" ── phase 10 (definition 100, LINEAR "Base layer")
                        intervals 1000 [0, 100] BOTH, 1001 [100, 150] LEFT,
                                  1002 [150, 200] RIGHT (bill quantity 40)
      road 2 "RN2" ── phase 20 (definition 100, LINEAR "Base layer")
                        interval 2000 [0, 50] BOTH
    phase items of definition 100: 11 "Backfill" (m3, LINEAR), 12 "Compaction" (m2, POINT)
    phase item 13 "Old item" (inactive)
    BOQ (CONTRACT, project 1): 4 SECTION, 5/7/9 ITEM, 6 inactive ITEM, 8 TOTAL
    BOQ (CONTRACT, project 2): 30 ITEM
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from roadcalc.config import reset_config
from roadcalc.models import (
    BoqItem,
    BoqSheetType,
    BoqTone,
    Interval,
    IntervalSide,
    MeasureMode,
    Phase,
    PhaseItem,
    Road,
)
from roadcalc.repository.memory import InMemoryRepository


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def project_id() -> int:
    return 1


@pytest.fixture
def repository(project_id: int) -> InMemoryRepository:
    """In-memory repository seeded with two roads sharing one phase definition."""
    repo = InMemoryRepository()

    repo.add_road(Road(id=1, name="RN1", slug="rn1", project_id=project_id))
    repo.add_road(Road(id=2, name="RN2", slug="rn2", project_id=project_id))

    repo.add_phase(
        Phase(id=10, road_id=1, phase_definition_id=100, name="Base layer", measure=MeasureMode.LINEAR)
    )
    repo.add_phase(
        Phase(id=20, road_id=2, phase_definition_id=100, name="Base layer", measure=MeasureMode.LINEAR)
    )

    repo.add_phase_item(PhaseItem(id=11, phase_definition_id=100, name="Backfill", unit="m3"))
    repo.add_phase_item(
        PhaseItem(
            id=12, phase_definition_id=100, name="Compaction", unit="m2", measure=MeasureMode.POINT
        )
    )
    repo.add_phase_item(
        PhaseItem(id=13, phase_definition_id=100, name="Old item", is_active=False)
    )

    repo.add_interval(
        Interval(id=1000, phase_id=10, start_pk=Decimal("0"), end_pk=Decimal("100"))
    )
    repo.add_interval(
        Interval(
            id=1001,
            phase_id=10,
            start_pk=Decimal("100"),
            end_pk=Decimal("150"),
            side=IntervalSide.LEFT,
        )
    )
    repo.add_interval(
        Interval(
            id=1002,
            phase_id=10,
            start_pk=Decimal("150"),
            end_pk=Decimal("200"),
            side=IntervalSide.RIGHT,
            bill_quantity=Decimal("40"),
        )
    )
    repo.add_interval(
        Interval(id=2000, phase_id=20, start_pk=Decimal("0"), end_pk=Decimal("50"))
    )

    contract = [
        (4, "300", BoqTone.SECTION, True),
        (5, "300.1", BoqTone.ITEM, True),
        (6, "300.2", BoqTone.ITEM, False),
        (7, "300.3", BoqTone.ITEM, True),
        (8, "300.T", BoqTone.TOTAL, True),
        (9, "300.4", BoqTone.ITEM, True),
    ]
    for sort_order, (boq_id, code, tone, active) in enumerate(contract):
        repo.add_boq_item(
            BoqItem(
                id=boq_id,
                project_id=project_id,
                sheet_type=BoqSheetType.CONTRACT,
                code=code,
                designation_fr=f"Article {code}",
                unit="m3",
                unit_price=Decimal("12.50"),
                quantity=Decimal("100"),
                tone=tone,
                is_active=active,
                sort_order=sort_order * 10,
            )
        )
    repo.add_boq_item(
        BoqItem(id=30, project_id=2, code="100.1", tone=BoqTone.ITEM, sort_order=10)
    )
    return repo
