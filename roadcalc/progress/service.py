"""Build progress figures from stored quantities."""

from __future__ import annotations

import logging
from decimal import Decimal

from roadcalc.models import Interval, MeasureMode, PhaseItemInput
from roadcalc.progress.aggregator import (
    IntervalQuantity,
    PhaseQuantities,
    RoadProgress,
    RoadQuantities,
    aggregate_roads,
    design_length,
)
from roadcalc.repository.base import QuantityRepository
from roadcalc.validation import parse_optional_id

logger = logging.getLogger(__name__)


def _interval_effective_quantity(
    item_ids: list[int], rows: dict[int, PhaseItemInput]
) -> Decimal | None:
    """Sum of the tracked items' effective quantities.

    Unknown when no item is tracked, or when any tracked item has no row or a
    row without an effective quantity.
    """
    if not item_ids:
        return None
    total = Decimal(0)
    for item_id in item_ids:
        row = rows.get(item_id)
        quantity = row.effective_quantity if row is not None else None
        if quantity is None:
            return None
        total += quantity
    return total


def _target_quantity(interval: Interval, measure: MeasureMode) -> Decimal:
    if interval.bill_quantity is not None:
        return interval.bill_quantity
    return design_length(measure, interval)


async def load_road_quantities(
    repository: QuantityRepository, project_id: int | None = None
) -> list[RoadQuantities]:
    """Collect aggregator input for every road of a project (or all roads).

    Only active phase items measured the same way as their phase are tracked,
    so quantities in unlike units are never added together. The target of an
    interval is its bill quantity, or its design length when none is recorded.
    """
    roads: list[RoadQuantities] = []
    for road in await repository.list_roads(project_id):
        phases: list[PhaseQuantities] = []
        for phase in await repository.list_phases(road.id):
            intervals = await repository.list_intervals(phase.id)
            items = await repository.list_phase_items(phase.phase_definition_id)
            item_ids = [item.id for item in items if item.measure == phase.measure]
            rows_by_interval: dict[int, dict[int, PhaseItemInput]] = {}
            if intervals and item_ids:
                rows = await repository.list_inputs(
                    phase_item_ids=item_ids,
                    interval_ids=[interval.id for interval in intervals],
                )
                for row in rows:
                    rows_by_interval.setdefault(row.interval_id, {})[row.phase_item_id] = row

            phases.append(
                PhaseQuantities(
                    phase_id=phase.id,
                    name=phase.name,
                    measure=phase.measure,
                    phase_definition_id=phase.phase_definition_id,
                    updated_at=phase.updated_at,
                    intervals=[
                        IntervalQuantity(
                            interval_id=interval.id,
                            effective_quantity=_interval_effective_quantity(
                                item_ids, rows_by_interval.get(interval.id, {})
                            ),
                            target_quantity=_target_quantity(interval, phase.measure),
                            spec=interval.spec,
                        )
                        for interval in intervals
                    ],
                )
            )
        roads.append(RoadQuantities(road_id=road.id, name=road.name, phases=phases))
    return roads


async def load_project_progress(
    repository: QuantityRepository, project_id: int | str | None = None
) -> list[RoadProgress]:
    """Progress per road for one project, or for every road when project_id is None.

    Raises:
        ValidationError: If project_id is given but not a positive integer
    """
    project_id = parse_optional_id(project_id, "project_id")
    roads = await load_road_quantities(repository, project_id)
    progress = aggregate_roads(roads)
    logger.debug("Aggregated progress for %d roads (project %s)", len(progress), project_id)
    return progress
