"""Progress routes for RoadCalc.

Routes:
- GET /api/progress        - Completion per road, phase and interval
- GET /api/progress/phases - Phase completion summed across roads
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from fastapi import APIRouter, Depends

from roadcalc.progress.aggregator import (
    PhaseProgress,
    PhaseRollup,
    RoadProgress,
    rollup_by_phase_definition,
)
from roadcalc.progress.service import load_project_progress
from roadcalc.repository.base import QuantityRepository
from roadcalc.web.dependencies import get_repository

router = APIRouter(tags=["progress"])


def _decimal(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _percent(ratio: Decimal | None) -> int | None:
    if ratio is None:
        return None
    return int((ratio * 100).to_integral_value(rounding=ROUND_HALF_UP))


def _phase_payload(phase: PhaseProgress) -> dict:
    return {
        "phase_id": phase.phase_id,
        "name": phase.name,
        "measure": phase.measure.value,
        "phase_definition_id": phase.phase_definition_id,
        "completed_quantity": _decimal(phase.completed_quantity),
        "target_quantity": _decimal(phase.target_quantity),
        "ratio": _decimal(phase.ratio),
        "completed_percent": _percent(phase.display_ratio),
        "over_completed": phase.over_completed,
        "measured_count": phase.measured_count,
        "unmeasured_count": phase.unmeasured_count,
        "updated_at": phase.updated_at.isoformat() if phase.updated_at else None,
        "intervals": [
            {
                "interval_id": interval.interval_id,
                "effective_quantity": _decimal(interval.effective_quantity),
                "target_quantity": _decimal(interval.target_quantity),
                "ratio": _decimal(interval.ratio),
                "display_ratio": _decimal(interval.display_ratio),
                "over_completed": interval.over_completed,
            }
            for interval in phase.intervals
        ],
    }


def _road_payload(road: RoadProgress) -> dict:
    return {
        "road_id": road.road_id,
        "name": road.name,
        "completed_quantity": _decimal(road.completed_quantity),
        "target_quantity": _decimal(road.target_quantity),
        "ratio": _decimal(road.ratio),
        "completed_percent": _percent(road.display_ratio),
        "over_completed": road.over_completed,
        "measured_count": road.measured_count,
        "unmeasured_count": road.unmeasured_count,
        "phases": [_phase_payload(phase) for phase in road.phases],
    }


def _rollup_payload(rollup: PhaseRollup) -> dict:
    return {
        "id": rollup.key,
        "name": rollup.name,
        "measure": rollup.measure.value,
        "phase_definition_id": rollup.phase_definition_id,
        "completed_quantity": _decimal(rollup.completed_quantity),
        "target_quantity": _decimal(rollup.target_quantity),
        "completed_percent": _percent(rollup.display_ratio),
        "measured_count": rollup.measured_count,
        "unmeasured_count": rollup.unmeasured_count,
        "road_names": rollup.road_names,
        "latest_updated_at": (
            rollup.latest_updated_at.isoformat() if rollup.latest_updated_at else None
        ),
    }


@router.get("/api/progress")
async def project_progress(
    project_id: str | None = None,
    repository: QuantityRepository = Depends(get_repository),
):
    roads = await load_project_progress(repository, project_id)
    return {"roads": [_road_payload(road) for road in roads]}


@router.get("/api/progress/phases")
async def phase_progress(
    project_id: str | None = None,
    repository: QuantityRepository = Depends(get_repository),
):
    roads = await load_project_progress(repository, project_id)
    return {"phases": [_rollup_payload(r) for r in rollup_by_phase_definition(roads)]}
