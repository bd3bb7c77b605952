"""Quantity routes for RoadCalc.

Routes:
- GET    /api/phases/{phase_id}/quantities                              - Phase quantity detail
- PUT    /api/phase-items/{phase_item_id}/intervals/{interval_id}/input - Save measured values
- PUT    /api/phase-items/{phase_item_id}/formula                       - Save or clear a formula
- DELETE /api/phase-items/{phase_item_id}                               - Deactivate a phase item
- DELETE /api/intervals/{interval_id}                                   - Delete an interval
- POST   /api/formulas/evaluate                                         - Evaluate without saving
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from roadcalc.config import QuantityConfig
from roadcalc.formula.evaluator import evaluate
from roadcalc.formula.normalize import normalize_input_values
from roadcalc.quantities.service import (
    deactivate_phase_item,
    delete_interval,
    get_phase_quantity_detail,
    upsert_phase_item_formula,
    upsert_phase_item_input,
)
from roadcalc.repository.base import QuantityRepository
from roadcalc.web.dependencies import get_quantity_config, get_repository
from roadcalc.web.models import (
    EvaluateRequest,
    FormulaUpsertRequest,
    InputUpsertRequest,
    to_payload,
)

router = APIRouter(tags=["quantities"])


@router.get("/api/phases/{phase_id}/quantities")
async def phase_quantities(
    phase_id: int,
    repository: QuantityRepository = Depends(get_repository),
    config: QuantityConfig = Depends(get_quantity_config),
):
    """Intervals, active phase items with formulas and bindings, and their inputs."""
    detail = await get_phase_quantity_detail(repository, phase_id, config)
    return to_payload(detail)


@router.put("/api/phase-items/{phase_item_id}/intervals/{interval_id}/input")
async def save_input(
    phase_item_id: int,
    interval_id: int,
    body: InputUpsertRequest,
    repository: QuantityRepository = Depends(get_repository),
    config: QuantityConfig = Depends(get_quantity_config),
):
    """Save measured values; a failing formula is reported in computed_error."""
    row = await upsert_phase_item_input(
        repository,
        phase_item_id,
        interval_id,
        body.values,
        body.manual_quantity,
        config,
    )
    return {"input": to_payload(row)}


@router.put("/api/phase-items/{phase_item_id}/formula")
async def save_formula(
    phase_item_id: int,
    body: FormulaUpsertRequest,
    repository: QuantityRepository = Depends(get_repository),
    config: QuantityConfig = Depends(get_quantity_config),
):
    update = await upsert_phase_item_formula(
        repository,
        phase_item_id,
        body.expression,
        input_schema=body.input_schema,
        unit=body.unit,
        config=config,
    )
    return to_payload(update)


@router.delete("/api/phase-items/{phase_item_id}")
async def remove_phase_item(
    phase_item_id: int,
    repository: QuantityRepository = Depends(get_repository),
):
    item = await deactivate_phase_item(repository, phase_item_id)
    return {"success": True, "phase_item": to_payload(item)}


@router.delete("/api/intervals/{interval_id}")
async def remove_interval(
    interval_id: int,
    repository: QuantityRepository = Depends(get_repository),
):
    await delete_interval(repository, interval_id)
    return {"success": True}


@router.post("/api/formulas/evaluate")
async def evaluate_formula(body: EvaluateRequest):
    """Preview a formula against ad-hoc values. Nothing is stored."""
    result = evaluate(body.expression, normalize_input_values(body.variables))
    return {
        "value": str(result.value) if result.value is not None else None,
        "error": to_payload(result.error),
    }
