"""BOQ binding routes for RoadCalc.

Routes:
- GET  /api/phase-item-bindings                      - Active bindings (?project_id= or ?scope=all)
- POST /api/phase-item-bindings                      - Single binding, or binding set with boq_item_ids
- GET  /api/phase-items/{phase_item_id}/boq-bindings - BOQ items bound to a phase item
- PUT  /api/phase-items/{phase_item_id}/boq-bindings - Replace a phase item's binding set
- GET  /api/intervals/{interval_id}/bound-items      - BOQ items bound on one interval
- POST /api/intervals/bound-items                    - Batch form (capped)
- POST /api/boq-items/seed                           - Clone CONTRACT sheet into ACTUAL
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from roadcalc.boq.bindings import BoqBindingManager
from roadcalc.boq.sheets import seed_actual_sheet
from roadcalc.errors import ValidationError
from roadcalc.repository.base import QuantityRepository
from roadcalc.web.dependencies import get_binding_manager, get_repository
from roadcalc.web.models import (
    BindingRequest,
    BindingSetRequest,
    IntervalBatchRequest,
    SeedActualRequest,
    to_payload,
)

router = APIRouter(tags=["bindings"])


@router.get("/api/phase-item-bindings")
async def list_bindings(
    project_id: str | None = None,
    scope: str | None = None,
    manager: BoqBindingManager = Depends(get_binding_manager),
):
    """Active links onto bindable CONTRACT rows.

    ``scope=all`` lists every project; otherwise ``project_id`` is required.
    """
    if scope != "all" and project_id is None:
        raise ValidationError("project_id is required unless scope=all")
    links = await manager.list_project_bindings(None if scope == "all" else project_id)
    return {
        "bindings": [
            {"phase_item_id": link.phase_item_id, "boq_item_id": link.boq_item_id}
            for link in links
        ]
    }


@router.post("/api/phase-item-bindings")
async def set_binding(
    body: BindingRequest,
    manager: BoqBindingManager = Depends(get_binding_manager),
):
    if body.boq_item_ids is not None:
        change = await manager.set_bindings(body.phase_item_id, body.boq_item_ids)
        return {"boq_item_ids": change.active, "change": to_payload(change)}

    boq_item = await manager.set_single_binding(
        body.phase_item_id, body.project_id, body.boq_item_id
    )
    return {"boq_item": to_payload(boq_item)}


@router.get("/api/phase-items/{phase_item_id}/boq-bindings")
async def phase_item_bindings(
    phase_item_id: int,
    manager: BoqBindingManager = Depends(get_binding_manager),
):
    items = await manager.list_bindings(phase_item_id)
    return {"boq_items": to_payload(items)}


@router.put("/api/phase-items/{phase_item_id}/boq-bindings")
async def replace_phase_item_bindings(
    phase_item_id: int,
    body: BindingSetRequest,
    manager: BoqBindingManager = Depends(get_binding_manager),
):
    change = await manager.set_bindings(phase_item_id, body.boq_item_ids)
    return {"boq_item_ids": change.active, "change": to_payload(change)}


@router.get("/api/intervals/{interval_id}/bound-items")
async def interval_bound_items(
    interval_id: int,
    manager: BoqBindingManager = Depends(get_binding_manager),
):
    items = await manager.list_interval_bound_items(interval_id)
    return {"items": to_payload(items)}


@router.post("/api/intervals/bound-items")
async def intervals_bound_items(
    body: IntervalBatchRequest,
    manager: BoqBindingManager = Depends(get_binding_manager),
):
    """Bound items keyed by interval id; larger batches than the cap are rejected."""
    result = await manager.list_intervals_bound_items(body.interval_ids)
    return {"items": to_payload(result)}


@router.post("/api/boq-items/seed")
async def seed_actual(
    body: SeedActualRequest,
    repository: QuantityRepository = Depends(get_repository),
):
    result = await seed_actual_sheet(repository, body.project_id)
    return to_payload(result)
