"""Request models and response helpers for the RoadCalc web API.

Request bodies keep loosely typed fields where the payload is validated by
``roadcalc.validation`` so that malformed ids and numbers produce the same
messages from the API as from the CLI.

Usage:
    from roadcalc.web.models import InputUpsertRequest

    @router.put("/api/phase-items/{phase_item_id}/intervals/{interval_id}/input")
    async def save_input(phase_item_id: int, interval_id: int, body: InputUpsertRequest):
        ...
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, TypeAdapter


_PAYLOAD_ADAPTER = TypeAdapter(Any)


def to_payload(value: Any) -> Any:
    """JSON-ready form of models, dataclasses and containers of them.

    Decimals become exact strings rather than floats.
    """
    return _PAYLOAD_ADAPTER.dump_python(value, mode="json")


# ============================================================================
# Quantity Models
# ============================================================================


class InputUpsertRequest(BaseModel):
    """Measured values for one (phase item, interval).

    Used by: PUT /api/phase-items/{phase_item_id}/intervals/{interval_id}/input
    """

    values: dict[str, Any] = Field(default_factory=dict)
    manual_quantity: Any = None

    class Config:
        json_schema_extra = {
            "example": {"values": {"width": "2.5", "depth": 0.3}, "manual_quantity": None}
        }


class FormulaUpsertRequest(BaseModel):
    """Formula for a phase item; a blank expression removes it.

    Used by: PUT /api/phase-items/{phase_item_id}/formula
    """

    expression: str | None = None
    input_schema: Any = None
    unit: str | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "expression": "length * width * depth",
                "input_schema": {
                    "kind": "variables",
                    "variables": [
                        {"name": "width", "unit": "m"},
                        {"name": "depth", "unit": "m"},
                    ],
                },
                "unit": "m3",
            }
        }


class EvaluateRequest(BaseModel):
    """Used by: POST /api/formulas/evaluate"""

    expression: str
    variables: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Binding Models
# ============================================================================


class BindingRequest(BaseModel):
    """Single binding when ``boq_item_ids`` is absent, binding set otherwise.

    Used by: POST /api/phase-item-bindings
    """

    phase_item_id: Any
    project_id: Any = None
    boq_item_id: Any = None
    boq_item_ids: Any = None


class BindingSetRequest(BaseModel):
    """Used by: PUT /api/phase-items/{phase_item_id}/boq-bindings"""

    boq_item_ids: Any = Field(default_factory=list)


class IntervalBatchRequest(BaseModel):
    """Used by: POST /api/intervals/bound-items"""

    interval_ids: Any = Field(default_factory=list)


class SeedActualRequest(BaseModel):
    """Used by: POST /api/boq-items/seed"""

    project_id: Any
