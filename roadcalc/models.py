"""RoadCalc Pydantic models for type-safe data validation.

These are the entities exchanged with the persistence port. Quantities and
prices are fixed-point decimals; ``None`` always means "unknown / not
measured" and is never conflated with zero.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class MeasureMode(str, Enum):
    """How a phase item is measured along a road."""

    LINEAR = "LINEAR"  # length-based
    POINT = "POINT"  # count-based


class IntervalSide(str, Enum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    BOTH = "BOTH"


class BoqTone(str, Enum):
    """Row classification in a bill of quantities. Only ITEM rows are bindable."""

    SECTION = "SECTION"
    SUBSECTION = "SUBSECTION"
    ITEM = "ITEM"
    TOTAL = "TOTAL"


class BoqSheetType(str, Enum):
    CONTRACT = "CONTRACT"
    ACTUAL = "ACTUAL"


class QuantitySource(str, Enum):
    """Where an effective quantity came from."""

    MANUAL = "manual"
    COMPUTED = "computed"
    UNKNOWN = "unknown"


class Road(BaseModel):
    id: int
    name: str
    slug: str
    project_id: int | None = None


class Phase(BaseModel):
    """A phase definition instantiated on one road."""

    id: int
    road_id: int
    phase_definition_id: int
    name: str
    measure: MeasureMode = MeasureMode.LINEAR
    updated_at: datetime | None = None


class PhaseItem(BaseModel):
    """Billable/trackable unit of work belonging to a phase definition."""

    id: int
    phase_definition_id: int
    name: str
    spec: str | None = None
    measure: MeasureMode = MeasureMode.LINEAR
    unit: str | None = None
    is_active: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "id": 12,
                "phase_definition_id": 3,
                "name": "Backfill including base layer",
                "spec": "0/31.5",
                "measure": "LINEAR",
                "unit": "m3",
                "is_active": True,
            }
        }


class FormulaVariable(BaseModel):
    """Declared formula input with optional display hints."""

    name: str
    label: str | None = None
    unit: str | None = None
    hint: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not IDENTIFIER_PATTERN.match(v):
            raise ValueError(f"'{v}' is not a valid variable name")
        return v


class FormulaInputSchema(BaseModel):
    """Ordered list of variables a formula expects to be measured."""

    kind: Literal["variables"] = "variables"
    variables: list[FormulaVariable] = Field(default_factory=list)

    @field_validator("variables")
    @classmethod
    def validate_unique(cls, v: list[FormulaVariable]) -> list[FormulaVariable]:
        seen: set[str] = set()
        for variable in v:
            if variable.name in seen:
                raise ValueError(f"variable '{variable.name}' is declared twice")
            seen.add(variable.name)
        return v

    @property
    def names(self) -> list[str]:
        return [variable.name for variable in self.variables]


class PhaseItemFormula(BaseModel):
    phase_item_id: int
    expression: str
    input_schema: FormulaInputSchema | None = None
    unit: str | None = None


class Interval(BaseModel):
    """Spatial segment of a road phase, positioned by kilometre points."""

    id: int
    phase_id: int
    start_pk: Decimal
    end_pk: Decimal
    side: IntervalSide = IntervalSide.BOTH
    spec: str | None = None
    bill_quantity: Decimal | None = None


class PhaseItemInput(BaseModel):
    """Measured values and resulting quantity for one (phase item, interval)."""

    id: int | None = None
    phase_item_id: int
    interval_id: int
    values: dict[str, Decimal] = Field(default_factory=dict)
    manual_quantity: Decimal | None = None
    computed_quantity: Decimal | None = None
    computed_error: str | None = None
    updated_at: datetime | None = None

    @computed_field
    @property
    def effective_quantity(self) -> Decimal | None:
        if self.manual_quantity is not None:
            return self.manual_quantity
        return self.computed_quantity

    @computed_field
    @property
    def quantity_source(self) -> QuantitySource:
        if self.manual_quantity is not None:
            return QuantitySource.MANUAL
        if self.computed_quantity is not None:
            return QuantitySource.COMPUTED
        return QuantitySource.UNKNOWN


class BoqItem(BaseModel):
    """Bill-of-quantities line."""

    id: int | None = None
    project_id: int
    sheet_type: BoqSheetType = BoqSheetType.CONTRACT
    code: str
    designation_zh: str = ""
    designation_fr: str = ""
    unit: str | None = None
    unit_price: Decimal | None = None
    quantity: Decimal | None = None
    total_price: Decimal | None = None
    tone: BoqTone = BoqTone.ITEM
    is_active: bool = True
    sort_order: int = 0
    contract_item_id: int | None = None

    @property
    def is_bindable(self) -> bool:
        return self.is_active and self.tone == BoqTone.ITEM

    class Config:
        json_schema_extra = {
            "example": {
                "id": 41,
                "project_id": 1,
                "sheet_type": "CONTRACT",
                "code": "300.2",
                "designation_zh": "基层填方",
                "designation_fr": "Remblai y compris couche de base",
                "unit": "m3",
                "unit_price": Decimal("12.50"),
                "quantity": Decimal("1800"),
                "total_price": Decimal("22500.00"),
                "tone": "ITEM",
            }
        }


class PhaseItemBoqLink(BaseModel):
    """Association between a phase item and a BOQ line; unlinking flips is_active."""

    id: int | None = None
    phase_item_id: int
    boq_item_id: int
    project_id: int
    is_active: bool = True
