"""Phase-item quantity operations: input upsert, formula upsert, detail view.

Every write regenerates the stored computed quantity (and its error text) from
the current formula and values, so a row never keeps a stale result.
Formula failures are recorded on the row; they do not abort the save.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from roadcalc.config import QuantityConfig
from roadcalc.errors import NotFoundError, ValidationError
from roadcalc.formula.evaluator import FormulaSyntaxError, parse_expression
from roadcalc.formula.normalize import normalize_input_values
from roadcalc.formula.variables import BUILTIN_NAMES, build_formula_variables
from roadcalc.models import (
    BoqItem,
    BoqSheetType,
    BoqTone,
    FormulaInputSchema,
    Interval,
    Phase,
    PhaseItem,
    PhaseItemFormula,
    PhaseItemInput,
    Road,
)
from roadcalc.quantities.resolver import resolve_quantity
from roadcalc.repository.base import QuantityRepository
from roadcalc.validation import parse_optional_quantity

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FormulaUpdate:
    formula: PhaseItemFormula | None
    updated_count: int


@dataclass(slots=True)
class PhaseItemView:
    item: PhaseItem
    formula: PhaseItemFormula | None
    bindings: list[BoqItem] = field(default_factory=list)


@dataclass(slots=True)
class PhaseQuantityDetail:
    phase: Phase
    road: Road
    intervals: list[Interval]
    phase_items: list[PhaseItemView]
    inputs: list[PhaseItemInput]
    boq_items: list[BoqItem]


def _resolve_row(
    row: PhaseItemInput,
    interval: Interval,
    expression: str | None,
    places: int,
) -> PhaseItemInput:
    values = normalize_input_values(row.values)
    resolution = resolve_quantity(
        expression,
        build_formula_variables(interval, values),
        row.manual_quantity,
        places,
    )
    return row.model_copy(
        update={
            "values": values,
            "manual_quantity": resolution.manual_quantity,
            "computed_quantity": resolution.computed_quantity,
            "computed_error": resolution.computed_error,
        }
    )


def _parse_input_schema(value: Any) -> FormulaInputSchema | None:
    if value is None:
        return None
    if isinstance(value, FormulaInputSchema):
        return value
    if isinstance(value, list):
        # Shorthand: a bare list of variable names or variable objects
        value = {
            "kind": "variables",
            "variables": [{"name": v} if isinstance(v, str) else v for v in value],
        }
    try:
        return FormulaInputSchema.model_validate(value)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        raise ValidationError(f"invalid input schema: {first['msg']}") from exc


async def upsert_phase_item_input(
    repository: QuantityRepository,
    phase_item_id: int,
    interval_id: int,
    values: Any,
    manual_quantity: Any = None,
    config: QuantityConfig | None = None,
) -> PhaseItemInput:
    """Save measured values for a (phase item, interval) and recompute its quantity.

    Args:
        repository: Persistence port
        phase_item_id: Phase item being measured
        interval_id: Interval the values were measured on
        values: Raw name -> value mapping (normalized here)
        manual_quantity: Optional override; None clears a previous override
        config: Precision settings (defaults to QuantityConfig())

    Returns:
        The stored row, including ``computed_error`` when the formula failed

    Raises:
        NotFoundError: If the phase item or interval does not exist
        ValidationError: If the override is not numeric, the phase item is
            inactive, or the interval belongs to another phase definition
    """
    config = config or QuantityConfig()
    manual = parse_optional_quantity(manual_quantity)
    normalized = normalize_input_values(values)

    async with repository.transaction():
        phase_item = await repository.get_phase_item(phase_item_id)
        if phase_item is None:
            raise NotFoundError("Phase item", phase_item_id)
        if not phase_item.is_active:
            raise ValidationError(f"Phase item {phase_item_id} is inactive")

        interval = await repository.get_interval(interval_id)
        if interval is None:
            raise NotFoundError("Interval", interval_id)

        phase = await repository.get_phase(interval.phase_id)
        if phase is not None and phase.phase_definition_id != phase_item.phase_definition_id:
            raise ValidationError(
                f"Phase item {phase_item_id} is not part of the phase of interval {interval_id}"
            )

        formula = await repository.get_formula(phase_item_id)
        row = _resolve_row(
            PhaseItemInput(
                phase_item_id=phase_item_id,
                interval_id=interval_id,
                values=normalized,
                manual_quantity=manual,
            ),
            interval,
            formula.expression if formula else None,
            config.quantity_places,
        )
        saved = await repository.save_input(row)

    if saved.computed_error:
        logger.info(
            "Formula failed for phase item %s on interval %s: %s",
            phase_item_id,
            interval_id,
            saved.computed_error,
        )
    return saved


async def upsert_phase_item_formula(
    repository: QuantityRepository,
    phase_item_id: int,
    expression: Any,
    input_schema: Any = None,
    unit: str | None = None,
    config: QuantityConfig | None = None,
) -> FormulaUpdate:
    """Create, replace or clear a phase item's formula and recompute its rows.

    A blank expression deletes the formula and clears the computed quantity
    and error of every stored input row of the phase item.

    Raises:
        NotFoundError: If the phase item does not exist
        ValidationError: If the expression does not parse, the schema is
            malformed, or the expression uses variables the schema omits
    """
    config = config or QuantityConfig()

    if expression is not None and not isinstance(expression, str):
        raise ValidationError("expression must be a string")
    expression = (expression or "").strip()
    unit = (unit.strip() or None) if isinstance(unit, str) else None

    formula: PhaseItemFormula | None = None
    if expression:
        try:
            parsed = parse_expression(expression)
        except FormulaSyntaxError as exc:
            raise ValidationError(f"invalid formula: {exc.error.message}") from exc

        schema = _parse_input_schema(input_schema)
        if schema is not None:
            declared = set(schema.names) | BUILTIN_NAMES
            undeclared = [name for name in parsed.variables if name not in declared]
            if undeclared:
                raise ValidationError(
                    f"formula uses undeclared variables: {', '.join(undeclared)}"
                )
        formula = PhaseItemFormula(
            phase_item_id=phase_item_id,
            expression=expression,
            input_schema=schema,
            unit=unit,
        )

    async with repository.transaction():
        if await repository.get_phase_item(phase_item_id) is None:
            raise NotFoundError("Phase item", phase_item_id)

        if formula is None:
            await repository.delete_formula(phase_item_id)
        else:
            await repository.save_formula(formula)

        rows = await repository.list_inputs(phase_item_ids=[phase_item_id])
        intervals = await repository.get_intervals({row.interval_id for row in rows})
        updated = 0
        for row in rows:
            interval = intervals.get(row.interval_id)
            if interval is None:
                continue
            await repository.save_input(
                _resolve_row(row, interval, expression or None, config.quantity_places)
            )
            updated += 1

    logger.info(
        "%s formula for phase item %s, recomputed %d input rows",
        "Saved" if formula else "Cleared",
        phase_item_id,
        updated,
    )
    return FormulaUpdate(formula=formula, updated_count=updated)


async def get_phase_quantity_detail(
    repository: QuantityRepository,
    phase_id: int,
    config: QuantityConfig | None = None,
) -> PhaseQuantityDetail:
    """Everything the quantity editor needs for one road phase.

    Stored rows are re-evaluated against the current formula so the view
    reflects the formula even if it changed outside this service.

    Raises:
        NotFoundError: If the phase or its road does not exist
    """
    config = config or QuantityConfig()

    phase = await repository.get_phase(phase_id)
    if phase is None:
        raise NotFoundError("Phase", phase_id)
    road = await repository.get_road(phase.road_id)
    if road is None:
        raise NotFoundError("Road", phase.road_id)

    intervals = await repository.list_intervals(phase_id)
    items = await repository.list_phase_items(phase.phase_definition_id)
    item_ids = [item.id for item in items]
    formulas = await repository.get_formulas(item_ids)

    bindings: dict[int, list[BoqItem]] = {item_id: [] for item_id in item_ids}
    boq_items: list[BoqItem] = []
    if road.project_id is not None and item_ids:
        links = await repository.list_links(
            phase_item_ids=item_ids, active_only=True, project_id=road.project_id
        )
        linked = await repository.get_boq_items({link.boq_item_id for link in links})
        for link in links:
            boq_item = linked.get(link.boq_item_id)
            if boq_item is not None and boq_item.is_bindable:
                bindings[link.phase_item_id].append(boq_item)
    if road.project_id is not None:
        boq_items = await repository.list_boq_items(
            road.project_id, BoqSheetType.CONTRACT, tone=BoqTone.ITEM
        )

    interval_map = {interval.id: interval for interval in intervals}
    rows = await repository.list_inputs(
        phase_item_ids=item_ids, interval_ids=list(interval_map)
    ) if item_ids and interval_map else []

    inputs: list[PhaseItemInput] = []
    for row in rows:
        formula = formulas.get(row.phase_item_id)
        inputs.append(
            _resolve_row(
                row,
                interval_map[row.interval_id],
                formula.expression if formula else None,
                config.quantity_places,
            )
        )

    return PhaseQuantityDetail(
        phase=phase,
        road=road,
        intervals=intervals,
        phase_items=[
            PhaseItemView(item=item, formula=formulas.get(item.id), bindings=bindings[item.id])
            for item in items
        ],
        inputs=inputs,
        boq_items=boq_items,
    )


async def deactivate_phase_item(
    repository: QuantityRepository, phase_item_id: int
) -> PhaseItem:
    """Soft-delete a phase item. Its rows stay stored but drop out of reads."""
    async with repository.transaction():
        item = await repository.get_phase_item(phase_item_id)
        if item is None:
            raise NotFoundError("Phase item", phase_item_id)
        item.is_active = False
        await repository.save_phase_item(item)
    logger.info("Deactivated phase item %s", phase_item_id)
    return item


async def delete_interval(repository: QuantityRepository, interval_id: int) -> None:
    """Delete an interval together with its input rows."""
    async with repository.transaction():
        if not await repository.delete_interval(interval_id):
            raise NotFoundError("Interval", interval_id)
    logger.info("Deleted interval %s and its input rows", interval_id)

