"""Quantity resolution and phase-item input/formula operations."""

from roadcalc.quantities.resolver import (
    QuantityResolution,
    quantize_quantity,
    resolve_quantity,
)
from roadcalc.quantities.service import (
    FormulaUpdate,
    PhaseQuantityDetail,
    deactivate_phase_item,
    delete_interval,
    get_phase_quantity_detail,
    upsert_phase_item_formula,
    upsert_phase_item_input,
)

__all__ = [
    "FormulaUpdate",
    "PhaseQuantityDetail",
    "QuantityResolution",
    "deactivate_phase_item",
    "delete_interval",
    "get_phase_quantity_detail",
    "quantize_quantity",
    "resolve_quantity",
    "upsert_phase_item_formula",
    "upsert_phase_item_input",
]
