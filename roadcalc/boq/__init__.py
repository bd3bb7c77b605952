"""Bill-of-quantities bindings and sheet maintenance."""

from roadcalc.boq.bindings import BindingChange, BoqBindingManager, IntervalBoundItem
from roadcalc.boq.sheets import SeedResult, seed_actual_sheet

__all__ = [
    "BindingChange",
    "BoqBindingManager",
    "IntervalBoundItem",
    "SeedResult",
    "seed_actual_sheet",
]
