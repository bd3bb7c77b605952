"""Completion progress aggregation."""

from roadcalc.progress.aggregator import (
    IntervalProgress,
    IntervalQuantity,
    PhaseProgress,
    PhaseQuantities,
    PhaseRollup,
    RoadProgress,
    RoadQuantities,
    aggregate_phase,
    aggregate_road,
    aggregate_roads,
    design_length,
    rollup_by_phase_definition,
)
from roadcalc.progress.service import load_project_progress, load_road_quantities

__all__ = [
    "IntervalProgress",
    "IntervalQuantity",
    "PhaseProgress",
    "PhaseQuantities",
    "PhaseRollup",
    "RoadProgress",
    "RoadQuantities",
    "aggregate_phase",
    "aggregate_road",
    "aggregate_roads",
    "design_length",
    "load_project_progress",
    "load_road_quantities",
    "rollup_by_phase_definition",
]
