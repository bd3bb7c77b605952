"""Completion figures per interval, phase and road.

Pure functions over plain dataclasses; nothing here touches persistence.

Rules:
    * interval ratio = effective quantity / target quantity. The raw ratio is
      kept for over-completion checks; ``display_ratio`` is clamped to [0, 1].
    * intervals without an effective quantity are "unmeasured": they are left
      out of both the completed and the target sums and counted separately.
    * phase totals are sums of interval quantities and road totals are sums
      of phase totals, so the figures add up at every level.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Context, Decimal

from roadcalc.formula.variables import side_factor
from roadcalc.models import Interval, MeasureMode

_ZERO = Decimal(0)
_ONE = Decimal(1)
_RATIO_CONTEXT = Context(prec=28)


def design_length(measure: MeasureMode, interval: Interval) -> Decimal:
    """Design quantity of an interval when no bill quantity is recorded.

    POINT phases count one unit per side. LINEAR phases use the chainage
    difference (1 for a zero-length interval) per side. BOTH covers two sides.
    """
    sides = Decimal(side_factor(interval.side))
    if measure == MeasureMode.POINT:
        return sides
    length = abs(interval.end_pk - interval.start_pk)
    return (length or _ONE) * sides


def completion_ratio(completed: Decimal, target: Decimal | None) -> Decimal | None:
    """Unclamped completed/target, or None when there is no positive target."""
    if target is None or target <= 0:
        return None
    return _RATIO_CONTEXT.divide(completed, target)


def clamp_ratio(ratio: Decimal | None) -> Decimal | None:
    if ratio is None:
        return None
    return min(max(ratio, _ZERO), _ONE)


# ----------------------------------------------------------------------
# Inputs
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IntervalQuantity:
    interval_id: int
    effective_quantity: Decimal | None
    target_quantity: Decimal | None
    spec: str | None = None


@dataclass(slots=True)
class PhaseQuantities:
    phase_id: int
    name: str
    measure: MeasureMode = MeasureMode.LINEAR
    phase_definition_id: int | None = None
    intervals: list[IntervalQuantity] = field(default_factory=list)
    updated_at: datetime | None = None


@dataclass(slots=True)
class RoadQuantities:
    road_id: int
    name: str
    phases: list[PhaseQuantities] = field(default_factory=list)


# ----------------------------------------------------------------------
# Outputs
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IntervalProgress:
    interval_id: int
    effective_quantity: Decimal | None
    target_quantity: Decimal | None
    ratio: Decimal | None
    display_ratio: Decimal | None

    @property
    def measured(self) -> bool:
        return self.effective_quantity is not None

    @property
    def over_completed(self) -> bool:
        return self.ratio is not None and self.ratio > _ONE


@dataclass(slots=True)
class PhaseProgress:
    phase_id: int
    name: str
    measure: MeasureMode
    phase_definition_id: int | None
    intervals: list[IntervalProgress]
    completed_quantity: Decimal
    target_quantity: Decimal
    measured_count: int
    unmeasured_count: int
    updated_at: datetime | None = None

    @property
    def ratio(self) -> Decimal | None:
        return completion_ratio(self.completed_quantity, self.target_quantity)

    @property
    def display_ratio(self) -> Decimal | None:
        return clamp_ratio(self.ratio)

    @property
    def over_completed(self) -> bool:
        return any(interval.over_completed for interval in self.intervals)


@dataclass(slots=True)
class RoadProgress:
    road_id: int
    name: str
    phases: list[PhaseProgress]
    completed_quantity: Decimal
    target_quantity: Decimal
    measured_count: int
    unmeasured_count: int

    @property
    def ratio(self) -> Decimal | None:
        return completion_ratio(self.completed_quantity, self.target_quantity)

    @property
    def display_ratio(self) -> Decimal | None:
        return clamp_ratio(self.ratio)

    @property
    def over_completed(self) -> bool:
        return any(phase.over_completed for phase in self.phases)


@dataclass(slots=True)
class PhaseRollup:
    """One phase definition summed across every road that carries it."""

    name: str
    measure: MeasureMode
    phase_definition_id: int | None
    completed_quantity: Decimal = _ZERO
    target_quantity: Decimal = _ZERO
    measured_count: int = 0
    unmeasured_count: int = 0
    road_names: list[str] = field(default_factory=list)
    latest_updated_at: datetime | None = None

    @property
    def key(self) -> str:
        return f"{self.name}::{self.measure.value}"

    @property
    def ratio(self) -> Decimal | None:
        return completion_ratio(self.completed_quantity, self.target_quantity)

    @property
    def display_ratio(self) -> Decimal | None:
        return clamp_ratio(self.ratio)


# ----------------------------------------------------------------------
# Aggregation
# ----------------------------------------------------------------------


def aggregate_interval(interval: IntervalQuantity) -> IntervalProgress:
    ratio = None
    if interval.effective_quantity is not None:
        ratio = completion_ratio(interval.effective_quantity, interval.target_quantity)
    return IntervalProgress(
        interval_id=interval.interval_id,
        effective_quantity=interval.effective_quantity,
        target_quantity=interval.target_quantity,
        ratio=ratio,
        display_ratio=clamp_ratio(ratio),
    )


def aggregate_phase(phase: PhaseQuantities) -> PhaseProgress:
    intervals = [aggregate_interval(interval) for interval in phase.intervals]
    measured = [interval for interval in intervals if interval.measured]
    return PhaseProgress(
        phase_id=phase.phase_id,
        name=phase.name,
        measure=phase.measure,
        phase_definition_id=phase.phase_definition_id,
        intervals=intervals,
        completed_quantity=sum((i.effective_quantity for i in measured), _ZERO),
        target_quantity=sum((i.target_quantity or _ZERO for i in measured), _ZERO),
        measured_count=len(measured),
        unmeasured_count=len(intervals) - len(measured),
        updated_at=phase.updated_at,
    )


def aggregate_road(road: RoadQuantities) -> RoadProgress:
    """Aggregate a road's phases. Road totals are the sums of phase totals."""
    phases = [aggregate_phase(phase) for phase in road.phases]
    return RoadProgress(
        road_id=road.road_id,
        name=road.name,
        phases=phases,
        completed_quantity=sum((p.completed_quantity for p in phases), _ZERO),
        target_quantity=sum((p.target_quantity for p in phases), _ZERO),
        measured_count=sum(p.measured_count for p in phases),
        unmeasured_count=sum(p.unmeasured_count for p in phases),
    )


def aggregate_roads(roads: Iterable[RoadQuantities]) -> list[RoadProgress]:
    return [aggregate_road(road) for road in roads]


def rollup_by_phase_definition(roads: Sequence[RoadProgress]) -> list[PhaseRollup]:
    """Sum phase figures across roads, keyed by (phase name, measure).

    Most recently updated phases come first, then by name.
    """
    rollups: dict[tuple[str, MeasureMode], PhaseRollup] = {}
    for road in roads:
        for phase in road.phases:
            key = (phase.name, phase.measure)
            rollup = rollups.get(key)
            if rollup is None:
                rollup = rollups[key] = PhaseRollup(
                    name=phase.name,
                    measure=phase.measure,
                    phase_definition_id=phase.phase_definition_id,
                )
            rollup.completed_quantity += phase.completed_quantity
            rollup.target_quantity += phase.target_quantity
            rollup.measured_count += phase.measured_count
            rollup.unmeasured_count += phase.unmeasured_count
            if road.name not in rollup.road_names:
                rollup.road_names.append(road.name)
            if phase.updated_at is not None and (
                rollup.latest_updated_at is None or phase.updated_at > rollup.latest_updated_at
            ):
                rollup.latest_updated_at = phase.updated_at

    def sort_key(rollup: PhaseRollup):
        stamp = rollup.latest_updated_at.timestamp() if rollup.latest_updated_at else float("-inf")
        return (-stamp, rollup.name)

    return sorted(rollups.values(), key=sort_key)
