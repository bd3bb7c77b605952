"""Tests for roadcalc.progress.aggregator - completion figures."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from roadcalc.models import Interval, IntervalSide, MeasureMode
from roadcalc.progress.aggregator import (
    IntervalQuantity,
    PhaseQuantities,
    RoadQuantities,
    aggregate_interval,
    aggregate_phase,
    aggregate_road,
    clamp_ratio,
    completion_ratio,
    design_length,
    rollup_by_phase_definition,
)


def _iq(interval_id: int, quantity: str | None, target: str | None) -> IntervalQuantity:
    return IntervalQuantity(
        interval_id=interval_id,
        effective_quantity=Decimal(quantity) if quantity is not None else None,
        target_quantity=Decimal(target) if target is not None else None,
    )


class TestRatios:
    """Tests for ratio helpers."""

    def test_ratio(self):
        assert completion_ratio(Decimal("30"), Decimal("40")) == Decimal("0.75")

    @pytest.mark.parametrize("target", [None, Decimal("0"), Decimal("-1")])
    def test_no_positive_target(self, target):
        assert completion_ratio(Decimal("5"), target) is None

    @pytest.mark.parametrize(
        "ratio,expected",
        [(Decimal("1.5"), Decimal("1")), (Decimal("-0.2"), Decimal("0")), (Decimal("0.4"), Decimal("0.4"))],
    )
    def test_clamp(self, ratio, expected):
        assert clamp_ratio(ratio) == expected


class TestDesignLength:
    """Tests for the fallback target."""

    def test_linear_both_sides(self):
        interval = Interval(id=1, phase_id=1, start_pk=Decimal("10"), end_pk=Decimal("60"))
        assert design_length(MeasureMode.LINEAR, interval) == Decimal("100")

    def test_point_single_side(self):
        interval = Interval(
            id=1, phase_id=1, start_pk=Decimal("10"), end_pk=Decimal("10"), side=IntervalSide.LEFT
        )
        assert design_length(MeasureMode.POINT, interval) == Decimal("1")


class TestAggregation:
    """Tests for interval, phase and road sums."""

    def test_interval_over_completion(self):
        progress = aggregate_interval(_iq(1, "50", "40"))
        assert progress.ratio == Decimal("1.25")
        assert progress.display_ratio == Decimal("1")
        assert progress.over_completed is True

    def test_unmeasured_interval_has_no_ratio(self):
        progress = aggregate_interval(_iq(1, None, "40"))
        assert progress.measured is False
        assert progress.ratio is None

    def test_phase_skips_unmeasured_intervals(self):
        phase = aggregate_phase(
            PhaseQuantities(
                phase_id=1,
                name="Base layer",
                intervals=[_iq(1, "30", "40"), _iq(2, None, "100"), _iq(3, "10", "20")],
            )
        )

        assert phase.completed_quantity == Decimal("40")
        assert phase.target_quantity == Decimal("60")
        assert phase.measured_count == 2
        assert phase.unmeasured_count == 1
        assert phase.display_ratio == Decimal("40") / Decimal("60")
        assert phase.over_completed is False

    def test_measured_zero_counts(self):
        phase = aggregate_phase(
            PhaseQuantities(phase_id=1, name="Kerbs", intervals=[_iq(1, "0", "10")])
        )
        assert phase.measured_count == 1
        assert phase.ratio == Decimal("0")

    def test_empty_phase(self):
        phase = aggregate_phase(PhaseQuantities(phase_id=1, name="Empty"))
        assert phase.completed_quantity == Decimal("0")
        assert phase.ratio is None

    def test_road_totals_are_phase_sums(self):
        """Summing intervals directly gives the same totals as summing phases."""
        intervals_a = [_iq(1, "30", "40"), _iq(2, "5", "10")]
        intervals_b = [_iq(3, "12.5", "25"), _iq(4, None, "50")]
        road = aggregate_road(
            RoadQuantities(
                road_id=1,
                name="RN1",
                phases=[
                    PhaseQuantities(phase_id=1, name="A", intervals=intervals_a),
                    PhaseQuantities(phase_id=2, name="B", intervals=intervals_b),
                ],
            )
        )
        flat = aggregate_phase(
            PhaseQuantities(phase_id=0, name="all", intervals=intervals_a + intervals_b)
        )

        assert road.completed_quantity == flat.completed_quantity == Decimal("47.5")
        assert road.target_quantity == flat.target_quantity == Decimal("75")
        assert road.unmeasured_count == 1
        assert road.ratio == flat.ratio


class TestRollup:
    """Tests for cross-road rollups."""

    def test_rollup_groups_by_name_and_measure(self):
        earlier = datetime(2026, 1, 1, tzinfo=timezone.utc)
        later = datetime(2026, 3, 1, tzinfo=timezone.utc)
        roads = [
            aggregate_road(
                RoadQuantities(
                    road_id=1,
                    name="RN1",
                    phases=[
                        PhaseQuantities(
                            phase_id=1, name="Base layer", intervals=[_iq(1, "10", "20")], updated_at=earlier
                        ),
                        PhaseQuantities(
                            phase_id=2,
                            name="Signs",
                            measure=MeasureMode.POINT,
                            intervals=[_iq(2, "1", "2")],
                        ),
                    ],
                )
            ),
            aggregate_road(
                RoadQuantities(
                    road_id=2,
                    name="RN2",
                    phases=[
                        PhaseQuantities(
                            phase_id=3, name="Base layer", intervals=[_iq(3, "5", "20")], updated_at=later
                        ),
                    ],
                )
            ),
        ]

        rollups = rollup_by_phase_definition(roads)

        assert [r.key for r in rollups] == ["Base layer::LINEAR", "Signs::POINT"]
        base = rollups[0]
        assert base.completed_quantity == Decimal("15")
        assert base.target_quantity == Decimal("40")
        assert base.road_names == ["RN1", "RN2"]
        assert base.latest_updated_at == later
