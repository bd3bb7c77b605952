"""In-memory implementation of the persistence port.

Used by the unit tests and for dry runs. Transactions snapshot the whole
store and restore it if the block raises, which gives the same all-or-nothing
behaviour as a database transaction.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

from roadcalc.errors import ConstraintViolation
from roadcalc.models import (
    BoqItem,
    BoqSheetType,
    BoqTone,
    Interval,
    Phase,
    PhaseItem,
    PhaseItemBoqLink,
    PhaseItemFormula,
    PhaseItemInput,
    Road,
)

_SIDE_ORDER = {"LEFT": 0, "RIGHT": 1, "BOTH": 2}


@dataclass
class _Store:
    roads: dict[int, Road] = field(default_factory=dict)
    phases: dict[int, Phase] = field(default_factory=dict)
    phase_items: dict[int, PhaseItem] = field(default_factory=dict)
    formulas: dict[int, PhaseItemFormula] = field(default_factory=dict)
    intervals: dict[int, Interval] = field(default_factory=dict)
    inputs: dict[int, PhaseItemInput] = field(default_factory=dict)
    boq_items: dict[int, BoqItem] = field(default_factory=dict)
    links: dict[int, PhaseItemBoqLink] = field(default_factory=dict)
    next_id: int = 1


class InMemoryRepository:
    """Dict-backed QuantityRepository."""

    def __init__(self) -> None:
        self._store = _Store()
        self.link_writes: list[int] = []  # ids passed to save_link, in order

    def _allocate_id(self) -> int:
        new_id = self._store.next_id
        self._store.next_id += 1
        return new_id

    def _reserve_id(self, used_id: int) -> None:
        self._store.next_id = max(self._store.next_id, used_id + 1)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        snapshot = copy.deepcopy(self._store)
        try:
            yield
        except BaseException:
            self._store = snapshot
            raise

    # ------------------------------------------------------------------
    # Seeding helpers (not part of the port)
    # ------------------------------------------------------------------

    def add_road(self, road: Road) -> Road:
        self._reserve_id(road.id)
        self._store.roads[road.id] = road.model_copy(deep=True)
        return road

    def add_phase(self, phase: Phase) -> Phase:
        self._reserve_id(phase.id)
        self._store.phases[phase.id] = phase.model_copy(deep=True)
        return phase

    def add_phase_item(self, item: PhaseItem) -> PhaseItem:
        self._reserve_id(item.id)
        self._store.phase_items[item.id] = item.model_copy(deep=True)
        return item

    def add_interval(self, interval: Interval) -> Interval:
        self._reserve_id(interval.id)
        self._store.intervals[interval.id] = interval.model_copy(deep=True)
        return interval

    def add_boq_item(self, item: BoqItem) -> BoqItem:
        stored = item.model_copy(deep=True)
        if stored.id is None:
            stored.id = self._allocate_id()
        else:
            self._reserve_id(stored.id)
        self._store.boq_items[stored.id] = stored
        return stored.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Roads & phases
    # ------------------------------------------------------------------

    async def get_road(self, road_id: int) -> Road | None:
        road = self._store.roads.get(road_id)
        return road.model_copy(deep=True) if road else None

    async def list_roads(self, project_id: int | None = None) -> list[Road]:
        roads = [
            road
            for road in self._store.roads.values()
            if project_id is None or road.project_id == project_id
        ]
        return [road.model_copy(deep=True) for road in sorted(roads, key=lambda r: (r.name, r.id))]

    async def get_phase(self, phase_id: int) -> Phase | None:
        phase = self._store.phases.get(phase_id)
        return phase.model_copy(deep=True) if phase else None

    async def list_phases(self, road_id: int) -> list[Phase]:
        phases = [p for p in self._store.phases.values() if p.road_id == road_id]
        return [p.model_copy(deep=True) for p in sorted(phases, key=lambda p: p.id)]

    # ------------------------------------------------------------------
    # Phase items & formulas
    # ------------------------------------------------------------------

    async def get_phase_item(self, phase_item_id: int) -> PhaseItem | None:
        item = self._store.phase_items.get(phase_item_id)
        return item.model_copy(deep=True) if item else None

    async def list_phase_items(
        self, phase_definition_id: int, include_inactive: bool = False
    ) -> list[PhaseItem]:
        items = [
            item
            for item in self._store.phase_items.values()
            if item.phase_definition_id == phase_definition_id
            and (include_inactive or item.is_active)
        ]
        return [i.model_copy(deep=True) for i in sorted(items, key=lambda i: (i.name, i.id))]

    async def save_phase_item(self, item: PhaseItem) -> PhaseItem:
        self._store.phase_items[item.id] = item.model_copy(deep=True)
        return item

    async def get_formula(self, phase_item_id: int) -> PhaseItemFormula | None:
        formula = self._store.formulas.get(phase_item_id)
        return formula.model_copy(deep=True) if formula else None

    async def get_formulas(self, phase_item_ids: Iterable[int]) -> dict[int, PhaseItemFormula]:
        return {
            pid: self._store.formulas[pid].model_copy(deep=True)
            for pid in phase_item_ids
            if pid in self._store.formulas
        }

    async def save_formula(self, formula: PhaseItemFormula) -> PhaseItemFormula:
        self._store.formulas[formula.phase_item_id] = formula.model_copy(deep=True)
        return formula

    async def delete_formula(self, phase_item_id: int) -> None:
        self._store.formulas.pop(phase_item_id, None)

    # ------------------------------------------------------------------
    # Intervals
    # ------------------------------------------------------------------

    async def get_interval(self, interval_id: int) -> Interval | None:
        interval = self._store.intervals.get(interval_id)
        return interval.model_copy(deep=True) if interval else None

    async def get_intervals(self, interval_ids: Iterable[int]) -> dict[int, Interval]:
        return {
            iid: self._store.intervals[iid].model_copy(deep=True)
            for iid in interval_ids
            if iid in self._store.intervals
        }

    async def list_intervals(self, phase_id: int) -> list[Interval]:
        intervals = [i for i in self._store.intervals.values() if i.phase_id == phase_id]
        intervals.sort(key=lambda i: (i.start_pk, i.end_pk, _SIDE_ORDER[i.side.value], i.id))
        return [i.model_copy(deep=True) for i in intervals]

    async def delete_interval(self, interval_id: int) -> bool:
        if self._store.intervals.pop(interval_id, None) is None:
            return False
        self._store.inputs = {
            key: row
            for key, row in self._store.inputs.items()
            if row.interval_id != interval_id
        }
        return True

    # ------------------------------------------------------------------
    # Input rows
    # ------------------------------------------------------------------

    async def get_input(self, phase_item_id: int, interval_id: int) -> PhaseItemInput | None:
        for row in self._store.inputs.values():
            if row.phase_item_id == phase_item_id and row.interval_id == interval_id:
                return row.model_copy(deep=True)
        return None

    async def list_inputs(
        self,
        phase_item_ids: Sequence[int] | None = None,
        interval_ids: Sequence[int] | None = None,
    ) -> list[PhaseItemInput]:
        rows = [
            row
            for row in self._store.inputs.values()
            if (phase_item_ids is None or row.phase_item_id in phase_item_ids)
            and (interval_ids is None or row.interval_id in interval_ids)
        ]
        return [row.model_copy(deep=True) for row in sorted(rows, key=lambda r: r.id or 0)]

    async def save_input(self, row: PhaseItemInput) -> PhaseItemInput:
        existing = await self.get_input(row.phase_item_id, row.interval_id)
        stored = row.model_copy(deep=True)
        stored.id = existing.id if existing else self._allocate_id()
        stored.updated_at = datetime.now(timezone.utc)
        self._store.inputs[stored.id] = stored
        return stored.model_copy(deep=True)

    # ------------------------------------------------------------------
    # BOQ items & links
    # ------------------------------------------------------------------

    async def get_boq_items(self, boq_item_ids: Iterable[int]) -> dict[int, BoqItem]:
        return {
            bid: self._store.boq_items[bid].model_copy(deep=True)
            for bid in boq_item_ids
            if bid in self._store.boq_items
        }

    async def list_boq_items(
        self,
        project_id: int,
        sheet_type: BoqSheetType,
        tone: BoqTone | None = None,
        include_inactive: bool = False,
    ) -> list[BoqItem]:
        items = [
            item
            for item in self._store.boq_items.values()
            if item.project_id == project_id
            and item.sheet_type == sheet_type
            and (tone is None or item.tone == tone)
            and (include_inactive or item.is_active)
        ]
        items.sort(key=lambda i: (i.sort_order, i.id or 0))
        return [i.model_copy(deep=True) for i in items]

    async def add_boq_items(self, items: Sequence[BoqItem]) -> list[BoqItem]:
        created = []
        for item in items:
            stored = item.model_copy(deep=True)
            if stored.id is None:
                stored.id = self._allocate_id()
            else:
                self._reserve_id(stored.id)
            self._store.boq_items[stored.id] = stored
            created.append(stored.model_copy(deep=True))
        return created

    async def list_links(
        self,
        phase_item_ids: Sequence[int] | None = None,
        active_only: bool = True,
        project_id: int | None = None,
        for_update: bool = False,
    ) -> list[PhaseItemBoqLink]:
        links = [
            link
            for link in self._store.links.values()
            if (phase_item_ids is None or link.phase_item_id in phase_item_ids)
            and (not active_only or link.is_active)
            and (project_id is None or link.project_id == project_id)
        ]
        return [link.model_copy(deep=True) for link in sorted(links, key=lambda l: l.id or 0)]

    async def save_link(self, link: PhaseItemBoqLink) -> PhaseItemBoqLink:
        stored = link.model_copy(deep=True)
        for existing in self._store.links.values():
            if (
                existing.id != stored.id
                and existing.phase_item_id == stored.phase_item_id
                and existing.boq_item_id == stored.boq_item_id
            ):
                raise ConstraintViolation(
                    f"phase item {stored.phase_item_id} is already linked to "
                    f"BOQ item {stored.boq_item_id}"
                )
        if stored.id is None:
            stored.id = self._allocate_id()
        self._store.links[stored.id] = stored
        self.link_writes.append(stored.id)
        return stored.model_copy(deep=True)

    @property
    def link_rows(self) -> dict[int, PhaseItemBoqLink]:
        return {lid: link.model_copy(deep=True) for lid, link in self._store.links.items()}
