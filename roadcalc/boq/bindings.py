"""Phase item to BOQ item bindings.

Links are never deleted: unbinding flips ``is_active`` so binding history is
kept. Two write paths exist:

* single binding, at most one active link per (phase item, project)
* binding sets, replaced by symmetric difference so links present both
  before and after are not rewritten

Both run in one repository transaction and validate every referenced BOQ item
before the first write.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from roadcalc.config import QuantityConfig
from roadcalc.errors import ConstraintViolation, NotFoundError, ValidationError
from roadcalc.models import (
    BoqItem,
    BoqSheetType,
    Phase,
    PhaseItem,
    PhaseItemBoqLink,
    Road,
)
from roadcalc.repository.base import QuantityRepository
from roadcalc.validation import parse_id, parse_id_list, parse_optional_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BindingChange:
    """Outcome of replacing a phase item's binding set (BOQ item ids, sorted)."""

    active: list[int] = field(default_factory=list)
    added: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)
    unchanged: list[int] = field(default_factory=list)


@dataclass(slots=True)
class IntervalBoundItem:
    phase_item_id: int
    phase_item_name: str
    boq_item: BoqItem


def _boq_sort_key(item: BoqItem) -> tuple[int, int]:
    return (item.sort_order, item.id or 0)


class BoqBindingManager:
    """Binds phase items to bill-of-quantities lines."""

    def __init__(self, repository: QuantityRepository, batch_limit: int | None = None):
        """Initialize binding manager.

        Args:
            repository: Persistence port
            batch_limit: Max intervals per batch lookup
                (default: QuantityConfig.batch_interval_limit)
        """
        self.repository = repository
        self.batch_limit = batch_limit or QuantityConfig().batch_interval_limit

    async def _require_phase_item(self, phase_item_id: int) -> PhaseItem:
        item = await self.repository.get_phase_item(phase_item_id)
        if item is None:
            raise NotFoundError("Phase item", phase_item_id)
        return item

    async def _load_bindable(self, boq_item_ids: Iterable[int]) -> dict[int, BoqItem]:
        """Fetch BOQ items, rejecting unknown, inactive and non-ITEM rows."""
        ids = list(boq_item_ids)
        items = await self.repository.get_boq_items(ids)
        for boq_item_id in ids:
            item = items.get(boq_item_id)
            if item is None:
                raise NotFoundError("BOQ item", boq_item_id)
            if not item.is_active:
                raise ConstraintViolation(f"BOQ item {boq_item_id} is inactive")
            if not item.is_bindable:
                raise ConstraintViolation(
                    f"BOQ item {boq_item_id} is a {item.tone.value} row; only ITEM rows can be bound"
                )
        return items

    async def set_single_binding(
        self,
        phase_item_id: int | str,
        project_id: int | str,
        boq_item_id: int | str | None = None,
    ) -> BoqItem | None:
        """Set or clear the one BOQ item bound to a phase item within a project.

        Args:
            phase_item_id: Phase item to bind
            project_id: Project whose binding is replaced
            boq_item_id: CONTRACT ITEM row of that project, or None to clear

        Returns:
            The bound BOQ item, or None when cleared

        Raises:
            ValidationError: If an id is malformed
            NotFoundError: If the phase item or BOQ item does not exist
            ConstraintViolation: If the BOQ item is not a bindable CONTRACT
                row of the project
        """
        phase_item_id = parse_id(phase_item_id, "phase_item_id")
        project_id = parse_id(project_id, "project_id")
        boq_item_id = parse_optional_id(boq_item_id, "boq_item_id")

        bound: BoqItem | None = None
        async with self.repository.transaction():
            await self._require_phase_item(phase_item_id)
            if boq_item_id is not None:
                bound = (await self._load_bindable([boq_item_id]))[boq_item_id]
                if bound.project_id != project_id or bound.sheet_type != BoqSheetType.CONTRACT:
                    raise ConstraintViolation(
                        f"BOQ item {boq_item_id} is not a CONTRACT item of project {project_id}"
                    )

            links = await self.repository.list_links(
                phase_item_ids=[phase_item_id],
                active_only=False,
                project_id=project_id,
                for_update=True,
            )
            target: PhaseItemBoqLink | None = None
            for link in links:
                if link.boq_item_id == boq_item_id:
                    target = link
                elif link.is_active:
                    link.is_active = False
                    await self.repository.save_link(link)

            if boq_item_id is not None:
                if target is None:
                    await self.repository.save_link(
                        PhaseItemBoqLink(
                            phase_item_id=phase_item_id,
                            boq_item_id=boq_item_id,
                            project_id=project_id,
                        )
                    )
                elif not target.is_active:
                    target.is_active = True
                    await self.repository.save_link(target)

        logger.info(
            "Phase item %s bound to BOQ item %s in project %s",
            phase_item_id,
            boq_item_id,
            project_id,
        )
        return bound

    async def set_bindings(
        self, phase_item_id: int | str, boq_item_ids: list[int | str]
    ) -> BindingChange:
        """Replace the full set of BOQ items bound to a phase item.

        Args:
            phase_item_id: Phase item to bind
            boq_item_ids: Requested BOQ item ids (duplicates ignored)

        Returns:
            BindingChange describing the resulting active set and the diff

        Raises:
            ValidationError: If an id is malformed
            NotFoundError: If the phase item or a BOQ item does not exist
            ConstraintViolation: If a BOQ item is inactive or not an ITEM row
        """
        phase_item_id = parse_id(phase_item_id, "phase_item_id")
        requested = parse_id_list(boq_item_ids, "boq_item_ids")

        async with self.repository.transaction():
            await self._require_phase_item(phase_item_id)
            boq_items = await self._load_bindable(requested)

            links = await self.repository.list_links(
                phase_item_ids=[phase_item_id], active_only=False, for_update=True
            )
            by_boq_id = {link.boq_item_id: link for link in links}
            current = {link.boq_item_id for link in links if link.is_active}
            wanted = set(requested)

            removed = current - wanted
            added = wanted - current

            for boq_item_id in sorted(removed):
                link = by_boq_id[boq_item_id]
                link.is_active = False
                await self.repository.save_link(link)

            for boq_item_id in requested:
                if boq_item_id not in added:
                    continue
                link = by_boq_id.get(boq_item_id)
                if link is None:
                    link = PhaseItemBoqLink(
                        phase_item_id=phase_item_id,
                        boq_item_id=boq_item_id,
                        project_id=boq_items[boq_item_id].project_id,
                    )
                else:
                    link.is_active = True
                await self.repository.save_link(link)

        change = BindingChange(
            active=sorted(wanted),
            added=sorted(added),
            removed=sorted(removed),
            unchanged=sorted(current & wanted),
        )
        logger.info(
            "Phase item %s bindings: +%d -%d =%d",
            phase_item_id,
            len(change.added),
            len(change.removed),
            len(change.unchanged),
        )
        return change

    async def list_bindings(self, phase_item_id: int | str) -> list[BoqItem]:
        """Active, bindable BOQ items of a phase item."""
        phase_item_id = parse_id(phase_item_id, "phase_item_id")
        await self._require_phase_item(phase_item_id)
        links = await self.repository.list_links(phase_item_ids=[phase_item_id])
        items = await self.repository.get_boq_items(link.boq_item_id for link in links)
        return sorted(
            (item for item in items.values() if item.is_bindable), key=_boq_sort_key
        )

    async def list_project_bindings(
        self, project_id: int | str | None = None
    ) -> list[PhaseItemBoqLink]:
        """Active links onto bindable CONTRACT rows, for one project or all."""
        if project_id is not None:
            project_id = parse_id(project_id, "project_id")
        links = await self.repository.list_links(project_id=project_id)
        items = await self.repository.get_boq_items({link.boq_item_id for link in links})
        return [
            link
            for link in links
            if (item := items.get(link.boq_item_id)) is not None
            and item.is_bindable
            and item.sheet_type == BoqSheetType.CONTRACT
            and (project_id is None or item.project_id == project_id)
        ]

    async def list_interval_bound_items(
        self, interval_id: int | str
    ) -> list[IntervalBoundItem]:
        """BOQ items bound to the phase items instantiated on one interval.

        Raises:
            NotFoundError: If the interval does not exist
        """
        interval_id = parse_id(interval_id, "interval_id")
        if await self.repository.get_interval(interval_id) is None:
            raise NotFoundError("Interval", interval_id)
        result = await self.list_intervals_bound_items([interval_id])
        return result[interval_id]

    async def list_intervals_bound_items(
        self, interval_ids: list[int | str]
    ) -> dict[int, list[IntervalBoundItem]]:
        """Batch form of ``list_interval_bound_items``.

        Unknown interval ids map to an empty list. A phase item counts as
        instantiated on an interval when it is active, belongs to the
        interval's phase definition, and has an input row on that interval.

        Raises:
            ValidationError: If an id is malformed or the batch exceeds the limit
        """
        ids = parse_id_list(interval_ids, "interval_ids")
        if not ids:
            return {}
        if len(ids) > self.batch_limit:
            raise ValidationError(
                f"at most {self.batch_limit} intervals per request, got {len(ids)}"
            )

        result: dict[int, list[IntervalBoundItem]] = {interval_id: [] for interval_id in ids}
        intervals = await self.repository.get_intervals(ids)
        if not intervals:
            return result

        phases: dict[int, Phase | None] = {}
        roads: dict[int, Road | None] = {}
        items_by_definition: dict[int, dict[int, PhaseItem]] = {}
        for interval in intervals.values():
            if interval.phase_id not in phases:
                phases[interval.phase_id] = await self.repository.get_phase(interval.phase_id)
            phase = phases[interval.phase_id]
            if phase is None:
                continue
            if phase.road_id not in roads:
                roads[phase.road_id] = await self.repository.get_road(phase.road_id)
            if phase.phase_definition_id not in items_by_definition:
                items = await self.repository.list_phase_items(phase.phase_definition_id)
                items_by_definition[phase.phase_definition_id] = {i.id: i for i in items}

        instantiated: dict[int, list[PhaseItem]] = {}
        for row in await self.repository.list_inputs(interval_ids=list(intervals)):
            phase = phases.get(intervals[row.interval_id].phase_id)
            if phase is None:
                continue
            item = items_by_definition[phase.phase_definition_id].get(row.phase_item_id)
            if item is not None:
                instantiated.setdefault(row.interval_id, []).append(item)

        item_ids = sorted({item.id for items in instantiated.values() for item in items})
        if not item_ids:
            return result
        links = await self.repository.list_links(phase_item_ids=item_ids)
        boq_items = await self.repository.get_boq_items({link.boq_item_id for link in links})
        links_by_item: dict[int, list[PhaseItemBoqLink]] = {}
        for link in links:
            links_by_item.setdefault(link.phase_item_id, []).append(link)

        for interval_id, items in instantiated.items():
            phase = phases[intervals[interval_id].phase_id]
            road = roads.get(phase.road_id)
            project_id = road.project_id if road else None
            bound: list[IntervalBoundItem] = []
            for item in sorted(items, key=lambda i: (i.name, i.id)):
                for link in links_by_item.get(item.id, []):
                    boq_item = boq_items.get(link.boq_item_id)
                    if boq_item is None or not boq_item.is_bindable:
                        continue
                    if project_id is not None and boq_item.project_id != project_id:
                        continue
                    bound.append(
                        IntervalBoundItem(
                            phase_item_id=item.id, phase_item_name=item.name, boq_item=boq_item
                        )
                    )
            bound.sort(key=lambda b: (b.phase_item_name, b.phase_item_id, *_boq_sort_key(b.boq_item)))
            result[interval_id] = bound
        return result
