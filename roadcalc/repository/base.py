"""Persistence port used by every RoadCalc operation.

Operations receive a repository explicitly instead of reaching for a global
database handle. ``SqlAlchemyRepository`` backs production; ``InMemoryRepository``
backs tests and dry runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from contextlib import AbstractAsyncContextManager
from typing import Protocol

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


class QuantityRepository(Protocol):
    """CRUD and transactional access to roads, phases, quantities and BOQ links.

    Returned entities are detached copies: mutating them has no effect until
    they are passed back to a ``save_*`` method.
    """

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """All writes inside the block commit together or not at all.

        Raises:
            TransactionFailure: If the underlying transaction aborts
        """
        ...

    # Roads & phases
    async def get_road(self, road_id: int) -> Road | None: ...

    async def list_roads(self, project_id: int | None = None) -> list[Road]: ...

    async def get_phase(self, phase_id: int) -> Phase | None: ...

    async def list_phases(self, road_id: int) -> list[Phase]: ...

    # Phase items & formulas
    async def get_phase_item(self, phase_item_id: int) -> PhaseItem | None: ...

    async def list_phase_items(
        self, phase_definition_id: int, include_inactive: bool = False
    ) -> list[PhaseItem]: ...

    async def save_phase_item(self, item: PhaseItem) -> PhaseItem: ...

    async def get_formula(self, phase_item_id: int) -> PhaseItemFormula | None: ...

    async def get_formulas(
        self, phase_item_ids: Iterable[int]
    ) -> dict[int, PhaseItemFormula]: ...

    async def save_formula(self, formula: PhaseItemFormula) -> PhaseItemFormula: ...

    async def delete_formula(self, phase_item_id: int) -> None: ...

    # Intervals
    async def get_interval(self, interval_id: int) -> Interval | None: ...

    async def get_intervals(self, interval_ids: Iterable[int]) -> dict[int, Interval]: ...

    async def list_intervals(self, phase_id: int) -> list[Interval]: ...

    async def delete_interval(self, interval_id: int) -> bool:
        """Delete an interval and every input row that references it."""
        ...

    # Input rows
    async def get_input(
        self, phase_item_id: int, interval_id: int
    ) -> PhaseItemInput | None: ...

    async def list_inputs(
        self,
        phase_item_ids: Sequence[int] | None = None,
        interval_ids: Sequence[int] | None = None,
    ) -> list[PhaseItemInput]: ...

    async def save_input(self, row: PhaseItemInput) -> PhaseItemInput:
        """Upsert by (phase_item_id, interval_id)."""
        ...

    # BOQ items & links
    async def get_boq_items(self, boq_item_ids: Iterable[int]) -> dict[int, BoqItem]: ...

    async def list_boq_items(
        self,
        project_id: int,
        sheet_type: BoqSheetType,
        tone: BoqTone | None = None,
        include_inactive: bool = False,
    ) -> list[BoqItem]: ...

    async def add_boq_items(self, items: Sequence[BoqItem]) -> list[BoqItem]: ...

    async def list_links(
        self,
        phase_item_ids: Sequence[int] | None = None,
        active_only: bool = True,
        project_id: int | None = None,
        for_update: bool = False,
    ) -> list[PhaseItemBoqLink]: ...

    async def save_link(self, link: PhaseItemBoqLink) -> PhaseItemBoqLink:
        """Insert a new link (id None) or update an existing one by id."""
        ...
