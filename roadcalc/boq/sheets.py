"""BOQ sheet maintenance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from roadcalc.models import BoqItem, BoqSheetType
from roadcalc.repository.base import QuantityRepository
from roadcalc.validation import parse_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SeedResult:
    created: bool
    items: list[BoqItem] = field(default_factory=list)


async def seed_actual_sheet(
    repository: QuantityRepository, project_id: int | str
) -> SeedResult:
    """Clone a project's CONTRACT sheet into its ACTUAL (as-built) sheet.

    Runs once per project: if ACTUAL rows already exist they are returned
    unchanged with ``created=False``. Each clone keeps a pointer to its
    CONTRACT row; rows without a sort order get ``(position + 1) * 10``.

    Raises:
        ValidationError: If project_id is not a positive integer
    """
    project_id = parse_id(project_id, "project_id")

    async with repository.transaction():
        existing = await repository.list_boq_items(
            project_id, BoqSheetType.ACTUAL, include_inactive=True
        )
        if existing:
            return SeedResult(created=False, items=existing)

        contract = await repository.list_boq_items(
            project_id, BoqSheetType.CONTRACT, include_inactive=True
        )
        if not contract:
            return SeedResult(created=False)

        clones = [
            item.model_copy(
                update={
                    "id": None,
                    "sheet_type": BoqSheetType.ACTUAL,
                    "contract_item_id": item.id,
                    "sort_order": item.sort_order or (index + 1) * 10,
                }
            )
            for index, item in enumerate(contract)
        ]
        await repository.add_boq_items(clones)
        items = await repository.list_boq_items(
            project_id, BoqSheetType.ACTUAL, include_inactive=True
        )

    logger.info("Seeded %d ACTUAL BOQ rows for project %s", len(items), project_id)
    return SeedResult(created=True, items=items)
