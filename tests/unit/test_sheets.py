"""Tests for roadcalc.boq.sheets - ACTUAL sheet seeding."""

from __future__ import annotations

import pytest

from roadcalc.boq.sheets import seed_actual_sheet
from roadcalc.errors import ValidationError
from roadcalc.models import BoqSheetType


class TestSeedActualSheet:
    """Tests for cloning the CONTRACT sheet."""

    @pytest.mark.asyncio
    async def test_clones_contract_rows(self, repository, project_id):
        result = await seed_actual_sheet(repository, project_id)

        assert result.created is True
        assert len(result.items) == 6
        assert {item.sheet_type for item in result.items} == {BoqSheetType.ACTUAL}
        assert [item.contract_item_id for item in result.items] == [4, 5, 6, 7, 8, 9]
        assert not {item.id for item in result.items} & {4, 5, 6, 7, 8, 9}

    @pytest.mark.asyncio
    async def test_zero_sort_order_is_filled(self, repository, project_id):
        result = await seed_actual_sheet(repository, project_id)

        # the SECTION row was seeded with sort order 0
        assert result.items[0].sort_order == 10
        assert result.items[1].sort_order == 10

    @pytest.mark.asyncio
    async def test_runs_once(self, repository, project_id):
        first = await seed_actual_sheet(repository, project_id)
        second = await seed_actual_sheet(repository, project_id)

        assert second.created is False
        assert [item.id for item in second.items] == [item.id for item in first.items]

    @pytest.mark.asyncio
    async def test_contract_sheet_untouched(self, repository, project_id):
        await seed_actual_sheet(repository, project_id)

        contract = await repository.list_boq_items(
            project_id, BoqSheetType.CONTRACT, include_inactive=True
        )
        assert [item.id for item in contract] == [4, 5, 6, 7, 8, 9]

    @pytest.mark.asyncio
    async def test_project_without_contract(self, repository):
        result = await seed_actual_sheet(repository, 77)
        assert result.created is False
        assert result.items == []

    @pytest.mark.asyncio
    async def test_bad_project_id(self, repository):
        with pytest.raises(ValidationError):
            await seed_actual_sheet(repository, "x")

    @pytest.mark.asyncio
    async def test_string_project_id(self, repository):
        result = await seed_actual_sheet(repository, "1")
        assert result.created is True
