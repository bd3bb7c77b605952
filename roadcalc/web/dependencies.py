"""Shared dependencies for RoadCalc web routes.

Dependencies are injected using FastAPI's Depends() system. Tests replace
``get_repository`` through ``app.dependency_overrides`` to run the routes
against an in-memory repository.

Usage:
    from fastapi import Depends
    from roadcalc.web.dependencies import get_repository

    @router.get("/api/phases/{phase_id}/quantities")
    async def phase_quantities(phase_id: int, repository=Depends(get_repository)):
        ...
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends

from roadcalc.boq.bindings import BoqBindingManager
from roadcalc.config import QuantityConfig, get_config
from roadcalc.db.connection import get_session
from roadcalc.repository.base import QuantityRepository
from roadcalc.repository.sqlalchemy import SqlAlchemyRepository


async def get_repository() -> AsyncIterator[QuantityRepository]:
    """One repository per request; the session commits when the request succeeds."""
    async with get_session() as session:
        yield SqlAlchemyRepository(session)


def get_quantity_config() -> QuantityConfig:
    return get_config().quantity


def get_binding_manager(
    repository: QuantityRepository = Depends(get_repository),
    config: QuantityConfig = Depends(get_quantity_config),
) -> BoqBindingManager:
    return BoqBindingManager(repository, batch_limit=config.batch_interval_limit)
