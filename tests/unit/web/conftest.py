"""Fixtures for route tests: routers wired to the seeded in-memory repository."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from roadcalc.config import QuantityConfig
from roadcalc.web.dependencies import get_quantity_config, get_repository
from roadcalc.web.errors import register_error_handlers
from roadcalc.web.routes import bindings, progress, quantities


@pytest.fixture
def app(repository):
    """Create test FastAPI app with the API routers and error mapping."""
    test_app = FastAPI()
    register_error_handlers(test_app)
    test_app.include_router(quantities.router)
    test_app.include_router(bindings.router)
    test_app.include_router(progress.router)

    test_app.dependency_overrides[get_repository] = lambda: repository
    test_app.dependency_overrides[get_quantity_config] = lambda: QuantityConfig(
        batch_interval_limit=3
    )
    return test_app


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)
