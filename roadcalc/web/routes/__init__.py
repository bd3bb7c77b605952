"""RoadCalc Web Route Modules.

Each module exports a `router` object (APIRouter instance) that the app in
roadcalc.web.app includes. Shared dependencies live in
roadcalc.web.dependencies and request models in roadcalc.web.models.

Domain errors are not converted here: routes let RoadCalcError propagate and
roadcalc.web.errors maps it to a status code.

Usage:
    from roadcalc.web.routes import quantities
    app.include_router(quantities.router)
"""

from roadcalc.web.routes import bindings, health, progress, quantities

__all__ = ["bindings", "health", "progress", "quantities"]
