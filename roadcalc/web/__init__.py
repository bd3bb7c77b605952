"""HTTP adapter for RoadCalc."""
