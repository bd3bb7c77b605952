"""RoadCalc - quantity formulas, BOQ bindings and progress for road works."""

__version__ = "0.1.0"
