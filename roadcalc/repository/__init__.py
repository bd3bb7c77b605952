"""Persistence port and its adapters."""

from roadcalc.repository.base import QuantityRepository
from roadcalc.repository.memory import InMemoryRepository
from roadcalc.repository.sqlalchemy import SqlAlchemyRepository

__all__ = ["InMemoryRepository", "QuantityRepository", "SqlAlchemyRepository"]
