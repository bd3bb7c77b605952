"""Database layer for RoadCalc."""

from roadcalc.db.connection import close_db, get_engine, get_session, init_db
from roadcalc.db.models import Base

__all__ = ["Base", "close_db", "get_engine", "get_session", "init_db"]
