"""
Database package
"""
from flexia.db.base import Base
from flexia.db.session import engine, SessionLocal, get_db
from flexia.db.models import *

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
]
