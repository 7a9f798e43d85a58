"""Persistence layer for the daily notes service."""
from .db import Database, create_db_engine, get_database_url
from .init_db import init_db
from .models import Base, Note, User

__all__ = ["Base", "Database", "Note", "User", "create_db_engine", "get_database_url", "init_db"]
