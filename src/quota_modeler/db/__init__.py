"""Database engine, sessions and time helpers."""

from .session import SessionLocal, create_tables

__all__ = ["SessionLocal", "create_tables"]
