"""Declarative base for replay-store SQLAlchemy models."""

from sqlalchemy.orm import DeclarativeBase


class BaseEntity(DeclarativeBase):
    """Base class for all persisted SIOP entities."""
