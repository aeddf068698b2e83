"""Base model configuration for SQLAlchemy models."""

import uuid

from sqlalchemy.orm import DeclarativeBase


def generate_uuid() -> str:
    """Primary key default for string UUID columns."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass
